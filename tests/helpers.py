from typing import Optional

from coursefs.core.models import ResourceRecord

COURSE_ID = "course-101"


def make_file(path: str, course_id: str = COURSE_ID, size: int = 3, mime_type: Optional[str] = "text/plain",
              url: Optional[str] = "") -> ResourceRecord:
    """A file record; the URL defaults to where MemoryBlobStore would serve it"""
    if url == "":
        url = f"memory://blobs/{course_id}/{path}"
    return ResourceRecord(course_id=course_id, path=path, size=size, mime_type=mime_type, url=url)


def make_folder(path: str, course_id: str = COURSE_ID) -> ResourceRecord:
    return ResourceRecord.folder(course_id, path)
