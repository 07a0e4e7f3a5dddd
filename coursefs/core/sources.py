"""
Upload sources: the Python side of a browser `File`.

A source knows its name, byte size, declared content type and, for
directory uploads, its path relative to the dropped/picked directory.
Content is read lazily so that a batch can be planned (and its total size
known) before any bytes move.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from coursefs.core import paths
from coursefs.utils.file_types import detect_mime_type


class UploadSource(ABC):
    name: str
    size: int
    content_type: Optional[str]
    relative_path: Optional[str]

    @abstractmethod
    async def read(self) -> bytes:
        """Return the full content of the source"""
        pass

    @property
    def upload_path(self) -> str:
        """Path below the target folder: the relative path if any, else the name"""
        return paths.normalize(self.relative_path or self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.upload_path!r}, size={self.size})"


class BytesSource(UploadSource):
    """An in-memory source"""

    def __init__(self, name: str, data: bytes, content_type: Optional[str] = None,
                 relative_path: Optional[str] = None):
        self.name = name
        self.data = data
        self.size = len(data)
        self.content_type = detect_mime_type(name, declared=content_type, data=data)
        self.relative_path = relative_path

    async def read(self) -> bytes:
        return self.data


class LocalFileSource(UploadSource):
    """A file on the local filesystem, read with aiofiles"""

    def __init__(self, file_path: Path, size: int, relative_path: Optional[str] = None,
                 content_type: Optional[str] = None):
        self.file_path = Path(file_path)
        self.name = self.file_path.name
        self.size = size
        self.content_type = detect_mime_type(self.name, declared=content_type, file_path=self.file_path)
        self.relative_path = relative_path

    @classmethod
    async def from_path(cls, file_path: Path, relative_path: Optional[str] = None) -> "LocalFileSource":
        stat = await aiofiles.os.stat(file_path)
        return cls(Path(file_path), stat.st_size, relative_path=relative_path)

    async def read(self) -> bytes:
        async with aiofiles.open(self.file_path, 'rb') as f:
            return await f.read()
