from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from starlette.status import HTTP_404_NOT_FOUND

from coursefs.dependencies import get_blob_store
from coursefs.errors import BlobStoreError
from coursefs.storage.base import BlobStore
from coursefs.storage.local import LocalBlobStore
from coursefs.utils.file_types import get_mime_type

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/{key:path}")
async def get_object(key: str, blob_store: BlobStore = Depends(get_blob_store)):
    """Serve an object's content; this is what public URLs point at"""
    if not isinstance(blob_store, LocalBlobStore):
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Objects are not served by this backend")
    try:
        file_path = blob_store.get_object_path(key)
    except BlobStoreError:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Object not found")
    if not file_path.is_file():
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Object not found")

    return FileResponse(
        path=file_path,
        media_type=get_mime_type(file_path.name),
        filename=file_path.name
    )
