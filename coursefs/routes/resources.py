from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, model_validator
from sse_starlette.sse import EventSourceResponse
from starlette.status import HTTP_201_CREATED, HTTP_422_UNPROCESSABLE_ENTITY

from coursefs.core.models import CascadeResult, PreviewInfo, ResourceNode, ResourceRecord, UploadReport
from coursefs.core.sources import BytesSource, UploadSource
from coursefs.dependencies import get_resource_manager
from coursefs.service.logging import logger
from coursefs.service.resource_manager import ResourceManager

router = APIRouter(prefix="/courses/{course_id}/resources", tags=["resources"])


## Request Models
class CreateFolderRequest(BaseModel):
    parent_path: str = ""
    name: str

    @model_validator(mode='after')
    def validate_name(self):
        if not self.name.strip():
            raise ValueError("Folder name cannot be empty")
        return self


class RenameRequest(BaseModel):
    path: str
    new_name: str
    dry_run: bool = False


class MoveRequest(BaseModel):
    path: str
    destination: str = ""
    dry_run: bool = False


class DeleteRequest(BaseModel):
    path: str
    dry_run: bool = False


async def _read_uploads(files: List[UploadFile], relative_paths: Optional[List[str]]) -> List[UploadSource]:
    """
    Buffer multipart files into upload sources.

    `relative_paths`, when sent, pairs with `files` by position (directory
    uploads); plain file uploads omit it.
    """
    if relative_paths and len(relative_paths) != len(files):
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Got {len(relative_paths)} relative paths for {len(files)} files",
        )
    sources = []
    for index, upload_file in enumerate(files):
        data = await upload_file.read()
        relative_path = relative_paths[index] if relative_paths else None
        sources.append(BytesSource(
            name=upload_file.filename or "unnamed_file",
            data=data,
            content_type=upload_file.content_type,
            relative_path=relative_path or None,
        ))
    return sources


@router.get("", response_model=List[ResourceRecord])
async def browse(course_id: str, path: str = "", manager: ResourceManager = Depends(get_resource_manager)):
    """List the direct children of a folder, folders first"""
    return await manager.browse(course_id, path)


@router.get("/tree", response_model=List[ResourceNode])
async def get_tree(course_id: str, manager: ResourceManager = Depends(get_resource_manager)):
    """The whole course as a nested tree"""
    return await manager.tree(course_id)


@router.get("/record", response_model=ResourceRecord)
async def get_record(course_id: str, path: str, manager: ResourceManager = Depends(get_resource_manager)):
    return await manager.get(course_id, path)


@router.post("/folders", response_model=ResourceRecord, status_code=HTTP_201_CREATED)
async def create_folder(course_id: str, request: CreateFolderRequest,
                        manager: ResourceManager = Depends(get_resource_manager)):
    """Create a folder (and any missing parents)"""
    return await manager.create_folder(course_id, request.parent_path, request.name)


@router.post("/upload", response_model=UploadReport)
async def upload(
    course_id: str,
    files: List[UploadFile] = File(...),
    folder: str = Form(""),
    relative_paths: Optional[List[str]] = Form(None),
    manager: ResourceManager = Depends(get_resource_manager),
):
    """Upload files into a folder; failed files are listed in the report"""
    sources = await _read_uploads(files, relative_paths)
    return await manager.upload(course_id, folder, sources)


@router.post("/upload/stream")
async def upload_stream(
    course_id: str,
    files: List[UploadFile] = File(...),
    folder: str = Form(""),
    relative_paths: Optional[List[str]] = Form(None),
    manager: ResourceManager = Depends(get_resource_manager),
):
    """Upload files and stream progress as server-sent events"""
    sources = await _read_uploads(files, relative_paths)

    async def event_generator():
        async for event in manager.upload_stream(course_id, folder, sources):
            yield {
                "event": event.event,
                "data": event.model_dump_json(),
            }
        logger.debug(f"Upload stream for course {course_id} closed")

    return EventSourceResponse(event_generator())


@router.post("/rename", response_model=CascadeResult)
async def rename(course_id: str, request: RenameRequest, manager: ResourceManager = Depends(get_resource_manager)):
    record = await manager.get(course_id, request.path)
    return await manager.rename(record, request.new_name, dry_run=request.dry_run)


@router.post("/move", response_model=CascadeResult)
async def move(course_id: str, request: MoveRequest, manager: ResourceManager = Depends(get_resource_manager)):
    record = await manager.get(course_id, request.path)
    return await manager.move(record, request.destination, dry_run=request.dry_run)


@router.post("/delete", response_model=CascadeResult)
async def delete(course_id: str, request: DeleteRequest, manager: ResourceManager = Depends(get_resource_manager)):
    record = await manager.get(course_id, request.path)
    return await manager.delete(record, dry_run=request.dry_run)


@router.get("/preview", response_model=PreviewInfo)
async def preview(course_id: str, path: str, manager: ResourceManager = Depends(get_resource_manager)):
    record = await manager.get(course_id, path)
    return manager.resolve_preview(record)


@router.get("/move-destinations", response_model=List[str])
async def move_destinations(course_id: str, path: str, manager: ResourceManager = Depends(get_resource_manager)):
    """Folders the resource at `path` can be moved into; '' is the course root"""
    return await manager.move_destinations(course_id, path)
