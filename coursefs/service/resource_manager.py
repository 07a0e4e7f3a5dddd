from typing import AsyncIterator, Iterable, List, Optional

from coursefs.core import paths
from coursefs.core import tree as resource_tree
from coursefs.core.models import (
    CascadeResult,
    PreviewInfo,
    ResourceNode,
    ResourceRecord,
    UploadEvent,
    UploadReport,
)
from coursefs.core.sources import UploadSource
from coursefs.core.walker import DropEntry
from coursefs.errors import ResourceNotFoundError, ResourceValidationError
from coursefs.service.cascade import MutationCascader
from coursefs.service.materializer import FolderMaterializer
from coursefs.service.upload import EventCallback, UploadPipeline
from coursefs.storage.base import BlobStore, ResourceStore
from coursefs.utils.file_types import get_preview_kind


class ResourceManager:
    """
    The operations a course resource explorer needs.

    Holds no view state: every read fetches a fresh snapshot of the course's
    flat records and projects it, so callers can discard results freely.
    """

    def __init__(self, resource_store: ResourceStore, blob_store: BlobStore, concurrency: int = 8):
        self.resource_store = resource_store
        self.blob_store = blob_store
        self.materializer = FolderMaterializer(resource_store, blob_store)
        self.uploads = UploadPipeline(resource_store, blob_store, self.materializer, concurrency=concurrency)
        self.cascader = MutationCascader(resource_store, blob_store, concurrency=concurrency)

    async def list_records(self, course_id: str) -> List[ResourceRecord]:
        return await self.resource_store.list(course_id)

    async def browse(self, course_id: str, path: str = "") -> List[ResourceRecord]:
        """Direct children of `path`, folders first then by name"""
        return resource_tree.direct_children(await self.list_records(course_id), path)

    async def tree(self, course_id: str) -> List[ResourceNode]:
        return resource_tree.build_tree(await self.list_records(course_id))

    async def find(self, course_id: str, path: str) -> Optional[ResourceRecord]:
        return await self.resource_store.get(course_id, paths.normalize(path))

    async def get(self, course_id: str, path: str) -> ResourceRecord:
        record = await self.find(course_id, path)
        if record is None:
            raise ResourceNotFoundError(course_id, paths.normalize(path))
        return record

    async def create_folder(self, course_id: str, parent_path: str, name: str) -> ResourceRecord:
        return await self.materializer.create_folder(course_id, parent_path, name)

    async def upload(self, course_id: str, folder: str, sources: Iterable[UploadSource],
                     on_event: Optional[EventCallback] = None) -> UploadReport:
        return await self.uploads.upload(course_id, folder, sources, on_event=on_event)

    async def upload_drop(self, course_id: str, folder: str, entries: Iterable[DropEntry],
                          on_event: Optional[EventCallback] = None) -> UploadReport:
        return await self.uploads.upload_entries(course_id, folder, entries, on_event=on_event)

    def upload_stream(self, course_id: str, folder: str, sources: Iterable[UploadSource]) -> AsyncIterator[UploadEvent]:
        return self.uploads.stream(course_id, folder, sources)

    async def rename(self, record: ResourceRecord, new_name: str, dry_run: bool = False) -> CascadeResult:
        return await self.cascader.rename(record, new_name, dry_run=dry_run)

    async def move(self, record: ResourceRecord, destination: str, dry_run: bool = False) -> CascadeResult:
        return await self.cascader.move(record, destination, dry_run=dry_run)

    async def delete(self, record: ResourceRecord, dry_run: bool = False) -> CascadeResult:
        return await self.cascader.delete(record, dry_run=dry_run)

    async def move_destinations(self, course_id: str, path: str) -> List[str]:
        records = await self.list_records(course_id)
        target = resource_tree.find(records, path)
        if target is None:
            raise ResourceNotFoundError(course_id, paths.normalize(path))
        return resource_tree.move_destinations(records, target)

    def resolve_preview(self, record: ResourceRecord) -> PreviewInfo:
        if record.is_folder:
            raise ResourceValidationError(f"'{record.path}' is a folder and has no preview")
        url = record.url or self.blob_store.get_public_url(self.cascader.blob_key(record))
        return PreviewInfo(
            path=record.path,
            url=url,
            mime_type=record.mime_type,
            preview=get_preview_kind(record.mime_type),
        )
