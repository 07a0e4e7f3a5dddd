import asyncio
from typing import List, Set

from coursefs.core import paths
from coursefs.core.models import ResourceRecord
from coursefs.errors import ResourceValidationError
from coursefs.service.logging import logger
from coursefs.storage.base import BlobStore, ResourceStore


class FolderMaterializer:
    """
    Creates the folder records implied by a path.

    Every write is an insert-if-absent on (course_id, path), so any number of
    concurrent uploads can materialize the same ancestors without errors or
    duplicate rows.
    """

    def __init__(self, resource_store: ResourceStore, blob_store: BlobStore):
        self.resource_store = resource_store
        self.blob_store = blob_store
        self._known_roots: Set[str] = set()
        self._root_lock = asyncio.Lock()

    async def ensure_ancestors(self, course_id: str, path: str) -> List[ResourceRecord]:
        """
        Materialize a folder record for every proper ancestor of `path`, top-down.

        Raises ResourceValidationError when an ancestor is already taken by a file.
        """
        folders = []
        for folder_path in paths.ancestor_chain(path):
            folder = await self.resource_store.insert_if_absent(ResourceRecord.folder(course_id, folder_path))
            if not folder.is_folder:
                raise ResourceValidationError(f"'{folder_path}' is a file, not a folder")
            folders.append(folder)
        if folders:
            logger.debug(f"Materialized {len(folders)} ancestor folder(s) for {course_id}/{paths.normalize(path)}")
        return folders

    async def ensure_course_root(self, course_id: str) -> bool:
        """
        Make sure the course namespace exists in blob storage.

        Checked once per course per process: when the course prefix lists
        empty a zero-byte marker object is written. Returns True when the
        marker was created by this call.
        """
        if course_id in self._known_roots:
            return False
        async with self._root_lock:
            if course_id in self._known_roots:
                return False
            created = False
            entries = await self.blob_store.list(course_id)
            if not entries:
                await self.blob_store.put(paths.join(course_id, BlobStore.KEEP_MARKER), b"", overwrite=True)
                logger.info(f"Created storage root for course {course_id}")
                created = True
            self._known_roots.add(course_id)
            return created

    async def create_folder(self, course_id: str, parent_path: str, name: str) -> ResourceRecord:
        """
        Explicitly create a folder (and any missing ancestors).

        Creating a folder that already exists returns the existing row. A file
        already occupying the path is a validation error.
        """
        try:
            name = paths.validate_segment(name)
        except ValueError as e:
            raise ResourceValidationError(str(e)) from e

        folder_path = paths.join(parent_path, name)
        existing = await self.resource_store.get(course_id, folder_path)
        if existing is not None:
            if not existing.is_folder:
                raise ResourceValidationError(f"A file already exists at '{folder_path}'")
            return existing

        await self.ensure_ancestors(course_id, folder_path)
        folder = await self.resource_store.insert_if_absent(ResourceRecord.folder(course_id, folder_path))
        logger.info(f"Created folder {course_id}/{folder_path}")
        return folder
