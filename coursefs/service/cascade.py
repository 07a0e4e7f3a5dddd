"""
Rename, move and delete with cascades over descendant paths.

A folder owns nothing but a path prefix, so changing a folder means
rewriting every row whose path starts with `folder.path + "/"`. A file's
object lives at `course_id/path`, so relocating a file copies its object to
the new key, rewrites the row (path, name, url) and only then removes the old
object. The store has no multi-row transaction: the root row is written
first, then each descendant independently and concurrently. Every
individual row is always well-formed, but a failure partway leaves the tree
with a mix of old and new prefixes. The `CascadeResult` says exactly which
writes landed.
"""
import asyncio
from typing import List, Optional, Tuple

from coursefs.core import paths
from coursefs.core.models import CascadeFailure, CascadeResult, PathChange, ResourceRecord
from coursefs.errors import CycleError, ResourceError, ResourceNotFoundError, ResourceValidationError
from coursefs.service.logging import logger
from coursefs.storage.base import BlobStore, ResourceStore


class MutationCascader:

    def __init__(self, resource_store: ResourceStore, blob_store: BlobStore, concurrency: int = 8):
        self.resource_store = resource_store
        self.blob_store = blob_store
        self.concurrency = max(1, concurrency)

    async def rename(self, record: ResourceRecord, new_name: str, dry_run: bool = False) -> CascadeResult:
        try:
            new_name = paths.validate_segment(new_name)
        except ValueError as e:
            raise ResourceValidationError(str(e)) from e
        new_path = paths.join(record.parent_path, new_name)
        return await self._relocate("rename", record, new_path, dry_run)

    async def move(self, record: ResourceRecord, destination: str, dry_run: bool = False) -> CascadeResult:
        destination = paths.normalize(destination)
        if record.is_folder and paths.is_same_or_descendant(destination, record.path):
            raise CycleError(record.path, destination)
        if destination:
            target_folder = await self.resource_store.get(record.course_id, destination)
            if target_folder is None:
                raise ResourceValidationError(f"Destination folder '{destination}' does not exist")
            if not target_folder.is_folder:
                raise ResourceValidationError(f"Destination '{destination}' is not a folder")
        new_path = paths.join(destination, record.name)
        return await self._relocate("move", record, new_path, dry_run)

    async def delete(self, record: ResourceRecord, dry_run: bool = False) -> CascadeResult:
        result = CascadeResult(operation="delete", course_id=record.course_id,
                               source_path=record.path, dry_run=dry_run)
        descendants = await self._descendants(record)

        if dry_run:
            result.applied = [PathChange(old_path=r.path) for r in [record, *descendants]]
            return result

        try:
            if not await self.resource_store.delete_by_path(record.course_id, record.path):
                raise ResourceNotFoundError(record.course_id, record.path)
        except ResourceError as e:
            logger.warning(f"Delete of {record.course_id}/{record.path} failed: {e}")
            result.failed.append(CascadeFailure(path=record.path, error=str(e)))
            return result
        result.applied.append(PathChange(old_path=record.path))

        deleted_files = [record] if not record.is_folder else []
        if record.is_folder:
            deleted = await self._delete_descendants(record, descendants, result)
            deleted_files.extend(r for r in deleted if not r.is_folder)

        await self._gather(self._remove_blob(r, result) for r in deleted_files)
        self._log_result(result)
        return result

    @staticmethod
    def _plan_paths(record: ResourceRecord, descendants: List[ResourceRecord],
                    new_path: str) -> List[Tuple[str, str]]:
        """(old, new) path pairs a relocation of `record` to `new_path` writes"""
        return [(record.path, new_path)] + [
            (r.path, paths.replace_prefix(r.path, record.path, new_path)) for r in descendants
        ]

    async def _relocate(self, operation: str, record: ResourceRecord, new_path: str,
                        dry_run: bool) -> CascadeResult:
        new_path = paths.normalize(new_path)
        result = CascadeResult(operation=operation, course_id=record.course_id, source_path=record.path,
                               target_path=new_path, dry_run=dry_run)
        if new_path == record.path:
            return result
        if await self.resource_store.get(record.course_id, new_path) is not None:
            raise ResourceValidationError(f"'{new_path}' already exists")

        descendants = await self._descendants(record)
        if dry_run:
            result.applied = [PathChange(old_path=old, new_path=new)
                              for old, new in self._plan_paths(record, descendants, new_path)]
            return result

        try:
            await self._move_row(record, new_path)
        except ResourceError as e:
            logger.warning(f"{operation.capitalize()} of {record.course_id}/{record.path} failed: {e}")
            result.failed.append(CascadeFailure(path=record.path, error=str(e)))
            return result
        result.applied.append(PathChange(old_path=record.path, new_path=new_path))

        await self._gather(
            self._rewrite(row, paths.replace_prefix(row.path, record.path, new_path), result)
            for row in descendants
        )
        self._log_result(result)
        return result

    async def _rewrite(self, row: ResourceRecord, new_path: str, result: CascadeResult) -> None:
        try:
            await self._move_row(row, new_path)
            result.applied.append(PathChange(old_path=row.path, new_path=new_path))
        except ResourceError as e:
            logger.warning(f"Cascade step {row.course_id}/{row.path} -> {new_path} failed: {e}")
            result.failed.append(CascadeFailure(path=row.path, error=str(e)))

    async def _move_row(self, row: ResourceRecord, new_path: str) -> None:
        """
        Give one row a new path. A file's object is copied to the new key
        before the row changes and the old object is removed after, so a
        failed row update leaves the row pointing at its original object.
        """
        patch = {'path': new_path, 'name': paths.last_segment(new_path)}
        old_key = self._owned_blob_key(row)
        new_key = paths.storage_key(row.course_id, new_path)
        moving_object = old_key is not None and old_key != new_key
        if moving_object:
            data = await self.blob_store.get(old_key)
            await self.blob_store.put(new_key, data, overwrite=True, content_type=row.mime_type)
            patch['url'] = self.blob_store.get_public_url(new_key)

        try:
            updated = await self.resource_store.update(row.course_id, row.path, patch)
            if updated is None:
                raise ResourceNotFoundError(row.course_id, row.path)
        except ResourceError:
            if moving_object:
                await self._discard_object(new_key)
            raise

        if moving_object:
            await self._discard_object(old_key)

    async def _discard_object(self, key: str) -> None:
        try:
            await self.blob_store.remove(key)
        except ResourceError as e:
            logger.warning(f"Could not remove object {key}: {e}")

    async def _delete_descendants(self, record: ResourceRecord, descendants: List[ResourceRecord],
                                  result: CascadeResult) -> List[ResourceRecord]:
        try:
            deleted = await self.resource_store.delete_by_prefix(record.course_id, record.path)
        except ResourceError as e:
            logger.warning(f"Prefix delete under {record.course_id}/{record.path} failed, deleting one by one: {e}")
            deleted = []

            async def delete_one(child: ResourceRecord) -> None:
                try:
                    if await self.resource_store.delete_by_path(child.course_id, child.path):
                        deleted.append(child)
                except ResourceError as child_error:
                    result.failed.append(CascadeFailure(path=child.path, error=str(child_error)))

            await self._gather(delete_one(child) for child in descendants)

        deleted.sort(key=lambda r: r.path)
        result.applied.extend(PathChange(old_path=r.path) for r in deleted)
        return deleted

    async def _remove_blob(self, record: ResourceRecord, result: CascadeResult) -> None:
        key = self.blob_key(record)
        try:
            await self.blob_store.remove(key)
        except ResourceError as e:
            logger.warning(f"Removing object {key} failed: {e}")
            result.failed.append(CascadeFailure(path=record.path, error=f"blob {key}: {e}"))

    def blob_key(self, record: ResourceRecord) -> str:
        """Storage key of a file's content: taken from its URL, else its current path"""
        return self._owned_blob_key(record) or paths.storage_key(record.course_id, record.path)

    def _owned_blob_key(self, record: ResourceRecord) -> Optional[str]:
        # Files whose URL points outside this store have no object for us to move
        if record.is_folder or not record.url:
            return None
        return self.blob_store.key_from_url(record.url)

    async def _descendants(self, record: ResourceRecord) -> List[ResourceRecord]:
        if not record.is_folder:
            return []
        return await self.resource_store.list_by_prefix(record.course_id, record.path)

    async def _gather(self, coroutines) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(coroutine):
            async with semaphore:
                await coroutine

        await asyncio.gather(*(bounded(c) for c in coroutines))

    @staticmethod
    def _log_result(result: CascadeResult) -> None:
        if result.failed:
            logger.warning(
                f"{result.operation} of {result.course_id}/{result.source_path} incomplete: "
                f"{len(result.applied)} applied, {len(result.failed)} failed"
            )
        else:
            logger.info(f"{result.operation} of {result.course_id}/{result.source_path}: {len(result.applied)} record(s)")
