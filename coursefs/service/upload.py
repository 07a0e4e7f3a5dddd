"""
Batch uploads into a course folder.

All entry points (file picker, directory picker, dropped entries) resolve
to `(target_path, source)` pairs and run the same per-file operation:

    blob put -> public URL -> record upsert -> ancestor materialization

Files run concurrently, bounded by a semaphore. A failure at any step is
recorded against that file only; the rest of the batch carries on.
"""
import asyncio
from typing import AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from coursefs.core import paths
from coursefs.core.models import (
    ResourceKind,
    ResourceRecord,
    UploadEvent,
    UploadFailure,
    UploadProgress,
    UploadReport,
)
from coursefs.core.sources import UploadSource
from coursefs.core.walker import DropEntry, collect_files
from coursefs.errors import ResourceError
from coursefs.service.logging import logger
from coursefs.service.materializer import FolderMaterializer
from coursefs.storage.base import BlobStore, PutResult, ResourceStore
from coursefs.utils.file_types import detect_mime_type

EventCallback = Callable[[UploadEvent], Awaitable[None]]


class ProgressTracker:
    """
    Byte progress for one batch.

    The total is fixed up front; `uploaded_bytes` only grows, by a file's
    full size once its blob is stored. Both reset to zero at the start and
    end of the batch.
    """

    def __init__(self):
        self.uploaded_bytes = 0
        self.total_bytes = 0

    def start(self, total_bytes: int) -> None:
        self.reset()
        self.total_bytes = total_bytes

    def advance(self, byte_count: int) -> None:
        self.uploaded_bytes = min(self.total_bytes, self.uploaded_bytes + max(0, byte_count))

    def reset(self) -> None:
        self.uploaded_bytes = 0
        self.total_bytes = 0

    def snapshot(self) -> UploadProgress:
        return UploadProgress(uploaded_bytes=self.uploaded_bytes, total_bytes=self.total_bytes)


class UploadPipeline:

    def __init__(self, resource_store: ResourceStore, blob_store: BlobStore,
                 materializer: FolderMaterializer, concurrency: int = 8):
        self.resource_store = resource_store
        self.blob_store = blob_store
        self.materializer = materializer
        self.concurrency = max(1, concurrency)

    @staticmethod
    def resolve_targets(folder: str, sources: Iterable[UploadSource]) -> List[Tuple[str, UploadSource]]:
        """
        Map each source to its normalized target path under `folder`.

        Sources without a relative path land directly in `folder`; directory
        uploads keep their relative structure. When two sources resolve to
        the same path the last one wins.
        """
        targets: Dict[str, UploadSource] = {}
        for source in sources:
            target = paths.join(folder, source.upload_path)
            if target in targets:
                logger.warning(f"Duplicate upload target {target}, keeping the last source")
            targets[target] = source
        return list(targets.items())

    async def upload(self, course_id: str, folder: str, sources: Iterable[UploadSource],
                     on_event: Optional[EventCallback] = None) -> UploadReport:
        """Upload files from the file or directory picker into `folder`"""
        folder = paths.normalize(folder)
        targets = self.resolve_targets(folder, sources)
        tracker = ProgressTracker()
        tracker.start(sum(source.size for _, source in targets))
        report = UploadReport(course_id=course_id, folder=folder, total_bytes=tracker.total_bytes)

        async def emit(event: str, path: Optional[str] = None, error: Optional[str] = None,
                       final: Optional[UploadReport] = None) -> None:
            if on_event is not None:
                await on_event(UploadEvent(event=event, progress=tracker.snapshot(), path=path,
                                           error=error, report=final))

        await emit("started")
        logger.info(f"Uploading {len(targets)} file(s), {tracker.total_bytes} bytes, to {course_id}/{folder}")

        if targets:
            await self._ensure_course_root(course_id)
            existing = {r.path: r for r in await self.resource_store.list(course_id)}
            batch_folders = {folder_path for path, _ in targets for folder_path in paths.ancestor_chain(path)}
            semaphore = asyncio.Semaphore(self.concurrency)
            await asyncio.gather(*(
                self._upload_one(course_id, path, source, existing, batch_folders, semaphore, tracker, report, emit)
                for path, source in targets
            ))

        report.uploaded_bytes = tracker.uploaded_bytes
        report.uploaded.sort(key=lambda r: r.path)
        report.failed.sort(key=lambda f: f.path)
        tracker.reset()
        logger.info(f"Upload to {course_id}/{folder} finished: {len(report.uploaded)} stored, {len(report.failed)} failed")
        await emit("finished", final=report)
        return report

    async def upload_entries(self, course_id: str, folder: str, entries: Iterable[DropEntry],
                             on_event: Optional[EventCallback] = None) -> UploadReport:
        """Upload dropped files and directories; directories keep their structure"""
        sources = await collect_files(entries)
        return await self.upload(course_id, folder, sources, on_event=on_event)

    async def stream(self, course_id: str, folder: str, sources: Iterable[UploadSource]) -> AsyncIterator[UploadEvent]:
        """
        Run an upload and yield its events as they happen, ending with `finished`.

        Abandoning the iterator does not cancel the upload: already issued
        store calls run to completion.
        """
        queue: asyncio.Queue = asyncio.Queue()

        async def on_event(event: UploadEvent) -> None:
            await queue.put(event)

        task = asyncio.create_task(self.upload(course_id, folder, list(sources), on_event=on_event))
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                event = getter.result()
                yield event
                if event.event == "finished":
                    break
            else:
                getter.cancel()
                # The batch died before emitting `finished`; drain what is queued then re-raise
                while not queue.empty():
                    yield queue.get_nowait()
                task.result()
                break
        await task

    async def _ensure_course_root(self, course_id: str) -> None:
        try:
            await self.materializer.ensure_course_root(course_id)
        except Exception as e:
            # The marker only makes empty courses listable; uploads can proceed without it
            logger.warning(f"Could not create storage root for course {course_id}: {e}")

    def _check_target(self, path: str, existing: Dict[str, ResourceRecord], batch_folders: Set[str]) -> Optional[str]:
        if not path:
            return "Upload path is empty"
        current = existing.get(path)
        if current is not None and current.is_folder:
            return f"A folder already exists at '{path}'"
        if path in batch_folders:
            return f"'{path}' is also a folder in this upload"
        for ancestor in paths.ancestor_chain(path):
            record = existing.get(ancestor)
            if record is not None and not record.is_folder:
                return f"'{ancestor}' is a file, not a folder"
        return None

    async def _upload_one(self, course_id: str, path: str, source: UploadSource,
                          existing: Dict[str, ResourceRecord], batch_folders: Set[str],
                          semaphore: asyncio.Semaphore, tracker: ProgressTracker, report: UploadReport,
                          emit) -> None:
        problem = self._check_target(path, existing, batch_folders)
        if problem:
            logger.warning(f"Skipping upload of {course_id}/{path}: {problem}")
            report.failed.append(UploadFailure(path=path, error=problem))
            await emit("file_failed", path=path, error=problem)
            return

        async with semaphore:
            key = paths.storage_key(course_id, path)
            stored_key = None
            stored_record = False
            try:
                data = await source.read()
                mime_type = detect_mime_type(source.name, declared=source.content_type, data=data)
                result = await self.blob_store.put(key, data, overwrite=True, content_type=mime_type)
                if result == PutResult.CONFLICT:
                    logger.debug(f"Object {key} already existed, treating as stored")
                stored_key = key
                tracker.advance(source.size)
                await emit("progress", path=path)

                url = self.blob_store.get_public_url(key)
                record = await self.resource_store.upsert(ResourceRecord(
                    course_id=course_id,
                    path=path,
                    kind=ResourceKind.FILE,
                    size=source.size,
                    url=url,
                    mime_type=mime_type,
                ))
                stored_record = True
                await self.materializer.ensure_ancestors(course_id, path)
                report.uploaded.append(record)
            except Exception as e:
                logger.warning(f"Upload of {course_id}/{path} failed: {e}")
                if path not in existing:
                    await self._discard(course_id, path, stored_key, stored_record)
                report.failed.append(UploadFailure(path=path, error=str(e)))
                await emit("file_failed", path=path, error=str(e))

    async def _discard(self, course_id: str, path: str, key: Optional[str], record: bool) -> None:
        """Undo the writes of a failed upload of a new file; an overwritten file keeps what it has"""
        if record:
            try:
                await self.resource_store.delete_by_path(course_id, path)
            except ResourceError as e:
                logger.warning(f"Could not remove record {course_id}/{path} after failed upload: {e}")
        if key:
            try:
                await self.blob_store.remove(key)
                logger.info(f"Removed object {key} left by failed upload")
            except ResourceError as e:
                logger.warning(f"Could not remove object {key} after failed upload: {e}")
