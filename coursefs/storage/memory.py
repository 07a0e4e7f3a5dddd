"""In-process store backends, used for the `memory` backend setting and in tests."""
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from coursefs.core import paths
from coursefs.core.models import ResourceRecord
from coursefs.errors import BlobStoreError, ResourceValidationError
from coursefs.storage.base import BlobEntry, BlobStore, PutResult, ResourceStore


class MemoryResourceStore(ResourceStore):

    def __init__(self, records: Optional[List[ResourceRecord]] = None):
        self._rows: Dict[Tuple[str, str], ResourceRecord] = {}
        for record in records or []:
            self._rows[(record.course_id, record.path)] = record

    async def list(self, course_id: str) -> List[ResourceRecord]:
        await asyncio.sleep(0)
        return sorted((r for (cid, _), r in self._rows.items() if cid == course_id), key=lambda r: r.path)

    async def get(self, course_id: str, path: str) -> Optional[ResourceRecord]:
        await asyncio.sleep(0)
        return self._rows.get((course_id, paths.normalize(path)))

    async def list_by_prefix(self, course_id: str, prefix: str) -> List[ResourceRecord]:
        await asyncio.sleep(0)
        return sorted(
            (r for (cid, path), r in self._rows.items() if cid == course_id and paths.is_descendant(path, prefix)),
            key=lambda r: r.path,
        )

    async def upsert(self, record: ResourceRecord) -> ResourceRecord:
        await asyncio.sleep(0)
        key = (record.course_id, record.path)
        existing = self._rows.get(key)
        now = datetime.now()
        stored = record.model_copy(update={
            'created_at': existing.created_at if existing else now,
            'updated_at': now,
        })
        self._rows[key] = stored
        return stored

    async def insert_if_absent(self, record: ResourceRecord) -> ResourceRecord:
        await asyncio.sleep(0)
        key = (record.course_id, record.path)
        if key not in self._rows:
            now = datetime.now()
            self._rows[key] = record.model_copy(update={'created_at': now, 'updated_at': now})
        return self._rows[key]

    async def update(self, course_id: str, path: str, patch: Dict[str, Any]) -> Optional[ResourceRecord]:
        await asyncio.sleep(0)
        key = (course_id, paths.normalize(path))
        existing = self._rows.get(key)
        if existing is None:
            return None
        data = {**existing.model_dump(), **patch, 'updated_at': datetime.now()}
        if 'path' in patch and 'name' not in patch:
            data['name'] = paths.last_segment(patch['path'])
        updated = ResourceRecord.model_validate(data)
        new_key = (updated.course_id, updated.path)
        if new_key != key and new_key in self._rows:
            raise ResourceValidationError(f"Path already exists: {updated.path}")
        del self._rows[key]
        self._rows[new_key] = updated
        return updated

    async def delete_by_path(self, course_id: str, path: str) -> bool:
        await asyncio.sleep(0)
        return self._rows.pop((course_id, paths.normalize(path)), None) is not None

    async def delete_by_prefix(self, course_id: str, prefix: str) -> List[ResourceRecord]:
        await asyncio.sleep(0)
        doomed = [key for key in self._rows if key[0] == course_id and paths.is_descendant(key[1], prefix)]
        return [self._rows.pop(key) for key in sorted(doomed)]


class MemoryBlobStore(BlobStore):

    def __init__(self, public_base_url: str = "memory://blobs"):
        self.public_base_url = public_base_url.rstrip("/")
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, Optional[str]] = {}

    async def put(self, key: str, data: bytes, overwrite: bool = True,
                  content_type: Optional[str] = None) -> PutResult:
        await asyncio.sleep(0)
        key = paths.normalize(key)
        if not key:
            raise BlobStoreError("Object key cannot be empty")
        if key in self.objects and not overwrite:
            return PutResult.CONFLICT
        self.objects[key] = bytes(data)
        self.content_types[key] = content_type
        return PutResult.OK

    async def get(self, key: str) -> bytes:
        await asyncio.sleep(0)
        try:
            return self.objects[paths.normalize(key)]
        except KeyError:
            raise BlobStoreError(f"Object not found: {key}")

    def get_public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(paths.normalize(key))}"

    async def remove(self, key: str) -> bool:
        await asyncio.sleep(0)
        key = paths.normalize(key)
        self.content_types.pop(key, None)
        return self.objects.pop(key, None) is not None

    async def list(self, prefix: str) -> List[BlobEntry]:
        await asyncio.sleep(0)
        prefix = paths.normalize(prefix)
        entries: Dict[str, BlobEntry] = {}
        for key, data in self.objects.items():
            if not paths.is_descendant(key, prefix):
                continue
            rest = paths.split(key)[len(paths.split(prefix)):]
            child_key = paths.join(prefix, rest[0])
            if len(rest) > 1:
                entries.setdefault(rest[0], BlobEntry(name=rest[0], key=child_key, is_folder=True))
            else:
                entries[rest[0]] = BlobEntry(name=rest[0], key=child_key, is_folder=False, size=len(data))
        return [entries[name] for name in sorted(entries)]
