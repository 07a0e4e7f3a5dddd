import os
import uuid
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import aiofiles
import aiofiles.os

from coursefs.core import paths
from coursefs.errors import BlobStoreError
from coursefs.service.logging import logger
from coursefs.storage.base import BlobEntry, BlobStore, PutResult


class LocalBlobStore(BlobStore):
    """Blob storage in a directory on disk; object keys map to relative file paths"""

    def __init__(self, storage_path: str = "var/blobs", public_base_url: str = "http://localhost:8000/storage"):
        self.storage_path = Path(storage_path)
        self.public_base_url = public_base_url.rstrip("/")
        # Ensure storage directory exists
        os.makedirs(self.storage_path, exist_ok=True)

    def _object_path(self, key: str) -> Path:
        parts = paths.split(key)
        if not parts:
            raise BlobStoreError("Object key cannot be empty")
        if any(part in (".", "..") for part in parts):
            raise BlobStoreError(f"Invalid object key: {key}")
        return self.storage_path.joinpath(*parts)

    async def put(self, key: str, data: bytes, overwrite: bool = True,
                  content_type: Optional[str] = None) -> PutResult:
        target = self._object_path(key)
        try:
            if not overwrite and await aiofiles.os.path.exists(target):
                return PutResult.CONFLICT
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            # Write to a temporary file first so readers never see a partial object
            temp_path = target.parent / f".tmp_{uuid.uuid4().hex}"
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, target)
        except OSError as e:
            logger.error(f"Failed to store object {key}: {e}")
            raise BlobStoreError(f"Failed to store object {key}: {e}") from e
        logger.debug(f"Stored object {key} ({len(data)} bytes)")
        return PutResult.OK

    async def get(self, key: str) -> bytes:
        target = self._object_path(key)
        try:
            async with aiofiles.open(target, 'rb') as f:
                return await f.read()
        except OSError as e:
            raise BlobStoreError(f"Failed to read object {key}: {e}") from e

    def get_public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(paths.normalize(key))}"

    def get_object_path(self, key: str) -> Path:
        """Absolute location of an object on disk, for serving downloads"""
        return self._object_path(key)

    async def remove(self, key: str) -> bool:
        target = self._object_path(key)
        try:
            if not await aiofiles.os.path.isfile(target):
                return False
            await aiofiles.os.remove(target)
        except OSError as e:
            raise BlobStoreError(f"Failed to remove object {key}: {e}") from e
        return True

    async def list(self, prefix: str) -> List[BlobEntry]:
        prefix = paths.normalize(prefix)
        directory = self._object_path(prefix) if prefix else self.storage_path
        try:
            if not await aiofiles.os.path.isdir(directory):
                return []
            found = []
            with await aiofiles.os.scandir(directory) as entries:
                for entry in entries:
                    if entry.name.startswith(".tmp_"):
                        continue
                    is_folder = entry.is_dir()
                    found.append(BlobEntry(
                        name=entry.name,
                        key=paths.join(prefix, entry.name),
                        is_folder=is_folder,
                        size=None if is_folder else entry.stat().st_size,
                    ))
        except OSError as e:
            raise BlobStoreError(f"Failed to list {prefix or '/'}: {e}") from e
        return sorted(found, key=lambda e: e.name)
