from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from coursefs.core import paths
from coursefs.core.models import ResourceRecord


class PutResult(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"   # Object already existed and overwrite was not requested


@dataclass(frozen=True)
class BlobEntry:
    name: str
    key: str
    is_folder: bool
    size: Optional[int] = None


class ResourceStore(ABC):
    """
    The metadata table: flat resource records keyed by (course_id, path).

    Implementations must make `upsert` and `insert_if_absent` idempotent on
    the unique key so concurrent writers never duplicate a row. Any failure
    to reach the store is raised as `RecordStoreError`.
    """

    @abstractmethod
    async def list(self, course_id: str) -> List[ResourceRecord]:
        pass

    @abstractmethod
    async def get(self, course_id: str, path: str) -> Optional[ResourceRecord]:
        pass

    @abstractmethod
    async def list_by_prefix(self, course_id: str, prefix: str) -> List[ResourceRecord]:
        """Records strictly below `prefix` (matching `prefix + '/'`)"""
        pass

    @abstractmethod
    async def upsert(self, record: ResourceRecord) -> ResourceRecord:
        """Insert or replace the row at (course_id, path)"""
        pass

    @abstractmethod
    async def insert_if_absent(self, record: ResourceRecord) -> ResourceRecord:
        """Insert the row unless (course_id, path) exists; returns the stored row"""
        pass

    @abstractmethod
    async def update(self, course_id: str, path: str, patch: Dict[str, Any]) -> Optional[ResourceRecord]:
        """Apply `patch` to one row; None when the row does not exist"""
        pass

    @abstractmethod
    async def delete_by_path(self, course_id: str, path: str) -> bool:
        pass

    @abstractmethod
    async def delete_by_prefix(self, course_id: str, prefix: str) -> List[ResourceRecord]:
        """Delete every record strictly below `prefix`; returns the deleted rows"""
        pass


class BlobStore(ABC):
    """
    Path-keyed object storage.

    `put` reports an existing object as `PutResult.CONFLICT` when overwrite is
    off; every other failure is raised as `BlobStoreError`.
    """
    KEEP_MARKER = ".keep"
    public_base_url: str

    @abstractmethod
    async def put(self, key: str, data: bytes, overwrite: bool = True,
                  content_type: Optional[str] = None) -> PutResult:
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        pass

    @abstractmethod
    def get_public_url(self, key: str) -> str:
        pass

    @abstractmethod
    async def remove(self, key: str) -> bool:
        pass

    @abstractmethod
    async def list(self, prefix: str) -> List[BlobEntry]:
        """Immediate children of `prefix`: objects and implied folders"""
        pass

    def key_from_url(self, url: str) -> Optional[str]:
        """Inverse of `get_public_url`; None for URLs outside this store"""
        prefix = f"{self.public_base_url}/"
        if not url or not url.startswith(prefix):
            return None
        return paths.normalize(unquote(url[len(prefix):])) or None
