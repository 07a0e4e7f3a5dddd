from functools import lru_cache

from psycopg_pool import AsyncConnectionPool

from coursefs.config import get_config
from coursefs.repository import PostgresResourceStore, resource_repository
from coursefs.service.resource_manager import ResourceManager
from coursefs.storage.base import BlobStore, ResourceStore
from coursefs.storage.local import LocalBlobStore
from coursefs.storage.memory import MemoryResourceStore


settings = get_config()

# Create a connection pool for database access
db_pool = AsyncConnectionPool(
    str(settings.database_url),
    min_size=1,
    max_size=max(2, settings.upload_concurrency),
    open=False
)


@lru_cache
def get_resource_store() -> ResourceStore:
    """Singleton metadata store for the configured backend"""
    if settings.resource_backend == "memory":
        return MemoryResourceStore()
    return PostgresResourceStore(db_pool, resource_repository)


@lru_cache
def get_blob_store() -> BlobStore:
    return LocalBlobStore(storage_path=settings.storage_path, public_base_url=settings.public_base_url)


@lru_cache
def get_resource_manager() -> ResourceManager:
    """
    Dependency for the singleton ResourceManager.

    A single instance remembers which course storage roots it has already
    checked, so the marker lookup happens once per course per process.
    """
    return ResourceManager(get_resource_store(), get_blob_store(), concurrency=settings.upload_concurrency)
