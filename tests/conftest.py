from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from psycopg import AsyncConnection

from coursefs.core.models import ResourceRecord
from coursefs.dependencies import settings, get_blob_store, get_resource_manager
from coursefs.main import app
from coursefs.service.resource_manager import ResourceManager
from coursefs.storage.local import LocalBlobStore
from coursefs.storage.memory import MemoryBlobStore, MemoryResourceStore
from tests.helpers import COURSE_ID, make_file, make_folder


@pytest.fixture
def course_id() -> str:
    return COURSE_ID


@pytest.fixture
def resource_store() -> MemoryResourceStore:
    return MemoryResourceStore()


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def manager(resource_store: MemoryResourceStore, blob_store: MemoryBlobStore) -> ResourceManager:
    return ResourceManager(resource_store, blob_store, concurrency=4)


@pytest.fixture
def local_blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(storage_path=str(tmp_path / "blobs"), public_base_url="http://test/storage")


@pytest_asyncio.fixture
async def seeded(resource_store: MemoryResourceStore, blob_store: MemoryBlobStore) -> Dict[str, ResourceRecord]:
    """
    A small course:

        Week 1/notes.txt
        Week 1/Labs/lab1.pdf
        Week 1-Other/x.txt
        syllabus.pdf
    """
    records = [
        make_folder("Week 1"),
        make_file("Week 1/notes.txt"),
        make_folder("Week 1/Labs"),
        make_file("Week 1/Labs/lab1.pdf"),
        make_folder("Week 1-Other"),
        make_file("Week 1-Other/x.txt"),
        make_file("syllabus.pdf"),
    ]
    for record in records:
        await resource_store.upsert(record)
        if not record.is_folder:
            await blob_store.put(f"{record.course_id}/{record.path}", b"abc")
    return {record.path: record for record in records}


@pytest_asyncio.fixture
async def client(manager: ResourceManager, local_blob_store: LocalBlobStore) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async test client for FastAPI app, backed by in-memory stores
    """
    host, port = "127.0.0.1", 9000

    app.dependency_overrides[get_resource_manager] = lambda: manager
    app.dependency_overrides[get_blob_store] = lambda: local_blob_store
    try:
        async with AsyncClient(transport=ASGITransport(app=app, client=(host, port)), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def db_conn() -> AsyncGenerator[AsyncConnection, None]:
    """
    Provides a database connection for a test function.
    Skips the test when the test database is not reachable.
    """
    conn_str = f"postgres://{settings.postgres_user}:{settings.postgres_password}@{settings.postgres_host}:{settings.postgres_port}/{settings.postgres_db_test}"
    try:
        conn = await AsyncConnection.connect(conn_str, connect_timeout=2)
    except Exception as e:
        pytest.skip(f"Test database unavailable: {e}")
    try:
        yield conn
    finally:
        await conn.close()


@pytest_asyncio.fixture(scope="function")
async def db_conn_clean(db_conn: AsyncConnection) -> AsyncGenerator[AsyncConnection, None]:
    """
    Provides a database connection wrapped in a transaction that rolls back.
    Creates the resource table if migrations have not been run.
    """
    async with db_conn.transaction(force_rollback=True):
        async with db_conn.cursor() as cur:
            await cur.execute("""
                CREATE TABLE IF NOT EXISTS course_resources (
                    course_id VARCHAR(255) NOT NULL,
                    path TEXT NOT NULL,
                    name TEXT NOT NULL,
                    kind VARCHAR(20) NOT NULL DEFAULT 'file',
                    size BIGINT,
                    url TEXT,
                    mime_type VARCHAR(255),
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    updated_at TIMESTAMPTZ DEFAULT NOW(),
                    CONSTRAINT course_resources_pkey PRIMARY KEY (course_id, path)
                )
            """)
            await cur.execute("TRUNCATE TABLE course_resources")
        yield db_conn
