from typing import List, Optional, Dict, Any

from psycopg import AsyncConnection
from psycopg.rows import class_row
from psycopg.sql import SQL, Identifier
from psycopg_pool import AsyncConnectionPool

from coursefs.core import paths
from coursefs.core.models import ResourceRecord
from coursefs.repository.base import BaseRepository, db_operation, prepare_data_for_db
from coursefs.storage.base import ResourceStore


def _like_prefix(prefix: str) -> str:
    """LIKE pattern matching everything strictly below `prefix`, with wildcards escaped"""
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}/%" if escaped else "%"


class ResourceRepository(BaseRepository[ResourceRecord]):
    def __init__(self):
        super().__init__(ResourceRecord)
        self.pk_columns = ["course_id", "path"] # Composite primary key

    @db_operation
    async def get_by_pk(self, conn: AsyncConnection, course_id: str, path: str) -> Optional[ResourceRecord]:
        """Get a resource by its composite primary key (course_id, path)"""
        query = SQL("""
            SELECT * FROM {}
            WHERE course_id = %s AND path = %s
        """).format(Identifier(self.table_name))

        async with conn.cursor(row_factory=class_row(ResourceRecord)) as cur:
            await cur.execute(query, (course_id, paths.normalize(path)))
            return await cur.fetchone()

    @db_operation
    async def get_by_course(self, conn: AsyncConnection, course_id: str) -> List[ResourceRecord]:
        """Get all resources for a course"""
        query = SQL("""
            SELECT * FROM {}
            WHERE course_id = %s
            ORDER BY path
        """).format(Identifier(self.table_name))

        async with conn.cursor(row_factory=class_row(ResourceRecord)) as cur:
            await cur.execute(query, (course_id,))
            return await cur.fetchall()

    @db_operation
    async def get_by_prefix(self, conn: AsyncConnection, course_id: str, prefix: str) -> List[ResourceRecord]:
        """Get every resource strictly below `prefix`"""
        query = SQL("""
            SELECT * FROM {}
            WHERE course_id = %s AND path LIKE %s ESCAPE '\\'
            ORDER BY path
        """).format(Identifier(self.table_name))

        async with conn.cursor(row_factory=class_row(ResourceRecord)) as cur:
            await cur.execute(query, (course_id, _like_prefix(paths.normalize(prefix))))
            return await cur.fetchall()

    async def save(self, conn: AsyncConnection, record: ResourceRecord) -> ResourceRecord:
        """Insert or replace on (course_id, path)"""
        return await self.upsert(conn, record, conflict_fields=self.pk_columns)

    async def save_if_absent(self, conn: AsyncConnection, record: ResourceRecord) -> ResourceRecord:
        """Insert unless (course_id, path) exists; the existing row wins"""
        return await self.upsert(conn, record, conflict_fields=self.pk_columns, update_fields=[])

    @db_operation
    async def update(self, conn: AsyncConnection, course_id: str, path: str, data: Dict[str, Any]) -> Optional[ResourceRecord]:
        """
        Update one resource. A path change also rewrites the name so the
        two stay in step.
        """
        data = dict(data)
        if 'path' in data:
            data['path'] = paths.normalize(data['path'])
            data.setdefault('name', paths.last_segment(data['path']))
        prepared = prepare_data_for_db(data, ResourceRecord.__non_persisted_fields__)
        if not prepared:
            return await self.get_by_pk(conn, course_id, path)

        set_clause = SQL(", ").join([SQL("{} = %s").format(Identifier(k)) for k in prepared])
        query = SQL("""
            UPDATE {} SET {}, updated_at = NOW()
            WHERE course_id = %s AND path = %s
            RETURNING *
        """).format(Identifier(self.table_name), set_clause)

        async with conn.cursor(row_factory=class_row(ResourceRecord)) as cur:
            await cur.execute(query, tuple(prepared.values()) + (course_id, paths.normalize(path)))
            return await cur.fetchone()

    @db_operation
    async def delete(self, conn: AsyncConnection, course_id: str, path: str) -> bool:
        query = SQL("DELETE FROM {} WHERE course_id = %s AND path = %s").format(Identifier(self.table_name))
        async with conn.cursor() as cur:
            await cur.execute(query, (course_id, paths.normalize(path)))
            return cur.rowcount > 0

    @db_operation
    async def delete_by_prefix(self, conn: AsyncConnection, course_id: str, prefix: str) -> List[ResourceRecord]:
        query = SQL("""
            DELETE FROM {}
            WHERE course_id = %s AND path LIKE %s ESCAPE '\\'
            RETURNING *
        """).format(Identifier(self.table_name))
        async with conn.cursor(row_factory=class_row(ResourceRecord)) as cur:
            await cur.execute(query, (course_id, _like_prefix(paths.normalize(prefix))))
            return await cur.fetchall()


class PostgresResourceStore(ResourceStore):
    """
    ResourceStore over the `course_resources` table.

    Each call takes its own pooled connection, so concurrent uploads and
    cascade steps run in parallel and commit independently.
    """

    def __init__(self, pool: AsyncConnectionPool, repository: Optional[ResourceRepository] = None):
        self.pool = pool
        self.repository = repository or ResourceRepository()

    async def list(self, course_id: str) -> List[ResourceRecord]:
        async with self.pool.connection() as conn:
            return await self.repository.get_by_course(conn, course_id)

    async def get(self, course_id: str, path: str) -> Optional[ResourceRecord]:
        async with self.pool.connection() as conn:
            return await self.repository.get_by_pk(conn, course_id, path)

    async def list_by_prefix(self, course_id: str, prefix: str) -> List[ResourceRecord]:
        async with self.pool.connection() as conn:
            return await self.repository.get_by_prefix(conn, course_id, prefix)

    async def upsert(self, record: ResourceRecord) -> ResourceRecord:
        async with self.pool.connection() as conn:
            return await self.repository.save(conn, record)

    async def insert_if_absent(self, record: ResourceRecord) -> ResourceRecord:
        async with self.pool.connection() as conn:
            return await self.repository.save_if_absent(conn, record)

    async def update(self, course_id: str, path: str, patch: Dict[str, Any]) -> Optional[ResourceRecord]:
        async with self.pool.connection() as conn:
            return await self.repository.update(conn, course_id, path, patch)

    async def delete_by_path(self, course_id: str, path: str) -> bool:
        async with self.pool.connection() as conn:
            return await self.repository.delete(conn, course_id, path)

    async def delete_by_prefix(self, course_id: str, prefix: str) -> List[ResourceRecord]:
        async with self.pool.connection() as conn:
            return await self.repository.delete_by_prefix(conn, course_id, prefix)
