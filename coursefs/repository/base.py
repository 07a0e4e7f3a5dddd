import functools
from typing import Generic, Type, List, Optional, Any, Dict, Set

import psycopg
from psycopg import AsyncConnection
from psycopg.rows import class_row
from psycopg.sql import SQL, Identifier
from psycopg.types.json import Jsonb

from coursefs.core.models import DBModelMixin, T # Import the mixin and TypeVar
from coursefs.errors import RecordStoreError
from coursefs.service.logging import logger


def db_operation(func):
    """Decorator for database operations; driver errors surface as RecordStoreError."""
    @functools.wraps(func)
    async def wrapper(self, conn: AsyncConnection, *args, **kwargs):
        try:
            result = await func(self, conn, *args, **kwargs)
            return result
        except psycopg.Error as e:
            logger.error(f"Error in {func.__name__}: {e}")
            raise RecordStoreError(f"{func.__name__} failed: {e}") from e
    return wrapper


def prepare_data_for_db(data: Dict[str, Any], non_persisted_fields: Optional[Set[str]] = None) -> Dict[str, Any]:
    """
    Prepare data for database insertion/update.
    Wraps JSON-like fields in Jsonb and excludes non-persisted fields.
    None values are kept so that nullable columns can be cleared.
    """
    if non_persisted_fields is None:
        non_persisted_fields = set()

    prepared_data = {}

    for k, v in data.items():
        if k in non_persisted_fields:
            continue

        if isinstance(v, (list, dict)):
            prepared_data[k] = Jsonb(v)
        else:
            # Primitive type
            prepared_data[k] = v

    return prepared_data


def _prepare_data_for_db(model_instance: DBModelMixin) -> Dict[str, Any]:
    """
    Prepare model data for database insertion/update.
    Excludes non-persisted fields and None values.
    """
    data = model_instance.model_dump_db()
    return prepare_data_for_db(data, model_instance.__non_persisted_fields__)


class BaseRepository(Generic[T]):
    """Base repository for database operations using psycopg, aware of DBModelMixin."""

    def __init__(self, model: Type[T]):
        if not issubclass(model, DBModelMixin):
            raise TypeError(f"Model {model.__name__} must inherit from DBModelMixin")
        self.model = model
        self.table_name = model.__db_table__ # Use table name from mixin
        if not self.table_name:
             raise ValueError(f"Model {model.__name__} must define __db_table__")

    @db_operation
    async def upsert(self, conn: AsyncConnection, model_instance: T,
                     conflict_fields: List[str], update_fields: Optional[List[str]] = None) -> T:
        """
        Insert a new entity or update if it already exists based on conflict fields.

        Args:
            conn: Database connection
            model_instance: Model instance to upsert
            conflict_fields: Fields to check for conflicts (e.g., ['course_id', 'path'])
            update_fields: Fields to update on conflict (defaults to all fields except conflict and non-persisted fields).
                           An empty list means DO NOTHING on conflict.

        Returns:
            The created or updated entity
        """
        prepared_data = _prepare_data_for_db(model_instance)

        if not prepared_data:
            raise ValueError("No data provided for upsert")

        # Prepare columns and values
        columns = SQL(", ").join([Identifier(k) for k in prepared_data.keys()])
        placeholders = SQL(", ").join([SQL("%s") for _ in prepared_data])
        values = tuple(prepared_data.values())

        # Prepare conflict target
        conflict_target = SQL(", ").join([Identifier(field) for field in conflict_fields])

        # Determine which fields to update on conflict
        if update_fields is None:
            # Default to all prepared fields except conflict fields and non-persisted ones (already excluded)
            update_fields = [k for k in prepared_data.keys() if k not in conflict_fields]

        # Prepare update clause
        if update_fields:
            set_clause = SQL(", ").join([
                SQL("{} = EXCLUDED.{}").format(Identifier(field), Identifier(field))
                for field in update_fields
            ])

            query = SQL("INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO UPDATE SET {}, updated_at = NOW() RETURNING *").format(
                Identifier(self.table_name),
                columns,
                placeholders,
                conflict_target,
                set_clause
            )
        else:
            # If no fields to update, do nothing on conflict
            query = SQL("INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO NOTHING RETURNING *").format(
                Identifier(self.table_name),
                columns,
                placeholders,
                conflict_target
            )

        async with conn.cursor(row_factory=class_row(self.model)) as cur:
            await cur.execute(query, values)
            entity = await cur.fetchone()

            # If DO NOTHING was used and no row was returned, fetch the existing record
            if entity is None and not update_fields:
                where_clauses = SQL(" AND ").join([
                    SQL("{} = %s").format(Identifier(field))
                    for field in conflict_fields
                ])

                conflict_values = tuple(prepared_data[field] for field in conflict_fields)

                fetch_query = SQL("SELECT * FROM {} WHERE {}").format(
                    Identifier(self.table_name),
                    where_clauses
                )

                await cur.execute(fetch_query, conflict_values)
                entity = await cur.fetchone()

            return entity

