"""Base repository for PostgreSQL-backed records.

Subclasses map one record type to one table. Updates that must not race
(signal status transitions, Safe Escape re-enable) go through
``compare_and_set`` which only writes when the row still carries the
expected values.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in database."""
    pass


class DuplicateError(RepositoryError):
    """Duplicate entity already exists."""
    pass


class ConcurrentModificationError(RepositoryError):
    """Row changed between read and conditional write."""
    pass


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common operations."""

    columns: tuple = ()

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
    ):
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _row_to_entity(self, row: tuple) -> T:
        """Convert a row, in ``columns`` order, to an entity."""
        pass

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert an entity to a column -> value mapping."""
        pass

    def _select(self) -> str:
        return f"SELECT {', '.join(self.columns)} FROM {self.table_name}"

    def find_by_id(self, entity_id: str) -> Optional[T]:
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"{self._select()} WHERE id = %s", (entity_id,))
                row = cur.fetchone()

        return self._row_to_entity(row) if row is not None else None

    def find_where(self, clause: str, params: tuple = ()) -> List[T]:
        """Find entities matching a SQL ``WHERE`` clause."""
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"{self._select()} WHERE {clause}", params)
                rows = cur.fetchall()

        return [self._row_to_entity(row) for row in rows]

    def insert(self, entity: T) -> T:
        """Insert a new row.

        Raises:
            DuplicateError: If a row with the same id exists
        """
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        placeholders = ", ".join(["%s"] * len(columns))

        query = (
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) ON CONFLICT (id) DO NOTHING"
        )

        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, list(params.values()))
                inserted = cur.rowcount
            conn.commit()

        if inserted == 0:
            raise DuplicateError(f"{self.table_name} row {params.get('id')} already exists")
        return entity

    def save(self, entity: T) -> T:
        """Insert or overwrite a row (upsert)."""
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        update_clause = ", ".join(f"{col} = EXCLUDED.{col}" for col in columns if col != "id")

        query = (
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) ON CONFLICT (id) DO UPDATE SET {update_clause}"
        )

        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, list(params.values()))
            conn.commit()

        return entity

    def compare_and_set(
        self,
        entity_id: str,
        expected: Dict[str, Any],
        changes: Dict[str, Any],
    ) -> bool:
        """Update ``changes`` only if the row still matches ``expected``.

        Args:
            entity_id: Row identifier
            expected: Column values the row must currently hold
            changes: Column values to write

        Returns:
            True if the row was updated, False if it had moved on
        """
        set_clause = ", ".join(f"{col} = %s" for col in changes)
        where_clause = " AND ".join(
            f"{col} IS NULL" if value is None else f"{col} = %s"
            for col, value in expected.items()
        )
        params = list(changes.values()) + [entity_id] + [
            value for value in expected.values() if value is not None
        ]

        query = f"UPDATE {self.table_name} SET {set_clause} WHERE id = %s"
        if where_clause:
            query += f" AND {where_clause}"

        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                updated = cur.rowcount
            conn.commit()

        return updated > 0

    def delete(self, entity_id: str) -> bool:
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"DELETE FROM {self.table_name} WHERE id = %s", (entity_id,))
                deleted = cur.rowcount
            conn.commit()

        return deleted > 0

    def count(self) -> int:
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) FROM {self.table_name}")
                row = cur.fetchone()

        return row[0] if row else 0
