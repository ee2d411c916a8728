"""Base repository pattern for database operations.

Provides common CRUD operations over PostgreSQL, with an in-memory
backend used when no connection manager is configured (development
and tests). Subclasses only describe how rows map to entities.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from psycopg2 import errors as pg_errors

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


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common operations.

    Subclasses implement entity-specific logic while inheriting:
    - Connection management
    - Error translation (unique violations become DuplicateError)
    - Logging patterns
    - In-memory fallback storage
    """

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager],
        table_name: str,
        key_column: str = "id",
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager, or None for
                the in-memory backend
            table_name: Name of the database table
            key_column: Primary key column
        """
        self.connection_manager = connection_manager
        self.table_name = table_name
        self.key_column = key_column
        self._memory: Dict[str, T] = {}

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={
                "table_name": table_name,
                "backend": "memory" if self.uses_memory else "postgresql",
            }
        )

    @property
    def uses_memory(self) -> bool:
        """Whether this repository stores rows in process memory."""
        return self.connection_manager is None

    @abstractmethod
    def _row_to_entity(self, row: Dict[str, Any]) -> T:
        """Convert database row to entity.

        Args:
            row: Database row keyed by column name

        Returns:
            Entity instance
        """
        pass

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert entity to database parameters.

        Args:
            entity: Entity instance

        Returns:
            Dictionary of column names to values
        """
        pass

    def _entity_key(self, entity: T) -> str:
        return str(self._entity_to_params(entity)[self.key_column])

    def _check_memory_constraints(self, entity: T) -> None:
        """Hook for unique constraints beyond the primary key."""
        pass

    def _fetch_one(self, query: str, params: Iterable[Any]) -> Optional[Dict[str, Any]]:
        with self.connection_manager.transaction() as cur:
            cur.execute(query, tuple(params))
            return cur.fetchone()

    def _fetch_all(self, query: str, params: Iterable[Any]) -> List[Dict[str, Any]]:
        with self.connection_manager.transaction() as cur:
            cur.execute(query, tuple(params))
            return list(cur.fetchall())

    def _execute(self, query: str, params: Iterable[Any]) -> int:
        """Run a write statement in its own transaction.

        Returns:
            Number of affected rows
        """
        with self.connection_manager.transaction() as cur:
            cur.execute(query, tuple(params))
            return cur.rowcount

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID.

        Args:
            entity_id: Entity identifier

        Returns:
            Entity if found, None otherwise
        """
        if self.uses_memory:
            return self._memory.get(entity_id)

        row = self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE {self.key_column} = %s",
            (entity_id,)
        )
        if row is None:
            return None
        return self._row_to_entity(row)

    def find_by_ids(self, entity_ids: List[str]) -> List[T]:
        """Batch lookup in a single round trip.

        Args:
            entity_ids: Identifiers to fetch

        Returns:
            Entities that exist, in no particular order
        """
        if not entity_ids:
            return []

        if self.uses_memory:
            return [self._memory[i] for i in entity_ids if i in self._memory]

        rows = self._fetch_all(
            f"SELECT * FROM {self.table_name} WHERE {self.key_column} = ANY(%s)",
            (list(entity_ids),)
        )
        return [self._row_to_entity(row) for row in rows]

    def find_all(
        self,
        limit: int = 100,
        offset: int = 0,
    ) -> List[T]:
        """Find all entities with pagination, newest first.

        Args:
            limit: Maximum entities to return
            offset: Number of entities to skip

        Returns:
            List of entities
        """
        if self.uses_memory:
            ordered = sorted(
                self._memory.values(),
                key=lambda e: self._entity_to_params(e).get("created_at"),
                reverse=True,
            )
            return ordered[offset:offset + limit]

        rows = self._fetch_all(
            f"SELECT * FROM {self.table_name} ORDER BY created_at DESC LIMIT %s OFFSET %s",
            (limit, offset)
        )
        return [self._row_to_entity(row) for row in rows]

    def insert(self, entity: T) -> T:
        """Insert a new entity.

        Args:
            entity: Entity to insert

        Returns:
            Stored entity

        Raises:
            DuplicateError: If a unique constraint is violated
            RepositoryError: If the write fails for any other reason
        """
        if self.uses_memory:
            key = self._entity_key(entity)
            if key in self._memory:
                raise DuplicateError(f"{self.table_name}: {key} already exists")
            self._check_memory_constraints(entity)
            self._memory[key] = entity
            return entity

        params = self._entity_to_params(entity)
        columns = list(params.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        query = (
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )

        try:
            with self.connection_manager.transaction() as cur:
                cur.execute(query, tuple(params.values()))
                row = cur.fetchone()
        except pg_errors.UniqueViolation as e:
            raise DuplicateError(f"{self.table_name}: unique constraint violated") from e
        except Exception as e:
            logger.error(
                "REPOSITORY_INSERT_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Failed to insert into {self.table_name}: {e}") from e

        return self._row_to_entity(row) if row else entity

    def save(self, entity: T) -> T:
        """Save entity (insert or update).

        Args:
            entity: Entity to save

        Returns:
            Saved entity
        """
        if self.uses_memory:
            self._memory[self._entity_key(entity)] = entity
            return entity

        params = self._entity_to_params(entity)
        columns = list(params.keys())
        placeholders = ["%s"] * len(columns)

        update_clause = ", ".join(
            f"{col} = EXCLUDED.{col}" for col in columns if col != self.key_column
        )

        query = f"""
            INSERT INTO {self.table_name} ({", ".join(columns)})
            VALUES ({", ".join(placeholders)})
            ON CONFLICT ({self.key_column}) DO UPDATE SET {update_clause}
            RETURNING *
        """

        with self.connection_manager.transaction() as cur:
            cur.execute(query, tuple(params.values()))
            row = cur.fetchone()

        if row:
            return self._row_to_entity(row)
        return entity

    def delete(self, entity_id: str) -> bool:
        """Delete entity by ID.

        Args:
            entity_id: Entity identifier

        Returns:
            True if deleted, False if not found
        """
        if self.uses_memory:
            return self._memory.pop(entity_id, None) is not None

        affected = self._execute(
            f"DELETE FROM {self.table_name} WHERE {self.key_column} = %s",
            (entity_id,)
        )
        return affected > 0

    def count(self) -> int:
        """Count total entities.

        Returns:
            Total count
        """
        if self.uses_memory:
            return len(self._memory)

        row = self._fetch_one(f"SELECT COUNT(*) AS total FROM {self.table_name}", ())
        return row["total"] if row else 0
