"""
Base Repository - Abstract base class for repositories.

Each call opens its own short-lived SQLite connection, the same way
SchemaManager does: the saved-connections list is small and read once per
command, so there is nothing to pool.
"""
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar, Generic, Iterator, List, Optional, Union
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository providing common database operations.

    Subclasses must implement:
    - table_name: Name of the database table
    - _row_to_model: Convert database row to model instance
    - _get_insert_sql / _model_to_insert_tuple: INSERT statement and values
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Args:
            db_path: SQLite database file (schema already initialized)
        """
        self.db_path = Path(db_path)

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Return the name of the database table."""

    @abstractmethod
    def _row_to_model(self, row: sqlite3.Row) -> T:
        """Convert a database row to a model instance."""

    @abstractmethod
    def _get_insert_sql(self) -> str:
        """Return the INSERT SQL statement."""

    @abstractmethod
    def _model_to_insert_tuple(self, model: T) -> tuple:
        """Convert model to tuple for INSERT."""

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection for reading. Closed when the block exits."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection inside a transaction.

        Commits on successful exit, rolls back on exception.
        """
        with self._connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def get_all(self, order_by: str = "name") -> List[T]:
        """
        Get all records from the table.

        Args:
            order_by: Column to order by (default: "name")

        Returns:
            List of model instances
        """
        with self._connection() as conn:
            rows = conn.execute(f"SELECT * FROM {self.table_name} ORDER BY {order_by}").fetchall()
            return [self._row_to_model(row) for row in rows]

    def get_by_id(self, id: str) -> Optional[T]:
        with self._connection() as conn:
            row = conn.execute(f"SELECT * FROM {self.table_name} WHERE id = ?", (id,)).fetchone()
            return self._row_to_model(row) if row else None

    def add(self, model: T) -> bool:
        """
        Add a new record.

        Returns:
            True if successful, False otherwise
        """
        try:
            with self._transaction() as conn:
                conn.execute(self._get_insert_sql(), self._model_to_insert_tuple(model))
            return True
        except sqlite3.Error as e:
            logger.error(f"Error adding {self.table_name} record: {e}")
            return False

    def delete(self, id: str) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a record was deleted, False otherwise
        """
        try:
            with self._transaction() as conn:
                cursor = conn.execute(f"DELETE FROM {self.table_name} WHERE id = ?", (id,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error deleting {self.table_name} record: {e}")
            return False

    def exists(self, id: str) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT 1 FROM {self.table_name} WHERE id = ? LIMIT 1", (id,)
            ).fetchone()
            return row is not None

    def count(self) -> int:
        with self._connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {self.table_name}").fetchone()[0]
