"""
Saved Connection Repository - CRUD operations for the ordered connection list.
"""
import json
import sqlite3
from datetime import datetime
from typing import List, Optional
import logging

from .base_repository import BaseRepository
from ..models import ConnectionConfig, SavedConnection

logger = logging.getLogger(__name__)


class SavedConnectionRepository(BaseRepository[SavedConnection]):
    """Repository for SavedConnection entities, ordered by position."""

    @property
    def table_name(self) -> str:
        return "saved_connections"

    def _row_to_model(self, row: sqlite3.Row) -> SavedConnection:
        row_dict = dict(row)
        config = ConnectionConfig.from_dict(json.loads(row_dict["config_json"]))
        return SavedConnection(
            id=row_dict["id"],
            name=row_dict["name"],
            config=config,
            position=row_dict["position"],
            created_at=row_dict["created_at"],
            updated_at=row_dict["updated_at"],
        )

    def _get_insert_sql(self) -> str:
        return """
            INSERT INTO saved_connections
            (id, name, position, protocol, host, config_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """

    def _model_to_insert_tuple(self, model: SavedConnection) -> tuple:
        return (model.id, model.name, model.position, model.config.protocol.value,
                model.config.host, json.dumps(model.config.to_dict()),
                model.created_at, model.updated_at)

    def get_all(self, order_by: str = "position, name") -> List[SavedConnection]:
        return super().get_all(order_by)

    def get_by_name(self, name: str) -> Optional[SavedConnection]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM saved_connections WHERE name = ?", (name,)
            ).fetchone()
            return self._row_to_model(row) if row else None

    def _next_position(self, conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT MAX(position) FROM saved_connections").fetchone()
        return 0 if row[0] is None else row[0] + 1

    def save(self, saved: SavedConnection) -> bool:
        """Save (insert or update) a connection. New entries go to the end of the list."""
        try:
            saved.updated_at = datetime.now().isoformat()
            with self._transaction() as conn:
                existing = conn.execute(
                    "SELECT position FROM saved_connections WHERE id = ?", (saved.id,)
                ).fetchone()
                if existing is None:
                    saved.position = self._next_position(conn)
                    conn.execute(self._get_insert_sql(), self._model_to_insert_tuple(saved))
                else:
                    conn.execute("""
                        UPDATE saved_connections
                        SET name = ?, protocol = ?, host = ?, config_json = ?, updated_at = ?
                        WHERE id = ?
                    """, (saved.name, saved.config.protocol.value, saved.config.host,
                          json.dumps(saved.config.to_dict()), saved.updated_at, saved.id))
            return True
        except sqlite3.Error as e:
            logger.error(f"Error saving connection '{saved.name}': {e}")
            return False

    def delete(self, id: str) -> bool:
        """Delete a connection and close the gap in the ordering."""
        deleted = super().delete(id)
        if deleted:
            self._compact_positions()
        return deleted

    def move(self, id: str, new_position: int) -> bool:
        """
        Move a connection to another position in the list.

        Args:
            id: Connection ID
            new_position: Target index (clamped to the list bounds)

        Returns:
            True if the connection was found and moved
        """
        items = self.get_all()
        ids = [item.id for item in items]
        if id not in ids:
            return False
        ids.remove(id)
        new_position = max(0, min(new_position, len(ids)))
        ids.insert(new_position, id)
        try:
            with self._transaction() as conn:
                conn.executemany(
                    "UPDATE saved_connections SET position = ? WHERE id = ?",
                    [(index, item_id) for index, item_id in enumerate(ids)],
                )
            return True
        except sqlite3.Error as e:
            logger.error(f"Error moving connection {id}: {e}")
            return False

    def _compact_positions(self):
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT id FROM saved_connections ORDER BY position, name"
            ).fetchall()
            conn.executemany(
                "UPDATE saved_connections SET position = ? WHERE id = ?",
                [(index, row["id"]) for index, row in enumerate(rows)],
            )
