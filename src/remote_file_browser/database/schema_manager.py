"""
Schema Manager Module - Saved-connections database schema and migrations.
"""
import sqlite3
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class SchemaManager:
    """
    Manages the SQLite schema of the saved-connections database.

    The schema version is kept in ``PRAGMA user_version``.
    """

    # Current schema version (increment when adding migrations)
    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self):
        """
        Create tables and run migrations.

        Safe to call on every start.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS saved_connections (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    position INTEGER NOT NULL DEFAULT 0,
                    protocol TEXT NOT NULL,
                    host TEXT NOT NULL,
                    config_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_saved_connections_position
                ON saved_connections(position)
            """)
            self._migrate(cursor)
            conn.commit()
            logger.debug(f"Schema initialized at {self.db_path}")
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Error initializing schema: {e}")
            raise
        finally:
            conn.close()

    def _migrate(self, cursor: sqlite3.Cursor):
        current = cursor.execute("PRAGMA user_version").fetchone()[0]
        if current < self.SCHEMA_VERSION:
            logger.info(f"Migrating schema from version {current} to {self.SCHEMA_VERSION}")
            cursor.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")

    def get_version(self) -> int:
        conn = self._get_connection()
        try:
            return conn.execute("PRAGMA user_version").fetchone()[0]
        finally:
            conn.close()
