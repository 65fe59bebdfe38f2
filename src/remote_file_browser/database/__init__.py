"""
Saved-connections storage (SQLite).
"""
from pathlib import Path

from .repositories import SavedConnectionRepository
from .schema_manager import SchemaManager


def open_repository(db_path: Path) -> SavedConnectionRepository:
    """Initialize the schema at ``db_path`` and return a repository on it."""
    SchemaManager(db_path).initialize()
    return SavedConnectionRepository(db_path)


__all__ = ["SavedConnectionRepository", "SchemaManager", "open_repository"]
