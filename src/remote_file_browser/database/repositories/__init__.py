"""
Database Repositories Package
"""

from .base_repository import BaseRepository
from .saved_connection_repository import SavedConnectionRepository

__all__ = [
    'BaseRepository',
    'SavedConnectionRepository',
]
