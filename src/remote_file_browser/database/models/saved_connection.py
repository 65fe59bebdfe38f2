"""
SavedConnection model - A persisted ConnectionConfig with ordering
"""
from dataclasses import dataclass
from datetime import datetime
import uuid

from .connection_config import ConnectionConfig


@dataclass
class SavedConnection:
    """Saved connection entry.

    Credentials are stored separately in the system keyring via CredentialManager.
    """
    name: str
    config: ConnectionConfig
    id: str = None
    position: int = 0
    created_at: str = None
    updated_at: str = None

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())
        if not self.name:
            self.name = self.config.name or self.config.identity.key
        if not self.created_at:
            self.created_at = datetime.now().isoformat()
        if not self.updated_at:
            self.updated_at = datetime.now().isoformat()

    @property
    def display_name(self) -> str:
        return f"[{self.config.protocol.value.upper()}] {self.name}"
