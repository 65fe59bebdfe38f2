"""
Data models for Remote File Browser
"""
from .connection_config import (
    AnonymousAuth,
    ConnectionConfig,
    ConnectionIdentity,
    KeyAuth,
    PasswordAuth,
    Protocol,
    TlsMode,
)
from .saved_connection import SavedConnection

__all__ = [
    "AnonymousAuth",
    "ConnectionConfig",
    "ConnectionIdentity",
    "KeyAuth",
    "PasswordAuth",
    "Protocol",
    "SavedConnection",
    "TlsMode",
]
