"""
Remote File Browser - Self-healing SFTP / FTP / FTPS connection layer
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("remote-file-browser")
except PackageNotFoundError:
    # Package not installed
    __version__ = "0.1.0"

from .core.connection_manager import ConnectionManager
from .core.file_sync import RemoteFileSync
from .database.models import (
    AnonymousAuth,
    ConnectionConfig,
    KeyAuth,
    PasswordAuth,
    Protocol,
    TlsMode,
)

__all__ = [
    "AnonymousAuth",
    "ConnectionConfig",
    "ConnectionManager",
    "KeyAuth",
    "PasswordAuth",
    "Protocol",
    "RemoteFileSync",
    "TlsMode",
    "__version__",
]
