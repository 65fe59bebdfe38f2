"""
Protocol Session Abstraction - One capability interface for SFTP and FTP/FTPS.

This module provides:
- RemoteEntry: Read-only projection of one directory listing entry
- ProtocolSession: Abstract base class every protocol variant implements
- Remote path helpers shared by the variants
"""
import logging
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, List, Optional, TYPE_CHECKING

from ..core.errors import ConflictError, UnsupportedOperationError

if TYPE_CHECKING:
    from paramiko import PKey
    from ..database.models import ConnectionConfig

logger = logging.getLogger(__name__)


def normalize_remote_path(path: str) -> str:
    """Absolute, normalized POSIX path ('' and '.' become '/')."""
    path = (path or "/").replace("\\", "/")
    if not path.startswith("/"):
        path = "/" + path
    normalized = posixpath.normpath(path)
    # normpath keeps a leading '//' as-is
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def join_remote(directory: str, name: str) -> str:
    return f"{directory.rstrip('/')}/{name}"


def is_same_or_child(path: str, parent: str) -> bool:
    """True if ``path`` equals ``parent`` or lies below it."""
    path, parent = normalize_remote_path(path), normalize_remote_path(parent)
    return path == parent or path.startswith(parent.rstrip("/") + "/")


@dataclass(frozen=True)
class RemoteEntry:
    """Represents a remote file or directory.

    ``modified`` is always a timezone-aware UTC datetime (or None when the
    server does not report it), whatever the protocol's native format.
    """
    name: str
    path: str
    is_dir: bool
    size: int
    modified: Optional[datetime] = None

    @property
    def extension(self) -> str:
        """Get file extension (lowercase, without dot)."""
        if self.is_dir:
            return ""
        return PurePosixPath(self.name).suffix.lstrip(".").lower()


@dataclass(frozen=True)
class SessionCredentials:
    """Secrets resolved for one connect call. Never logged."""
    password: Optional[str] = None
    private_key: Optional["PKey"] = None

    def __repr__(self) -> str:
        return "SessionCredentials(***)"


class ProtocolSession(ABC):
    """
    Abstract base class for one connection to a remote file server.

    Variants raise the underlying library's exceptions; classification and
    retry decisions belong to the ConnectionManager.
    """

    protocol_name = ""

    def __init__(self):
        self._config: Optional["ConnectionConfig"] = None

    @property
    def config(self) -> Optional["ConnectionConfig"]:
        return self._config

    @abstractmethod
    def connect(
        self,
        config: "ConnectionConfig",
        credentials: SessionCredentials,
        on_authenticating: Optional[Callable[[], None]] = None,
    ) -> None:
        """Open the connection and authenticate.

        Args:
            config: Connection settings
            credentials: Resolved secrets
            on_authenticating: Called once the transport is up and
                authentication starts
        """

    @abstractmethod
    def list(self, path: str) -> List[RemoteEntry]:
        """List a directory. '.' and '..' are never returned."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Read a whole file."""

    @abstractmethod
    def write(self, path: str, data: bytes) -> None:
        """Create or replace a file."""

    @abstractmethod
    def remove(self, path: str, recursive: bool = False) -> None:
        """Delete a file, or a directory (with its content if recursive)."""

    @abstractmethod
    def rename(self, old_path: str, new_path: str) -> None:
        """Rename or move a file or directory."""

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create one directory."""

    @abstractmethod
    def stat(self, path: str) -> RemoteEntry:
        """Describe one path.

        Raises:
            NotFoundError (or the library's not-found error) if missing
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if a remote path exists."""

    @abstractmethod
    def is_alive(self) -> bool:
        """Cheap local check that the session is still usable."""

    def probe(self) -> bool:
        """Liveness probe used before trusting an existing session."""
        return self.is_alive()

    @abstractmethod
    def keep_alive(self) -> None:
        """Send a protocol no-op. Raises if the server does not answer."""

    @abstractmethod
    def close(self) -> None:
        """Close the connection. Never raises."""

    def copy(self, src: str, dst: str, recursive: bool = False) -> int:
        """
        Copy a file or directory on the server by reading and re-writing it.

        Neither protocol has a server-side copy command.

        Args:
            src: Source path
            dst: Target path
            recursive: Required to copy a directory

        Returns:
            Number of files copied
        """
        src, dst = normalize_remote_path(src), normalize_remote_path(dst)
        entry = self.stat(src)
        if not entry.is_dir:
            self.write(dst, self.read(src))
            return 1

        if not recursive:
            raise UnsupportedOperationError(
                f"'{src}' is a directory; copy it recursively", path=src
            )
        if is_same_or_child(dst, src):
            raise UnsupportedOperationError(
                f"Cannot copy directory '{src}' into itself", path=dst
            )
        return self._copy_tree(src, dst)

    def _copy_tree(self, src: str, dst: str) -> int:
        self.makedirs(dst)
        copied = 0
        for child in self.list(src):
            target = join_remote(dst, child.name)
            if child.is_dir:
                copied += self._copy_tree(child.path, target)
            else:
                self.write(target, self.read(child.path))
                copied += 1
        logger.debug(f"Copied directory {src} -> {dst} ({copied} files)")
        return copied

    def makedirs(self, path: str) -> None:
        """Create a directory, tolerating one that already exists."""
        try:
            self.mkdir(path)
        except Exception:
            if self.exists(path):
                return
            raise

    def require_absent(self, path: str) -> None:
        """Raise ConflictError if ``path`` exists."""
        if self.exists(path):
            raise ConflictError(
                f"'{path}' already exists",
                suggestion="Confirm the overwrite or choose another name.",
                path=path,
            )
