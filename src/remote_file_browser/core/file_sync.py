"""
File Sync - Local copies of remote files and the editor save bridge

Keeps a registry ``local cache path -> (connection identity, remote path)``
for every remote file opened for editing. When the editor saves one of those
files, the content is uploaded through the ConnectionManager, but only if
the file belongs to the connection that is currently active.
"""
import logging
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from ..database.models import ConnectionIdentity
from ..protocols.base import is_same_or_child, normalize_remote_path
from ..utils.cache_paths import local_path_for
from .connection_manager import ConnectionManager
from .errors import ConflictError, NotFoundError, RemoteConnectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenFile:
    identity: ConnectionIdentity
    remote_path: str


class RemoteFileSync:
    """
    Registry of remote files opened locally.

    Args:
        manager: The connection manager used for downloads and uploads
        cache_base: Base folder for the cache root (system temp dir by default)
    """

    def __init__(self, manager: ConnectionManager, cache_base: Optional[Union[str, Path]] = None):
        self._manager = manager
        self._cache_base = cache_base
        self._files: Dict[Path, OpenFile] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(local_path: Union[str, Path]) -> Path:
        return Path(local_path).resolve()

    def _identity(self) -> ConnectionIdentity:
        identity = self._manager.identity
        if identity is None:
            raise RemoteConnectionError(
                "Not connected to a remote server",
                suggestion="Connect to a server first.",
            )
        return identity

    def open_remote_file(self, remote_path: str, refresh: bool = True) -> Path:
        """
        Download a remote file into the connection's cache directory.

        Args:
            remote_path: File to open
            refresh: Download even if a local copy already exists

        Returns:
            Path of the local copy
        """
        identity = self._identity()
        remote_path = normalize_remote_path(remote_path)
        local_path = local_path_for(identity, remote_path, self._cache_base)

        if refresh or not local_path.exists():
            data = self._manager.read_file(remote_path)
            local_path.parent.mkdir(parents=True, exist_ok=True)
            local_path.write_bytes(data)
            logger.debug(f"Downloaded {remote_path} to {local_path}")

        with self._lock:
            self._files[self._key(local_path)] = OpenFile(identity, remote_path)
        return local_path

    def remote_path_for(self, local_path: Union[str, Path]) -> Optional[str]:
        with self._lock:
            entry = self._files.get(self._key(local_path))
        return entry.remote_path if entry else None

    def registered_files(self) -> Dict[Path, OpenFile]:
        with self._lock:
            return dict(self._files)

    def on_document_saved(self, local_path: Union[str, Path], content: Union[str, bytes]) -> bool:
        """
        Upload a saved document back to its remote file.

        Returns:
            False if the document is not a registered remote file, True once uploaded

        Raises:
            ConflictError: The file belongs to another connection than the active one
        """
        with self._lock:
            entry = self._files.get(self._key(local_path))
        if entry is None:
            return False

        current = self._manager.identity
        if current != entry.identity:
            connected = current.key if current else "no server"
            raise ConflictError(
                f"'{entry.remote_path}' belongs to {entry.identity.key} but the active "
                f"connection is {connected}; the file was not uploaded",
                suggestion=f"Connect to {entry.identity.key} and save again.",
                path=entry.remote_path,
            )

        self._manager.write_file(entry.remote_path, content)
        logger.info(f"Uploaded saved document to {entry.remote_path}")
        return True

    def relocate(self, old_remote: str, new_remote: str) -> int:
        """
        Follow a remote rename or move: move cached copies and update the registry.

        Files below a renamed directory are moved as well.

        Returns:
            Number of registered files relocated
        """
        identity = self._identity()
        old_remote, new_remote = normalize_remote_path(old_remote), normalize_remote_path(new_remote)
        moved = 0

        with self._lock:
            for key, entry in list(self._files.items()):
                if entry.identity != identity or not is_same_or_child(entry.remote_path, old_remote):
                    continue
                suffix = entry.remote_path[len(old_remote.rstrip("/")):]
                target_remote = normalize_remote_path(new_remote.rstrip("/") + suffix)
                target_local = local_path_for(identity, target_remote, self._cache_base)
                if key.exists():
                    target_local.parent.mkdir(parents=True, exist_ok=True)
                    shutil.move(str(key), str(target_local))
                del self._files[key]
                self._files[self._key(target_local)] = OpenFile(identity, target_remote)
                moved += 1

        if moved:
            logger.debug(f"Relocated {moved} cached file(s) from {old_remote} to {new_remote}")
        return moved

    def push_local_file(
        self,
        local_path: Union[str, Path],
        remote_path: str,
        overwrite: bool = False,
    ) -> None:
        """
        Upload any local file to the server.

        Raises:
            NotFoundError: The local file does not exist
            ConflictError: The remote file exists and ``overwrite`` is False
        """
        local_path = Path(local_path)
        if not local_path.is_file():
            raise NotFoundError(f"Local file not found: {local_path}", path=str(local_path))

        if not overwrite and self._manager.file_exists(remote_path):
            raise ConflictError(
                f"'{remote_path}' already exists on the server",
                suggestion="Confirm the overwrite or choose another name.",
                path=remote_path,
            )
        self._manager.write_file(remote_path, local_path.read_bytes())
        logger.info(f"Pushed {local_path} to {remote_path}")

    def forget_connection(self, identity: ConnectionIdentity) -> int:
        """Drop every registration of one connection and return how many were dropped."""
        with self._lock:
            keys = [key for key, entry in self._files.items() if entry.identity == identity]
            for key in keys:
                del self._files[key]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._files.clear()
