"""
SFTP Session - ProtocolSession over SSH using paramiko.
"""
import io
import logging
import socket
import stat
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

import paramiko

from ..constants import SFTP_READY_TIMEOUT_S
from ..core.errors import AuthenticationError
from .base import ProtocolSession, RemoteEntry, SessionCredentials, join_remote

logger = logging.getLogger(__name__)


def _entry_from_attr(path: str, name: str, attr: paramiko.SFTPAttributes) -> RemoteEntry:
    is_dir = stat.S_ISDIR(attr.st_mode) if attr.st_mode else False
    modified = None
    if attr.st_mtime:
        modified = datetime.fromtimestamp(attr.st_mtime, tz=timezone.utc)
    return RemoteEntry(
        name=name,
        path=path,
        is_dir=is_dir,
        size=0 if is_dir else (attr.st_size or 0),
        modified=modified,
    )


class SFTPSession(ProtocolSession):
    """SFTP session on a paramiko Transport."""

    protocol_name = "sftp"

    def __init__(self, ready_timeout: float = SFTP_READY_TIMEOUT_S):
        super().__init__()
        self._ready_timeout = ready_timeout
        self._transport: Optional[paramiko.Transport] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(
        self,
        config,
        credentials: SessionCredentials,
        on_authenticating: Optional[Callable[[], None]] = None,
    ) -> None:
        from ..database.models import KeyAuth

        self._config = config
        sock = socket.create_connection((config.host, config.port), timeout=config.connect_timeout)
        transport = paramiko.Transport(sock)
        transport.banner_timeout = config.connect_timeout
        transport.auth_timeout = config.connect_timeout
        self._transport = transport

        try:
            self._wait_until_ready(transport, config.connect_timeout)

            if on_authenticating:
                on_authenticating()

            if isinstance(config.auth, KeyAuth):
                if credentials.private_key is None:
                    raise AuthenticationError("No private key available for key authentication")
                transport.auth_publickey(config.username, credentials.private_key)
            else:
                self._auth_password(transport, config.username, credentials.password or "")

            if not transport.is_authenticated():
                raise AuthenticationError(
                    f"All configured authentication methods failed for {config.username}@{config.host}"
                )

            self._sftp = paramiko.SFTPClient.from_transport(transport)
            self._sftp.get_channel().settimeout(config.operation_timeout)
            if config.enable_keep_alive:
                transport.set_keepalive(int(config.keep_alive_interval))
        except BaseException:
            self.close()
            raise

        logger.info(f"SFTP connected to {config.host}:{config.port}")

    def _wait_until_ready(self, transport: paramiko.Transport, timeout: float):
        """Start SSH negotiation and wait for the transport's ready signal."""
        ready = threading.Event()
        transport.start_client(event=ready, timeout=timeout)

        if not ready.wait(self._ready_timeout):
            if transport.is_active():
                logger.warning(
                    f"SSH ready signal not received within {self._ready_timeout}s, "
                    f"transport is active - proceeding"
                )
                return
            raise socket.timeout(f"SSH negotiation timed out after {self._ready_timeout}s")

        if not transport.is_active():
            error = transport.get_exception()
            raise error or paramiko.SSHException("SSH negotiation failed")

    def _auth_password(self, transport: paramiko.Transport, username: str, password: str):
        """Password authentication, falling back to keyboard-interactive."""
        try:
            transport.auth_password(username, password)
            return
        except paramiko.BadAuthenticationType as e:
            if "keyboard-interactive" not in e.allowed_types:
                raise
            logger.debug("Password auth not allowed, trying keyboard-interactive")
        except paramiko.AuthenticationException:
            logger.debug("Password auth rejected, trying keyboard-interactive")

        def handler(title, instructions, prompts):
            return [password for _ in prompts]

        try:
            transport.auth_interactive(username, handler)
        except paramiko.AuthenticationException as e:
            raise AuthenticationError(
                f"All configured authentication methods failed for {username}: {e}"
            ) from e

    def close(self) -> None:
        if self._sftp:
            try:
                self._sftp.close()
            except Exception as e:
                logger.debug(f"Error closing SFTP channel: {e}")
            self._sftp = None

        if self._transport:
            try:
                self._transport.close()
            except Exception as e:
                logger.debug(f"Error closing SSH transport: {e}")
            self._transport = None
            logger.info("SFTP disconnected")

    def is_alive(self) -> bool:
        return (
            self._sftp is not None
            and self._transport is not None
            and self._transport.is_active()
        )

    def keep_alive(self) -> None:
        self._client().normalize(".")

    def _client(self) -> paramiko.SFTPClient:
        if not self.is_alive():
            raise ConnectionResetError("SSH session not active")
        return self._sftp

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    def list(self, path: str) -> List[RemoteEntry]:
        result = []
        for attr in self._client().listdir_attr(path):
            name = attr.filename
            if name in (".", ".."):
                continue
            result.append(_entry_from_attr(join_remote(path, name), name, attr))
        return result

    def read(self, path: str) -> bytes:
        buffer = io.BytesIO()
        self._client().getfo(path, buffer)
        return buffer.getvalue()

    def write(self, path: str, data: bytes) -> None:
        self._client().putfo(io.BytesIO(data), path)

    def remove(self, path: str, recursive: bool = False) -> None:
        sftp = self._client()
        attr = sftp.stat(path)
        if not stat.S_ISDIR(attr.st_mode or 0):
            sftp.remove(path)
            return
        if recursive:
            for child in self.list(path):
                self.remove(child.path, recursive=True)
        sftp.rmdir(path)

    def rename(self, old_path: str, new_path: str) -> None:
        self._client().rename(old_path, new_path)

    def mkdir(self, path: str) -> None:
        self._client().mkdir(path)

    def stat(self, path: str) -> RemoteEntry:
        attr = self._client().stat(path)
        name = path.rstrip("/").rsplit("/", 1)[-1] or "/"
        return _entry_from_attr(path, name, attr)

    def exists(self, path: str) -> bool:
        try:
            self._client().stat(path)
            return True
        except FileNotFoundError:
            return False
