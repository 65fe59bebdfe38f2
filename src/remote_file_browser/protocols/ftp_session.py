"""
FTP Session - ProtocolSession over FTP and FTPS using ftplib.

FTPS comes in two flavours:
- explicit: plain connect on port 21, then AUTH TLS before login
- implicit: TLS from the first byte, usually on port 990
"""
import errno
import ftplib
import io
import logging
import ssl
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .base import ProtocolSession, RemoteEntry, SessionCredentials, join_remote, normalize_remote_path

logger = logging.getLogger(__name__)

# Reply codes meaning "command not implemented / not understood".
_UNSUPPORTED_CODES = ("500", "501", "502", "504")
_MISSING_CODES = ("550", "450")


class ImplicitFTP_TLS(ftplib.FTP_TLS):
    """FTP_TLS that wraps the control socket in TLS as soon as it is created."""

    def __init__(self, *args, **kwargs):
        self._sock = None
        super().__init__(*args, **kwargs)

    @property
    def sock(self):
        return self._sock

    @sock.setter
    def sock(self, value):
        if value is not None and not isinstance(value, ssl.SSLSocket):
            value = self.context.wrap_socket(value, server_hostname=self.host)
        self._sock = value


def _reply_code(error: Exception) -> str:
    return str(error)[:3]


def _parse_ftp_time(value: str) -> Optional[datetime]:
    """Parse an MLSD/MDTM timestamp (YYYYMMDDHHMMSS[.fff], always UTC)."""
    try:
        return datetime.strptime(value[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _parse_facts(text: str) -> Dict[str, str]:
    facts = {}
    for fact in text.split(";"):
        if "=" in fact:
            key, _, value = fact.partition("=")
            facts[key.strip().lower()] = value.strip()
    return facts


def _entry_from_facts(path: str, name: str, facts: Dict[str, str]) -> RemoteEntry:
    is_dir = facts.get("type", "").lower() in ("dir", "cdir", "pdir")
    size = 0
    if not is_dir:
        try:
            size = int(facts.get("size", 0))
        except ValueError:
            size = 0
    return RemoteEntry(
        name=name,
        path=path,
        is_dir=is_dir,
        size=size,
        modified=_parse_ftp_time(facts["modify"]) if "modify" in facts else None,
    )


class FTPSession(ProtocolSession):
    """
    FTP / FTPS session on ftplib.

    ftplib connections are not thread-safe, so every command runs under one
    lock. Before each operation the control connection is checked with NOOP
    and silently re-opened if the server dropped it.
    """

    protocol_name = "ftp"

    def __init__(self):
        super().__init__()
        self._ftp: Optional[ftplib.FTP] = None
        self._credentials: Optional[SessionCredentials] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(
        self,
        config,
        credentials: SessionCredentials,
        on_authenticating: Optional[Callable[[], None]] = None,
    ) -> None:
        with self._lock:
            self._config = config
            self._credentials = credentials
            self._open(on_authenticating)

    def _create_client(self) -> ftplib.FTP:
        from ..database.models import TlsMode

        tls_mode = self._config.tls_mode
        if tls_mode == TlsMode.IMPLICIT:
            return ImplicitFTP_TLS()
        if tls_mode == TlsMode.EXPLICIT:
            return ftplib.FTP_TLS()
        return ftplib.FTP()

    def _open(self, on_authenticating: Optional[Callable[[], None]] = None):
        config = self._config
        ftp = self._create_client()
        try:
            ftp.connect(config.host, config.port, timeout=config.connect_timeout)
            if on_authenticating:
                on_authenticating()

            password = self._credentials.password if self._credentials else None
            if config.is_anonymous:
                password = password or config.auth.password
            # FTP_TLS.login sends AUTH TLS first when the socket is still plain
            ftp.login(config.username, password or "")

            if isinstance(ftp, ftplib.FTP_TLS):
                ftp.prot_p()  # Switch to secure data connection
            ftp.set_pasv(config.passive_mode)
            ftp.timeout = config.operation_timeout
            ftp.sock.settimeout(config.operation_timeout)
        except BaseException:
            try:
                ftp.close()
            except Exception as e:
                logger.debug(f"Error closing failed FTP connection: {e}")
            raise

        self._ftp = ftp
        label = "FTPS" if isinstance(ftp, ftplib.FTP_TLS) else "FTP"
        logger.info(f"{label} connected to {config.host}:{config.port}")

    def _ensure_control(self) -> ftplib.FTP:
        """Verify the control connection and reconnect if it was dropped."""
        if self._config is None:
            raise ConnectionResetError("FTP session not connected")

        if self._ftp is not None and self._ftp.sock is not None:
            try:
                self._ftp.voidcmd("NOOP")
                return self._ftp
            except ftplib.all_errors as e:
                logger.warning(f"FTP control connection lost ({e}), reconnecting")

        self._close_client()
        self._open()
        return self._ftp

    def _close_client(self):
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except ftplib.all_errors:
            try:
                self._ftp.close()
            except Exception as e:
                logger.debug(f"Error closing FTP connection: {e}")
        finally:
            self._ftp = None

    def close(self) -> None:
        with self._lock:
            had_client = self._ftp is not None
            self._close_client()
            self._config = None
            self._credentials = None
        if had_client:
            logger.info("FTP disconnected")

    def is_alive(self) -> bool:
        ftp = self._ftp
        return ftp is not None and ftp.sock is not None

    def probe(self) -> bool:
        """NOOP on the control connection."""
        try:
            self.keep_alive()
            return True
        except ftplib.all_errors as e:
            logger.debug(f"FTP liveness probe failed: {e}")
            return False

    def keep_alive(self) -> None:
        with self._lock:
            if not self.is_alive():
                raise ConnectionResetError("FTP control connection closed")
            self._ftp.voidcmd("NOOP")

    # ------------------------------------------------------------------
    # File operations
    # ------------------------------------------------------------------

    def list(self, path: str) -> List[RemoteEntry]:
        with self._lock:
            return self._list_any(self._ensure_control(), path)

    def _list_mlsd(self, ftp: ftplib.FTP, path: str) -> List[RemoteEntry]:
        result = []
        for name, facts in ftp.mlsd(path):
            if name in (".", "..") or facts.get("type") in ("cdir", "pdir"):
                continue
            result.append(_entry_from_facts(join_remote(path, name), name, facts))
        return result

    def _list_nlst(self, ftp: ftplib.FTP, path: str) -> List[RemoteEntry]:
        result = []
        for name in ftp.nlst(path):
            if "/" in name:
                # Full path returned, extract name
                name = name.rsplit("/", 1)[-1]
            if name in (".", "..", ""):
                continue
            result.append(self._probe_entry(ftp, join_remote(path, name), name))
        return result

    def _probe_entry(self, ftp: ftplib.FTP, path: str, name: str) -> RemoteEntry:
        """Describe a path without MLSD/MLST: CWD for directories, SIZE and MDTM for files."""
        current = ftp.pwd()
        try:
            ftp.cwd(path)
            ftp.cwd(current)
            return RemoteEntry(name=name, path=path, is_dir=True, size=0)
        except ftplib.error_perm:
            pass

        size = ftp.size(path) or 0
        modified = None
        try:
            reply = ftp.sendcmd(f"MDTM {path}")
            modified = _parse_ftp_time(reply[4:].strip())
        except ftplib.error_perm:
            pass
        return RemoteEntry(name=name, path=path, is_dir=False, size=size, modified=modified)

    def read(self, path: str) -> bytes:
        with self._lock:
            ftp = self._ensure_control()
            buffer = io.BytesIO()
            ftp.retrbinary(f"RETR {path}", buffer.write)
            return buffer.getvalue()

    def write(self, path: str, data: bytes) -> None:
        with self._lock:
            ftp = self._ensure_control()
            ftp.storbinary(f"STOR {path}", io.BytesIO(data))

    def remove(self, path: str, recursive: bool = False) -> None:
        with self._lock:
            ftp = self._ensure_control()
            self._remove(ftp, path, recursive)

    def _remove(self, ftp: ftplib.FTP, path: str, recursive: bool):
        entry = self._stat(ftp, path)
        if not entry.is_dir:
            ftp.delete(path)
            return
        if recursive:
            for child in self._list_any(ftp, path):
                self._remove(ftp, child.path, recursive=True)
        ftp.rmd(path)

    def _list_any(self, ftp: ftplib.FTP, path: str) -> List[RemoteEntry]:
        try:
            return self._list_mlsd(ftp, path)
        except ftplib.error_perm as e:
            if _reply_code(e) not in _UNSUPPORTED_CODES:
                raise
            logger.debug(f"MLSD not supported ({e}), falling back to NLST")
            return self._list_nlst(ftp, path)

    def rename(self, old_path: str, new_path: str) -> None:
        with self._lock:
            self._ensure_control().rename(old_path, new_path)

    def mkdir(self, path: str) -> None:
        with self._lock:
            self._ensure_control().mkd(path)

    def stat(self, path: str) -> RemoteEntry:
        with self._lock:
            return self._stat(self._ensure_control(), path)

    def _stat(self, ftp: ftplib.FTP, path: str) -> RemoteEntry:
        path = normalize_remote_path(path)
        name = path.rsplit("/", 1)[-1] or "/"
        if path == "/":
            return RemoteEntry(name="/", path="/", is_dir=True, size=0)

        try:
            reply = ftp.sendcmd(f"MLST {path}")
        except ftplib.error_perm as e:
            code = _reply_code(e)
            if code in _MISSING_CODES:
                raise FileNotFoundError(errno.ENOENT, "No such file or directory", path) from e
            if code not in _UNSUPPORTED_CODES:
                raise
            try:
                return self._probe_entry(ftp, path, name)
            except ftplib.error_perm as probe_error:
                raise FileNotFoundError(errno.ENOENT, "No such file or directory", path) from probe_error

        # 250-Listing <path>\r\n type=file;size=12;modify=...; <path>\r\n250 End
        for line in reply.splitlines()[1:]:
            if line.startswith(" "):
                facts_text = line.strip().split(" ", 1)[0]
                return _entry_from_facts(path, name, _parse_facts(facts_text))
        return self._probe_entry(ftp, path, name)

    def exists(self, path: str) -> bool:
        try:
            self.stat(path)
            return True
        except FileNotFoundError:
            return False
