"""
ConnectionConfig model - SFTP / FTP / FTPS connection settings

Secrets (passwords, key passphrases) are never serialized; they live in the
system keyring via CredentialManager and are resolved at connect time.
"""
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from ...constants import (
    ANONYMOUS_PASSWORD,
    ANONYMOUS_USERNAME,
    FTP_CONNECT_TIMEOUT_S,
    FTP_DEFAULT_PORT,
    FTPS_IMPLICIT_DEFAULT_PORT,
    IDLE_TIMEOUT_S,
    KEEP_ALIVE_INTERVAL_S,
    MAX_RETRIES,
    OPERATION_TIMEOUT_S,
    RETRY_BASE_DELAY_S,
    SFTP_CONNECT_TIMEOUT_S,
    SFTP_DEFAULT_PORT,
)
from ...core.errors import ConfigurationError


class Protocol(str, Enum):
    """Supported wire protocols."""
    SFTP = "sftp"
    FTP = "ftp"


class TlsMode(str, Enum):
    """FTPS mode (FTP only)."""
    OFF = "off"
    EXPLICIT = "explicit"   # AUTH TLS after connecting on the plain port
    IMPLICIT = "implicit"   # TLS from the first byte, usually port 990


@dataclass(frozen=True)
class PasswordAuth:
    """Password login. ``None`` means: look the password up in the keyring."""
    password: Optional[str] = field(default=None, repr=False)
    kind = "password"


@dataclass(frozen=True)
class KeyAuth:
    """Private key login (SFTP only). OpenSSH and PuTTY (.ppk) keys are accepted."""
    key_path: str = ""
    passphrase: Optional[str] = field(default=None, repr=False)
    kind = "key"


@dataclass(frozen=True)
class AnonymousAuth:
    """Anonymous FTP login."""
    password: str = ANONYMOUS_PASSWORD
    kind = "anonymous"


Auth = Union[PasswordAuth, KeyAuth, AnonymousAuth]

_URL_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def clean_host(host: str) -> str:
    """Strip whitespace, a leading http(s):// and trailing slashes from a host."""
    host = _URL_SCHEME.sub("", (host or "").strip())
    return host.rstrip("/")


@dataclass(frozen=True)
class ConnectionIdentity:
    """
    Stable identity of a connection: (protocol, username, host, port).

    The three keys derived from it are views, never stored separately.
    """
    protocol: Protocol
    username: str
    host: str
    port: int

    @property
    def key(self) -> str:
        """Key used for locks, health and display: ``username@host:port``."""
        return f"{self.username}@{self.host}:{self.port}"

    @property
    def credential_key(self) -> str:
        """Keyring key, protocol included so SFTP and FTP never collide."""
        return f"{self.protocol.value}-{self.username}-{self.host}-{self.port}"

    @property
    def cache_dir_name(self) -> str:
        """Filesystem-safe directory name for this connection's cached files."""
        from ...utils.cache_paths import sanitize_name
        return sanitize_name(f"{self.username}-{self.host}-{self.port}")

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class ConnectionConfig:
    """
    Immutable connection settings.

    Empty advanced fields are filled with protocol-aware defaults on
    construction. Invalid combinations raise ConfigurationError.
    """
    protocol: Protocol
    host: str
    username: str = ""
    auth: Auth = field(default_factory=PasswordAuth)
    port: Optional[int] = None
    remote_path: str = "/"
    tls_mode: TlsMode = TlsMode.OFF
    passive_mode: bool = True
    connect_timeout: Optional[float] = None
    operation_timeout: Optional[float] = None
    keep_alive_interval: Optional[float] = None
    enable_keep_alive: bool = True
    max_retries: Optional[int] = None
    retry_base_delay: Optional[float] = None
    idle_timeout: Optional[float] = None
    name: str = ""

    def __post_init__(self):
        set_ = object.__setattr__  # frozen dataclass

        try:
            set_(self, "protocol", Protocol(self.protocol))
            set_(self, "tls_mode", TlsMode(self.tls_mode or TlsMode.OFF))
        except ValueError as e:
            raise ConfigurationError(f"Invalid connection configuration: {e}") from e

        set_(self, "host", clean_host(self.host))
        if not self.host:
            raise ConfigurationError("Host is required")

        if isinstance(self.auth, AnonymousAuth):
            if self.protocol != Protocol.FTP:
                raise ConfigurationError("Anonymous login is only available for FTP")
            if not self.username:
                set_(self, "username", ANONYMOUS_USERNAME)
        elif not isinstance(self.auth, (PasswordAuth, KeyAuth)):
            raise ConfigurationError(f"Unsupported auth type: {type(self.auth).__name__}")

        if not self.username:
            raise ConfigurationError("Username is required")

        if isinstance(self.auth, KeyAuth):
            if self.protocol != Protocol.SFTP:
                raise ConfigurationError("Key authentication is only available for SFTP")
            if not self.auth.key_path:
                raise ConfigurationError("Private key path is required for key authentication")

        if self.tls_mode != TlsMode.OFF and self.protocol != Protocol.FTP:
            raise ConfigurationError("TLS mode only applies to FTP connections")

        if self.port is None:
            set_(self, "port", self.default_port(self.protocol, self.tls_mode))
        if not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            raise ConfigurationError(f"Port must be between 1 and 65535, got {self.port!r}")

        remote_path = (self.remote_path or "/").strip()
        if not remote_path.startswith("/"):
            remote_path = "/" + remote_path
        set_(self, "remote_path", remote_path)

        defaults = {
            "connect_timeout": (SFTP_CONNECT_TIMEOUT_S if self.protocol == Protocol.SFTP
                                else FTP_CONNECT_TIMEOUT_S),
            "operation_timeout": OPERATION_TIMEOUT_S,
            "keep_alive_interval": KEEP_ALIVE_INTERVAL_S,
            "max_retries": MAX_RETRIES,
            "retry_base_delay": RETRY_BASE_DELAY_S,
            "idle_timeout": IDLE_TIMEOUT_S,
        }
        for name, default in defaults.items():
            if getattr(self, name) is None:
                set_(self, name, default)

        for name in ("connect_timeout", "operation_timeout", "keep_alive_interval", "idle_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        if self.retry_base_delay < 0:
            raise ConfigurationError("retry_base_delay must be >= 0")

    @staticmethod
    def default_port(protocol: Protocol, tls_mode: TlsMode = TlsMode.OFF) -> int:
        """Get default port for a protocol / TLS mode."""
        if protocol == Protocol.SFTP:
            return SFTP_DEFAULT_PORT
        if tls_mode == TlsMode.IMPLICIT:
            return FTPS_IMPLICIT_DEFAULT_PORT
        return FTP_DEFAULT_PORT

    @property
    def identity(self) -> ConnectionIdentity:
        return ConnectionIdentity(self.protocol, self.username, self.host, self.port)

    @property
    def is_anonymous(self) -> bool:
        return isinstance(self.auth, AnonymousAuth)

    @property
    def display_name(self) -> str:
        label = self.protocol.value.upper()
        if self.tls_mode != TlsMode.OFF:
            label = "FTPS"
        return f"[{label}] {self.name or self.identity.key}"

    def with_auth(self, auth: Auth) -> "ConnectionConfig":
        """Copy of this config with other auth (e.g. secrets resolved)."""
        return replace(self, auth=auth)

    def to_dict(self) -> dict:
        """Serialize without secrets."""
        data = {
            "name": self.name,
            "protocol": self.protocol.value,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "auth_type": self.auth.kind,
            "remote_path": self.remote_path,
            "tls_mode": self.tls_mode.value,
            "passive_mode": self.passive_mode,
            "connect_timeout": self.connect_timeout,
            "operation_timeout": self.operation_timeout,
            "keep_alive_interval": self.keep_alive_interval,
            "enable_keep_alive": self.enable_keep_alive,
            "max_retries": self.max_retries,
            "retry_base_delay": self.retry_base_delay,
            "idle_timeout": self.idle_timeout,
        }
        if isinstance(self.auth, KeyAuth):
            data["key_path"] = self.auth.key_path
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ConnectionConfig":
        """
        Build a config from a dict produced by to_dict().

        Missing advanced fields fall back to protocol-aware defaults.
        """
        auth_type = data.get("auth_type", "password")
        if auth_type == "key":
            auth: Auth = KeyAuth(key_path=data.get("key_path", ""))
        elif auth_type == "anonymous":
            auth = AnonymousAuth()
        elif auth_type == "password":
            auth = PasswordAuth()
        else:
            raise ConfigurationError(f"Unknown auth type: {auth_type}")

        optional = {
            key: data[key]
            for key in (
                "port", "connect_timeout", "operation_timeout", "keep_alive_interval",
                "max_retries", "retry_base_delay", "idle_timeout",
            )
            if data.get(key) is not None
        }
        return cls(
            protocol=data.get("protocol", ""),
            host=data.get("host", ""),
            username=data.get("username", ""),
            auth=auth,
            remote_path=data.get("remote_path", "/"),
            tls_mode=data.get("tls_mode", TlsMode.OFF),
            passive_mode=bool(data.get("passive_mode", True)),
            enable_keep_alive=bool(data.get("enable_keep_alive", True)),
            name=data.get("name", ""),
            **optional,
        )
