"""
Pytest configuration and fixtures for Remote File Browser tests.
"""
import socket
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

import paramiko
import pytest

from remote_file_browser.core.connection_manager import ConnectionManager
from remote_file_browser.database.models import ConnectionConfig, PasswordAuth
from remote_file_browser.protocols.base import (
    ProtocolSession,
    RemoteEntry,
    join_remote,
    normalize_remote_path,
)


class FakeClock:
    """Monotonic clock moved forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeCredentialStore:
    """Dict-backed credential store keyed by ``identity_key:kind``."""

    def __init__(self, secrets: Optional[Dict[str, str]] = None):
        self.secrets = dict(secrets or {})
        self.lookups: List[str] = []

    def get(self, identity_key: str, kind: str = "password") -> Optional[str]:
        self.lookups.append(f"{identity_key}:{kind}")
        return self.secrets.get(f"{identity_key}:{kind}")


class FakeServer:
    """
    In-memory remote filesystem shared by every FakeSession it creates.

    Failures are injected per method name with ``fail(method, *errors)``;
    each call of that method pops and raises the next error. ``hold(method)``
    makes the method block until the returned event is set.
    """

    def __init__(self, password: str = "secret"):
        self.password = password
        self.files: Dict[str, bytes] = {}
        self.dirs = {"/"}
        self.alive = True
        self.connects = 0
        self.sessions: List["FakeSession"] = []
        self.calls: List[str] = []
        self._failures: Dict[str, List[BaseException]] = {}
        self._holds: Dict[str, threading.Event] = {}
        self.started: Dict[str, threading.Event] = {}

    def create_session(self, protocol: str) -> "FakeSession":
        session = FakeSession(self)
        self.sessions.append(session)
        return session

    def fail(self, method: str, *errors: BaseException):
        self._failures.setdefault(method, []).extend(errors)

    def hold(self, method: str) -> threading.Event:
        release = threading.Event()
        self._holds[method] = release
        self.started[method] = threading.Event()
        return release

    def enter(self, method: str):
        self.calls.append(method)
        if method in self._holds:
            self.started[method].set()
            self._holds[method].wait(5)
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def add_file(self, path: str, data: bytes = b""):
        path = normalize_remote_path(path)
        parent = path.rsplit("/", 1)[0] or "/"
        self.add_dir(parent)
        self.files[path] = data

    def add_dir(self, path: str):
        path = normalize_remote_path(path)
        while path not in self.dirs:
            self.dirs.add(path)
            path = path.rsplit("/", 1)[0] or "/"


class FakeSession(ProtocolSession):
    """ProtocolSession over a FakeServer."""

    protocol_name = "fake"

    def __init__(self, server: FakeServer):
        super().__init__()
        self.server = server
        self.connected = False
        self.closed = False

    def connect(self, config, credentials, on_authenticating=None):
        self.server.enter("connect")
        if on_authenticating:
            on_authenticating()
        if credentials.private_key is None and credentials.password != self.server.password:
            raise paramiko.AuthenticationException("Authentication failed.")
        self._config = config
        self.connected = True
        self.server.connects += 1

    def _check(self, method: str):
        if not self.connected:
            raise ConnectionResetError("Connection reset by peer")
        self.server.enter(method)

    def _entry(self, path: str) -> RemoteEntry:
        name = path.rsplit("/", 1)[-1] or "/"
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        if path in self.server.dirs:
            return RemoteEntry(name, path, True, 0, modified)
        return RemoteEntry(name, path, False, len(self.server.files[path]), modified)

    def list(self, path):
        self._check("list")
        path = normalize_remote_path(path)
        if path not in self.server.dirs:
            raise FileNotFoundError(2, "No such file", path)
        children = [p for p in list(self.server.files) + list(self.server.dirs)
                    if p != path and (p.rsplit("/", 1)[0] or "/") == path]
        return [self._entry(p) for p in children]

    def read(self, path):
        self._check("read")
        if path not in self.server.files:
            raise FileNotFoundError(2, "No such file", path)
        return self.server.files[path]

    def write(self, path, data):
        self._check("write")
        self.server.files[path] = bytes(data)

    def remove(self, path, recursive=False):
        self._check("remove")
        if path in self.server.files:
            del self.server.files[path]
            return
        if path not in self.server.dirs:
            raise FileNotFoundError(2, "No such file", path)
        children = [p for p in list(self.server.files) + list(self.server.dirs)
                    if p.startswith(path.rstrip("/") + "/")]
        if children and not recursive:
            raise OSError("Directory not empty")
        for child in children:
            self.server.files.pop(child, None)
            self.server.dirs.discard(child)
        self.server.dirs.discard(path)

    def rename(self, old_path, new_path):
        self._check("rename")
        if old_path in self.server.files:
            self.server.files[new_path] = self.server.files.pop(old_path)
        elif old_path in self.server.dirs:
            prefix = old_path.rstrip("/") + "/"
            for p in [p for p in self.server.files if p.startswith(prefix)]:
                self.server.files[join_remote(new_path, p[len(prefix):])] = self.server.files.pop(p)
            for p in [p for p in self.server.dirs if p == old_path or p.startswith(prefix)]:
                self.server.dirs.discard(p)
                self.server.dirs.add(new_path + p[len(old_path):])
        else:
            raise FileNotFoundError(2, "No such file", old_path)

    def mkdir(self, path):
        self._check("mkdir")
        if path in self.server.dirs or path in self.server.files:
            raise FileExistsError(17, "File exists", path)
        self.server.dirs.add(path)

    def stat(self, path):
        self._check("stat")
        if path not in self.server.dirs and path not in self.server.files:
            raise FileNotFoundError(2, "No such file", path)
        return self._entry(path)

    def exists(self, path):
        self._check("exists")
        return path in self.server.dirs or path in self.server.files

    def is_alive(self):
        return self.connected and self.server.alive

    def keep_alive(self):
        if not self.is_alive():
            raise socket.timeout("timed out")
        self.server.enter("keep_alive")

    def close(self):
        self.connected = False
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def sleeps():
    """Backoff delays requested by the manager, instead of sleeping."""
    return []


@pytest.fixture
def credential_store():
    return FakeCredentialStore({"sftp-alice-h-22:password": "secret"})


@pytest.fixture
def config():
    return ConnectionConfig(
        protocol="sftp",
        host="h",
        username="alice",
        auth=PasswordAuth(),
        enable_keep_alive=False,
        operation_timeout=5,
    )


@pytest.fixture
def manager(server, credential_store, clock, sleeps):
    """ConnectionManager wired to the fake server, not yet connected."""
    manager = ConnectionManager(
        credential_store=credential_store,
        session_factory=server.create_session,
        sleep=sleeps.append,
        clock=clock,
    )
    yield manager
    manager.close()


@pytest.fixture
def connected(manager, config):
    manager.connect(config)
    return manager
