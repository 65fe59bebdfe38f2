"""
Connection Manager - Lifecycle, self-healing and file operations for one remote connection

Owns one ProtocolSession, the OperationLockRegistry and the HealthMonitor.
Every file operation follows the same template:

1. acquire the ``verb:path`` operation lock (fail fast if held)
2. make sure the session is fresh (idle timeout + liveness probe)
3. run the protocol call under the operation timeout
4. on a connection-lost / timeout failure, reconnect once and retry once
5. release the lock
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, List, Optional, Tuple, TypeVar, Union
from typing import Protocol as TypingProtocol

from ..constants import (
    LIVENESS_PROBE_TIMEOUT_S,
    OPERATION_WORKERS,
    RETRY_MAX_DELAY_S,
    SFTP_READY_TIMEOUT_S,
)
from ..database.models import (
    AnonymousAuth,
    ConnectionConfig,
    ConnectionIdentity,
    KeyAuth,
)
from ..protocols import ProtocolSession, RemoteEntry, SessionCredentials, SessionFactory
from ..protocols.base import normalize_remote_path
from ..utils.key_converter import KeyConverter
from .error_classifier import CONNECTION_CATEGORIES, classify, to_typed_error
from .errors import (
    AuthenticationError,
    ConfigurationError,
    ErrorCategory,
    OperationInProgressError,
    OperationTimeoutError,
    RemoteConnectionError,
    RemoteFileError,
    UnsupportedOperationError,
)
from .events import SessionState, StateEventBus, StateTransition
from .health_monitor import HealthMonitor, HealthSnapshot
from .operation_locks import LockVerb, OperationLockRegistry
from .retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

MANUAL_RECONNECT_HINT = "Please disconnect and reconnect manually."


class CredentialStore(TypingProtocol):
    """Secret lookup by ``ConnectionIdentity.credential_key``."""

    def get(self, identity_key: str, kind: str = "password") -> Optional[str]:
        ...


class ConnectionManager:
    """
    Orchestrates one remote connection.

    Usage:
        manager = ConnectionManager(credential_store=CredentialManager())
        manager.connect(config)
        entries = manager.list_files("/var/www")
        manager.write_file("/var/www/index.html", "<h1>hi</h1>")
        manager.disconnect()

    Collaborators are injected so tests can replace the protocol layer,
    the clock and the backoff sleep.
    """

    def __init__(
        self,
        credential_store: Optional[CredentialStore] = None,
        key_converter: Optional[KeyConverter] = None,
        session_factory: Callable[[str], ProtocolSession] = SessionFactory.create,
        event_bus: Optional[StateEventBus] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._credential_store = credential_store
        self._key_converter = key_converter or KeyConverter()
        self._session_factory = session_factory
        self._sleep = sleep
        self._clock = clock
        self.events = event_bus or StateEventBus()

        self._health = HealthMonitor(clock=clock)
        self._locks = OperationLockRegistry(timer=clock)
        self._executor = ThreadPoolExecutor(
            max_workers=OPERATION_WORKERS, thread_name_prefix="remote-op"
        )

        # _state_lock guards state/config/session; _connect_lock allows a
        # single connect or reconnect attempt at a time.
        self._state_lock = threading.RLock()
        self._connect_lock = threading.Lock()
        self._state = SessionState.DISCONNECTED
        self._config: Optional[ConnectionConfig] = None
        self._session: Optional[ProtocolSession] = None
        self._generation = 0
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    @property
    def config(self) -> Optional[ConnectionConfig]:
        with self._state_lock:
            return self._config

    @property
    def identity(self) -> Optional[ConnectionIdentity]:
        config = self.config
        return config.identity if config else None

    def is_connected(self) -> bool:
        with self._state_lock:
            return self._session is not None and self._state in (
                SessionState.READY, SessionState.DEGRADED
            )

    def _set_state(self, state: SessionState, detail: Optional[str] = None):
        with self._state_lock:
            previous = self._state
            self._state = state
            if previous != state:
                logger.debug(f"State {previous.value} -> {state.value}" + (f" ({detail})" if detail else ""))
                self.events.publish(StateTransition(state=state, previous=previous, detail=detail))

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    def connect(self, config: Optional[ConnectionConfig] = None) -> None:
        """
        Connect, or reconnect with the preserved configuration when ``config`` is None.

        Raises:
            OperationInProgressError: Another connection attempt is running
            ConfigurationError: No configuration given and none preserved
            AuthenticationError: Credentials rejected
            RemoteConnectionError: Transport failure after all retries
        """
        if self._closed:
            raise RemoteConnectionError("Connection manager has been closed")
        if not self._connect_lock.acquire(blocking=False):
            raise OperationInProgressError(
                "A connection attempt is already in progress",
                suggestion="Wait for the current connection attempt to finish.",
            )
        try:
            with self._state_lock:
                if config is not None:
                    if not isinstance(config, ConnectionConfig):
                        raise ConfigurationError(f"Expected ConnectionConfig, got {type(config).__name__}")
                    self._config = config
                config = self._config
                had_session = self._session is not None

            if config is None:
                raise ConfigurationError(
                    "No configuration available",
                    suggestion="Select a saved connection and connect again.",
                )

            if had_session:
                self._disconnect(clear_config=False, detail="Replacing existing connection")
            self._locks.set_ttl(config.operation_timeout)
            self._connect_with_retry(config)
        finally:
            self._connect_lock.release()

    def _resolve_credentials(self, config: ConnectionConfig) -> SessionCredentials:
        """Collect secrets for one connect: config first, then the credential store."""
        key = config.identity.credential_key
        auth = config.auth

        if isinstance(auth, AnonymousAuth):
            return SessionCredentials(password=auth.password)

        if isinstance(auth, KeyAuth):
            passphrase = auth.passphrase
            if passphrase is None and self._credential_store is not None:
                passphrase = self._credential_store.get(key, "passphrase")
            private_key = self._key_converter.load(auth.key_path, passphrase)
            return SessionCredentials(private_key=private_key)

        password = auth.password
        if password is None and self._credential_store is not None:
            password = self._credential_store.get(key, "password")
        if password is None:
            raise AuthenticationError(
                f"No password available for {config.identity.key}",
                suggestion="Save the password for this connection and try again.",
            )
        return SessionCredentials(password=password)

    def _attempt_is_current(self, generation: int, config: ConnectionConfig) -> bool:
        """False once a disconnect (or a newer connect) has superseded this attempt."""
        with self._state_lock:
            return self._generation == generation and self._config is config

    def _set_state_for_attempt(
        self, generation: int, config: ConnectionConfig, state: SessionState, detail: str
    ):
        with self._state_lock:
            if self._attempt_is_current(generation, config):
                self._set_state(state, detail)

    @staticmethod
    def _cancelled(identity: ConnectionIdentity) -> RemoteConnectionError:
        return RemoteConnectionError(
            f"Connection to {identity.key} was cancelled by a disconnect",
            suggestion="Connect again to use this server.",
        )

    def _connect_with_retry(self, config: ConnectionConfig):
        """
        Connect with exponential backoff. Caller holds _connect_lock.

        A disconnect that lands while an attempt is running bumps the
        generation; the attempt then closes its session instead of
        installing it and raises RemoteConnectionError.
        """
        identity = config.identity
        policy = RetryPolicy(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=RETRY_MAX_DELAY_S,
            sleep=self._sleep,
        )
        with self._state_lock:
            attempt_generation = self._generation

        try:
            credentials = self._resolve_credentials(config)
        except RemoteFileError as e:
            self._set_state_for_attempt(attempt_generation, config, SessionState.DISCONNECTED, str(e))
            raise

        attempt = 0
        while True:
            total = policy.max_retries + 1
            with self._state_lock:
                if not self._attempt_is_current(attempt_generation, config):
                    raise self._cancelled(identity)
                self._set_state(SessionState.CONNECTING, f"Connecting to {identity.key} ({attempt + 1}/{total})")
            session = self._session_factory(config.protocol.value)
            try:
                self._call_with_timeout(
                    lambda: session.connect(
                        config,
                        credentials,
                        on_authenticating=lambda: self._set_state_for_attempt(
                            attempt_generation, config,
                            SessionState.AUTHENTICATING, f"Authenticating as {config.username}",
                        ),
                    ),
                    config.connect_timeout + SFTP_READY_TIMEOUT_S,
                    f"Connecting to {identity.key}",
                )
            except Exception as e:
                session.close()
                if not self._attempt_is_current(attempt_generation, config):
                    raise self._cancelled(identity) from e
                self._health.record_failure(e)
                category = classify(e)
                attempt += 1
                if not policy.should_retry(category, attempt):
                    self._set_state(SessionState.DISCONNECTED, str(e))
                    error = self._connect_error(e, category, identity, attempt)
                    if error is e:
                        raise
                    raise error from e
                logger.warning(
                    f"Connection attempt {attempt}/{total} to {identity.key} failed "
                    f"({category.value}): {e}"
                )
                policy.wait(attempt)
                continue

            with self._state_lock:
                installed = self._attempt_is_current(attempt_generation, config)
                if installed:
                    self._session = session
                    self._generation += 1
                    self._health.start_session()
                    self._set_state(SessionState.READY, f"Connected to {identity.key}")
                    if config.enable_keep_alive:
                        self._start_keep_alive(config, self._generation)

            if not installed:
                session.close()
                logger.info(f"Discarded connection to {identity.key}: disconnected while connecting")
                raise self._cancelled(identity)
            logger.info(f"Connected to {identity.key} via {config.protocol.value}")
            return

    @staticmethod
    def _connect_error(
        error: Exception,
        category: ErrorCategory,
        identity: ConnectionIdentity,
        attempts: int,
    ) -> RemoteFileError:
        if isinstance(error, RemoteFileError) and not isinstance(error, OperationTimeoutError):
            return error
        if category == ErrorCategory.AUTH_FAILURE:
            return AuthenticationError(
                f"Authentication failed for {identity.key}: {error}",
                suggestion="Check the username, password or private key.",
            )
        return RemoteConnectionError(
            f"Failed to connect to {identity.key} after {attempts} attempt(s): {error}",
            suggestion=f"Check the host, port and network. {MANUAL_RECONNECT_HINT}",
            category=category if category != ErrorCategory.UNKNOWN else None,
        )

    def disconnect(self, clear_config: bool = True) -> None:
        """
        Close the connection.

        Args:
            clear_config: True for a user-initiated disconnect (forget the
                configuration, reset health). False keeps the configuration
                so that ``connect()`` can reconnect with it.
        """
        self._disconnect(clear_config, detail="Disconnected by user" if clear_config else None)

    def _disconnect(self, clear_config: bool, detail: Optional[str] = None, release_locks: bool = True):
        """
        Close the session and bump the generation.

        ``release_locks`` is False only for the reconnect inside a running
        operation: that operation still owns its lock until it returns.
        """
        with self._state_lock:
            self._health.stop_keep_alive()
            session, self._session = self._session, None
            self._generation += 1
            if clear_config:
                self._config = None

        if session is not None:
            try:
                session.close()
            except Exception as e:
                logger.warning(f"Error while closing session: {e}")

        if release_locks:
            self._locks.release_all()
        if clear_config:
            self._health.reset()
        else:
            self._health.end_session()
        self._set_state(SessionState.DISCONNECTED, detail)
        if session is not None:
            logger.info("Disconnected" + (" (configuration kept)" if not clear_config else ""))

    def close(self) -> None:
        """Disconnect and release worker threads. The manager cannot be reused."""
        self.disconnect(clear_config=True)
        self._closed = True
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ------------------------------------------------------------------
    # Freshness / reconnect
    # ------------------------------------------------------------------

    def _current(self) -> Tuple[Optional[ProtocolSession], int, Optional[ConnectionConfig]]:
        with self._state_lock:
            return self._session, self._generation, self._config

    def _ensure_connection(self) -> Tuple[ProtocolSession, int]:
        """
        Return a session that is fresh enough to use.

        Reconnects when there is no session, when the connection has been
        idle longer than the idle timeout, when keep-alive has marked it
        DEGRADED, or when the liveness probe fails. After recorded failures
        the probe is a server round trip instead of a local state check.
        """
        with self._state_lock:
            session, generation, config = self._current()
            state = self._state
        if config is None:
            raise RemoteConnectionError(
                "Not connected to a remote server",
                suggestion="Connect to a server first.",
            )
        if session is None:
            return self._reconnect("no active session", generation)

        idle = self._health.idle_seconds()
        if idle >= config.idle_timeout:
            logger.info(f"Connection idle for {idle:.0f}s (limit {config.idle_timeout:.0f}s), reconnecting")
            return self._reconnect(f"idle for {idle:.0f}s", generation)

        if state == SessionState.DEGRADED:
            logger.warning("Keep-alive reported the connection as degraded, reconnecting")
            return self._reconnect("keep-alive failures", generation)

        round_trip = self._health.consecutive_failures > 0
        if not self._probe(session, round_trip):
            logger.warning("Liveness probe failed, reconnecting")
            return self._reconnect("liveness probe failed", generation)

        return session, generation

    def _probe(self, session: ProtocolSession, round_trip: bool = False) -> bool:
        try:
            if round_trip:
                self._call_with_timeout(session.keep_alive, LIVENESS_PROBE_TIMEOUT_S, "Liveness probe")
                return True
            return bool(self._call_with_timeout(session.probe, LIVENESS_PROBE_TIMEOUT_S, "Liveness probe"))
        except Exception as e:
            logger.debug(f"Liveness probe error: {e}")
            return False

    def _reconnect(self, reason: str, seen_generation: int) -> Tuple[ProtocolSession, int]:
        """
        Internal disconnect (configuration kept) followed by connect.

        If another caller already reconnected since ``seen_generation``, its
        session is reused instead of reconnecting again.
        """
        config = self.config
        if config is None:
            raise ConfigurationError("No configuration available")

        wait = (config.connect_timeout + SFTP_READY_TIMEOUT_S) * (config.max_retries + 1) \
            + RETRY_MAX_DELAY_S * config.max_retries
        if not self._connect_lock.acquire(timeout=wait):
            raise RemoteConnectionError(
                "Timed out waiting for a reconnection in progress",
                suggestion=MANUAL_RECONNECT_HINT,
            )
        try:
            with self._state_lock:
                if (self._generation != seen_generation and self._session is not None
                        and self._state == SessionState.READY):
                    logger.debug("Session was already re-established by another operation")
                    return self._session, self._generation
                config = self._config
                if config is None:
                    raise ConfigurationError("No configuration available")

            self._set_state(SessionState.RECONNECTING, reason)
            self._disconnect(clear_config=False, detail=f"Reconnecting: {reason}", release_locks=False)
            try:
                self._connect_with_retry(config)
            except AuthenticationError:
                raise
            except RemoteFileError as e:
                raise RemoteConnectionError(
                    f"Automatic reconnection to {config.identity.key} failed: {e}. {MANUAL_RECONNECT_HINT}",
                    suggestion=MANUAL_RECONNECT_HINT,
                    category=e.category,
                ) from e
            logger.info(f"Reconnected to {config.identity.key}")
            session, generation, _ = self._current()
            return session, generation
        finally:
            self._connect_lock.release()

    # ------------------------------------------------------------------
    # Keep-alive
    # ------------------------------------------------------------------

    def _start_keep_alive(self, config: ConnectionConfig, generation: int):
        def probe() -> Optional[bool]:
            session, current, _ = self._current()
            if current != generation or session is None:
                return None
            try:
                self._call_with_timeout(session.keep_alive, LIVENESS_PROBE_TIMEOUT_S, "Keep-alive")
                ok = True
            except Exception as e:
                logger.debug(f"Keep-alive error: {e}")
                ok = False
            with self._state_lock:
                if self._generation != generation:
                    return None
                if ok and self._state == SessionState.DEGRADED:
                    self._set_state(SessionState.READY, "Keep-alive recovered")
                elif not ok and self._state == SessionState.READY:
                    self._set_state(SessionState.DEGRADED, "Keep-alive failed")
            return ok

        self._health.start_keep_alive(probe, config.keep_alive_interval)

    # ------------------------------------------------------------------
    # Operation template
    # ------------------------------------------------------------------

    def _call_with_timeout(self, func: Callable[[], T], timeout: float, description: str) -> T:
        future = self._executor.submit(func)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise OperationTimeoutError(
                f"{description} exceeded {timeout:.0f}s timeout",
                suggestion="The server is not responding. It will be retried once after reconnecting.",
            ) from e

    def _run(
        self,
        verb: Optional[LockVerb],
        path: str,
        description: str,
        func: Callable[[ProtocolSession], T],
    ) -> T:
        lock = self._locks.acquire(verb, path) if verb else None
        try:
            return self._execute(path, description, func)
        finally:
            if lock is not None:
                self._locks.release(lock)

    def _execute(self, path: str, description: str, func: Callable[[ProtocolSession], T]) -> T:
        session, generation = self._ensure_connection()
        config = self.config
        timeout = config.operation_timeout if config else LIVENESS_PROBE_TIMEOUT_S

        try:
            result = self._call_with_timeout(lambda: func(session), timeout, f"{description} {path}")
        except Exception as e:
            category = classify(e)
            if category not in CONNECTION_CATEGORIES or not config or config.max_retries < 1:
                self._surface(e, category, description, path)
            self._health.record_failure(e)
            logger.warning(f"{description} {path} failed ({category.value}), reconnecting and retrying once")

            session, generation = self._reconnect(f"{description} failed: {e}", generation)
            try:
                result = self._call_with_timeout(lambda: func(session), timeout, f"{description} {path}")
            except Exception as retry_error:
                retry_category = classify(retry_error)
                if retry_category in CONNECTION_CATEGORIES:
                    self._health.record_failure(retry_error)
                    logger.error(f"{description} {path} failed again after reconnecting: {retry_error}")
                    raise RemoteConnectionError(
                        f"Cannot {description} '{path}': connection lost again after "
                        f"reconnecting ({retry_error}). {MANUAL_RECONNECT_HINT}",
                        suggestion=MANUAL_RECONNECT_HINT,
                        path=path,
                        category=retry_category,
                    ) from retry_error
                self._surface(retry_error, retry_category, description, path)

        self._health.record_success()
        return result

    def _surface(self, error: Exception, category: ErrorCategory, description: str, path: str):
        """Raise the typed form of a non-retryable error."""
        if category in CONNECTION_CATEGORIES:
            self._health.record_failure(error)
        else:
            # The server answered, so the connection itself is fine.
            self._health.touch()
        typed = to_typed_error(error, description, path)
        if typed is error:
            raise error
        raise typed from error

    # ------------------------------------------------------------------
    # Public file operations
    # ------------------------------------------------------------------

    def _path(self, path: Optional[str]) -> str:
        if path is None:
            config = self.config
            path = config.remote_path if config else "/"
        return normalize_remote_path(path)

    def list_files(self, path: Optional[str] = None) -> List[RemoteEntry]:
        """
        List a directory (the configured remote path by default).

        Listings are not locked: concurrent listings of one directory are harmless.
        """
        path = self._path(path)
        entries = self._run(None, path, "list", lambda session: session.list(path))
        return sorted(entries, key=lambda entry: (not entry.is_dir, entry.name.lower()))

    def read_file(self, path: str) -> bytes:
        path = self._path(path)
        return self._run(LockVerb.READ, path, "read", lambda session: session.read(path))

    def write_file(self, path: str, data: Union[bytes, str]) -> None:
        """Create or replace a file. Text is encoded as UTF-8."""
        path = self._path(path)
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._run(LockVerb.WRITE, path, "write", lambda session: session.write(path, data))
        logger.info(f"Wrote {len(data)} bytes to {path}")

    def delete_file(self, path: str, recursive: bool = False) -> None:
        """Delete a file, or a directory (recursively if asked)."""
        path = self._path(path)
        if path == "/":
            raise UnsupportedOperationError("Refusing to delete the root directory", path=path)
        self._run(LockVerb.DELETE, path, "delete",
                  lambda session: session.remove(path, recursive=recursive))
        logger.info(f"Deleted {path}")

    def rename_file(self, old_path: str, new_path: str, overwrite: bool = False) -> None:
        """
        Rename or move a file or directory.

        Raises:
            ConflictError: ``new_path`` exists and ``overwrite`` is False
        """
        old_path, new_path = self._path(old_path), self._path(new_path)
        if old_path == new_path:
            return

        def rename(session: ProtocolSession):
            if session.exists(new_path):
                if not overwrite:
                    session.require_absent(new_path)
                target = session.stat(new_path)
                session.remove(new_path, recursive=target.is_dir)
            session.rename(old_path, new_path)

        self._run(LockVerb.RENAME, old_path, "rename", rename)
        logger.info(f"Renamed {old_path} to {new_path}")

    def copy_file(self, src: str, dst: str, recursive: bool = False, overwrite: bool = False) -> int:
        """
        Copy a file, or a directory tree when ``recursive``.

        Returns:
            Number of files copied

        Raises:
            ConflictError: ``dst`` exists and ``overwrite`` is False
            UnsupportedOperationError: Copy onto itself or into its own subtree
        """
        src, dst = self._path(src), self._path(dst)
        if src == dst:
            raise UnsupportedOperationError(f"Cannot copy '{src}' onto itself", path=dst)

        def copy(session: ProtocolSession) -> int:
            if not overwrite:
                session.require_absent(dst)
            return session.copy(src, dst, recursive=recursive)

        count = self._run(LockVerb.COPY, src, "copy", copy)
        logger.info(f"Copied {src} to {dst} ({count} file(s))")
        return count

    def create_file(self, path: str, overwrite: bool = False) -> None:
        """Create an empty file."""
        path = self._path(path)

        def create(session: ProtocolSession):
            if not overwrite:
                session.require_absent(path)
            session.write(path, b"")

        self._run(LockVerb.WRITE, path, "create file", create)
        logger.info(f"Created file {path}")

    def create_directory(self, path: str) -> None:
        """
        Create a directory.

        Raises:
            ConflictError: The path already exists
        """
        path = self._path(path)

        def create(session: ProtocolSession):
            session.require_absent(path)
            session.mkdir(path)

        self._run(LockVerb.MKDIR, path, "create directory", create)
        logger.info(f"Created directory {path}")

    def file_exists(self, path: str) -> bool:
        path = self._path(path)
        return self._run(None, path, "check", lambda session: session.exists(path))

    def get_file_info(self, path: str) -> RemoteEntry:
        path = self._path(path)
        return self._run(None, path, "stat", lambda session: session.stat(path))

    # ------------------------------------------------------------------
    # Health / bookkeeping
    # ------------------------------------------------------------------

    def get_connection_health(self) -> HealthSnapshot:
        return self._health.snapshot()

    def get_active_operations(self) -> List[str]:
        """Keys (``verb:path``) of the operations currently running."""
        return self._locks.active_keys()

    def has_active_operations(self) -> bool:
        return bool(self._locks.active_keys())
