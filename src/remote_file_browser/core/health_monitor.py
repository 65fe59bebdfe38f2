"""
Health Monitor - Connection health counters and keep-alive scheduling
"""
import logging
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Optional

from ..constants import KEEP_ALIVE_INTERVAL_S

logger = logging.getLogger(__name__)


class KeepAliveStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    FAILING = "failing"


@dataclass(frozen=True)
class HealthSnapshot:
    """Read-only view of the connection health at one instant."""
    is_connected: bool
    uptime: float
    success_count: int
    failure_count: int
    consecutive_failures: int
    total_connections: int
    last_operation_time: Optional[float]
    last_keep_alive_time: Optional[float]
    keep_alive_status: KeepAliveStatus
    last_error: Optional[str]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["keep_alive_status"] = self.keep_alive_status.value
        return data


class HealthMonitor:
    """
    Tracks uptime, activity and failures of one connection.

    All counters are guarded by a single lock. Times come from the injected
    ``clock`` (monotonic seconds) so tests can move time forward.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.RLock()
        self._keep_alive_thread: Optional[threading.Thread] = None
        self._keep_alive_stop: Optional[threading.Event] = None
        self._total_connections = 0
        self._reset_counters()

    def _reset_counters(self):
        self._connected = False
        self._session_start: Optional[float] = None
        self._success_count = 0
        self._failure_count = 0
        self._consecutive_failures = 0
        self._last_operation_time: Optional[float] = None
        self._last_keep_alive_time: Optional[float] = None
        self._keep_alive_failing = False
        self._last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(self):
        """Mark the connection as established."""
        with self._lock:
            now = self._clock()
            self._connected = True
            self._session_start = now
            self._last_operation_time = now
            self._consecutive_failures = 0
            self._keep_alive_failing = False
            self._total_connections += 1

    def end_session(self):
        """Mark the connection as closed, keeping the counters."""
        with self._lock:
            self._connected = False
            self._session_start = None

    def reset(self):
        """Back to initial values (user-initiated disconnect)."""
        self.stop_keep_alive()
        with self._lock:
            self._reset_counters()
            self._total_connections = 0

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_success(self):
        with self._lock:
            self._success_count += 1
            self._consecutive_failures = 0
            self._last_operation_time = self._clock()

    def record_failure(self, error: Optional[BaseException] = None):
        with self._lock:
            self._failure_count += 1
            self._consecutive_failures += 1
            if error is not None:
                self._last_error = str(error)

    def touch(self):
        """Update the last-activity timestamp."""
        with self._lock:
            self._last_operation_time = self._clock()

    def record_keep_alive(self, ok: bool, error: Optional[BaseException] = None):
        """
        Record a keep-alive probe result.

        Probes never move the last-activity timestamp, so the idle check
        still measures time since the last real operation.
        """
        with self._lock:
            self._last_keep_alive_time = self._clock()
            if ok:
                self._success_count += 1
                self._consecutive_failures = 0
                self._keep_alive_failing = False
            else:
                self._failure_count += 1
                self._consecutive_failures += 1
                self._keep_alive_failing = True
                if error is not None:
                    self._last_error = str(error)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    def idle_seconds(self) -> float:
        """Seconds since the last operation (0 if none was recorded)."""
        with self._lock:
            if self._last_operation_time is None:
                return 0.0
            return self._clock() - self._last_operation_time

    def is_keep_alive_running(self) -> bool:
        with self._lock:
            thread, stop = self._keep_alive_thread, self._keep_alive_stop
        return thread is not None and thread.is_alive() and not stop.is_set()

    def snapshot(self) -> HealthSnapshot:
        with self._lock:
            if not self._keep_alive_thread or self._keep_alive_stop.is_set():
                status = KeepAliveStatus.INACTIVE
            elif self._keep_alive_failing:
                status = KeepAliveStatus.FAILING
            else:
                status = KeepAliveStatus.ACTIVE

            uptime = 0.0
            if self._connected and self._session_start is not None:
                uptime = self._clock() - self._session_start

            return HealthSnapshot(
                is_connected=self._connected,
                uptime=uptime,
                success_count=self._success_count,
                failure_count=self._failure_count,
                consecutive_failures=self._consecutive_failures,
                total_connections=self._total_connections,
                last_operation_time=self._last_operation_time,
                last_keep_alive_time=self._last_keep_alive_time,
                keep_alive_status=status,
                last_error=self._last_error,
            )

    # ------------------------------------------------------------------
    # Keep-alive
    # ------------------------------------------------------------------

    def start_keep_alive(
        self,
        probe: Callable[[], Optional[bool]],
        interval: float = KEEP_ALIVE_INTERVAL_S,
    ):
        """
        Run ``probe`` every ``interval`` seconds on a daemon thread.

        Args:
            probe: Returns True when the connection answered, False when it
                did not, None when the result should not be recorded. It may
                raise; an exception counts as a failed probe.
            interval: Seconds between probes
        """
        self.stop_keep_alive()
        stop = threading.Event()

        def run():
            while not stop.wait(interval):
                try:
                    ok = probe()
                    error = None
                except Exception as e:
                    ok, error = False, e
                if stop.is_set():
                    break
                if ok is None:
                    continue
                if ok:
                    logger.debug("Keep-alive probe succeeded")
                else:
                    logger.warning(f"Keep-alive probe failed: {error or 'no response'}")
                self.record_keep_alive(ok, error)

        thread = threading.Thread(target=run, name="remote-keep-alive", daemon=True)
        with self._lock:
            self._keep_alive_stop = stop
            self._keep_alive_thread = thread
        thread.start()
        logger.debug(f"Keep-alive started (every {interval}s)")

    def stop_keep_alive(self):
        """Stop the keep-alive thread. Does not wait for a running probe."""
        with self._lock:
            stop = self._keep_alive_stop
            self._keep_alive_thread = None
            self._keep_alive_stop = None
        if stop is not None and not stop.is_set():
            stop.set()
            logger.debug("Keep-alive stopped")
