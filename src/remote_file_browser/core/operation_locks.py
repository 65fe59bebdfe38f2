"""
Operation Lock Registry - Reject duplicate in-flight operations per (verb, path)

Entries live in a cachetools TTLCache whose TTL equals the operation timeout,
so a lock leaked by a crashed operation disappears on its own.
"""
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List

from cachetools import TTLCache

from ..constants import OPERATION_TIMEOUT_S
from .errors import OperationInProgressError

logger = logging.getLogger(__name__)


class LockVerb(str, Enum):
    """Operation verbs that take a lock."""
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    RENAME = "rename"
    COPY = "copy"
    MKDIR = "mkdir"


def lock_key(verb: LockVerb, path: str) -> str:
    """Build the ``verb:absolutePath`` key."""
    return f"{LockVerb(verb).value}:{path}"


@dataclass(frozen=True, eq=False)
class OperationLock:
    """One held lock. Compared by identity, so a re-acquired key is a new lock."""
    key: str
    acquired_at: float


class OperationLockRegistry:
    """
    Thread-safe registry of in-flight operations.

    ``acquire`` is a single check-and-insert under a mutex: of two racing
    callers for the same key exactly one wins, the other gets
    OperationInProgressError without waiting. ``release`` only removes the
    exact lock it is given, so releasing a lock that was force-released and
    re-taken by another caller leaves the new holder alone.
    """

    def __init__(
        self,
        ttl: float = OPERATION_TIMEOUT_S,
        maxsize: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl
        self._maxsize = maxsize
        self._timer = timer
        self._locks: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._mutex = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def set_ttl(self, ttl: float):
        """
        Change the lock ceiling in place.

        Held locks move to the new cache and keep their owners; their
        expiry restarts from now.
        """
        with self._mutex:
            if ttl == self._ttl:
                return
            locks: TTLCache = TTLCache(maxsize=self._maxsize, ttl=ttl, timer=self._timer)
            self._locks.expire()
            for key, lock in list(self._locks.items()):
                locks[key] = lock
            self._locks = locks
            self._ttl = ttl
        logger.debug(f"Lock ceiling set to {ttl}s")

    def acquire(self, verb: LockVerb, path: str) -> OperationLock:
        """
        Take the lock for ``verb:path``.

        Returns:
            The held lock, to be passed to release()

        Raises:
            OperationInProgressError: If the same operation is already running
        """
        key = lock_key(verb, path)
        with self._mutex:
            if key in self._locks:
                logger.debug(f"Lock busy: {key}")
                raise OperationInProgressError(
                    f"Operation already in progress: {LockVerb(verb).value} {path}",
                    suggestion="Wait for the running operation to finish and try again.",
                    path=path,
                )
            lock = OperationLock(key=key, acquired_at=self._timer())
            self._locks[key] = lock
        logger.debug(f"Lock acquired: {key}")
        return lock

    def release(self, lock: OperationLock) -> bool:
        """
        Release a lock. Idempotent.

        Returns:
            True if the lock was still held by the caller
        """
        with self._mutex:
            if self._locks.get(lock.key) is not lock:
                return False
            del self._locks[lock.key]
        logger.debug(f"Lock released: {lock.key}")
        return True

    def release_all(self) -> int:
        """Force-release every lock and return how many were held."""
        with self._mutex:
            self._locks.expire()
            count = len(self._locks)
            self._locks.clear()
        if count:
            logger.warning(f"Force-released {count} operation lock(s)")
        return count

    def is_locked(self, verb: LockVerb, path: str) -> bool:
        with self._mutex:
            return lock_key(verb, path) in self._locks

    def active_keys(self) -> List[str]:
        """Keys of the locks currently held, expired entries excluded."""
        with self._mutex:
            self._locks.expire()
            return list(self._locks.keys())

    def snapshot(self) -> Dict[str, float]:
        """Held keys mapped to their acquisition time."""
        with self._mutex:
            self._locks.expire()
            return {key: lock.acquired_at for key, lock in self._locks.items()}

    def __len__(self) -> int:
        return len(self.active_keys())

    @contextmanager
    def hold(self, verb: LockVerb, path: str):
        """
        Context manager form of acquire/release.

        Example:
            with registry.hold(LockVerb.WRITE, "/a.txt"):
                session.write("/a.txt", data)
        """
        lock = self.acquire(verb, path)
        try:
            yield lock
        finally:
            self.release(lock)
