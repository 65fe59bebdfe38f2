"""
Unit tests for OperationLockRegistry.
Tests atomic acquisition, idempotent release and TTL expiry.
"""
import threading

import pytest

from remote_file_browser.core.errors import OperationInProgressError
from remote_file_browser.core.operation_locks import LockVerb, OperationLockRegistry, lock_key


class TestOperationLockRegistry:
    """Test the in-flight operation registry."""

    @pytest.fixture
    def registry(self, clock):
        return OperationLockRegistry(ttl=60, timer=clock)

    def test_lock_key(self):
        assert lock_key(LockVerb.WRITE, "/a.txt") == "write:/a.txt"
        assert lock_key("read", "/a.txt") == "read:/a.txt"

    def test_second_acquire_fails_fast(self, registry):
        registry.acquire(LockVerb.WRITE, "/a.txt")

        with pytest.raises(OperationInProgressError) as exc_info:
            registry.acquire(LockVerb.WRITE, "/a.txt")
        assert exc_info.value.path == "/a.txt"

    def test_different_verb_or_path_allowed(self, registry):
        registry.acquire(LockVerb.WRITE, "/a.txt")
        registry.acquire(LockVerb.READ, "/a.txt")
        registry.acquire(LockVerb.WRITE, "/b.txt")
        assert len(registry) == 3

    def test_release_is_idempotent(self, registry):
        lock = registry.acquire(LockVerb.DELETE, "/a.txt")

        assert registry.release(lock)
        assert not registry.release(lock)
        assert not registry.is_locked(LockVerb.DELETE, "/a.txt")

    def test_stale_release_keeps_new_holder(self, registry):
        old = registry.acquire(LockVerb.WRITE, "/a.txt")
        registry.release_all()
        new = registry.acquire(LockVerb.WRITE, "/a.txt")

        assert not registry.release(old)
        assert registry.is_locked(LockVerb.WRITE, "/a.txt")
        assert registry.release(new)

    def test_release_all(self, registry):
        registry.acquire(LockVerb.WRITE, "/a.txt")
        registry.acquire(LockVerb.MKDIR, "/d")

        assert registry.release_all() == 2
        assert registry.active_keys() == []

    def test_lock_expires_after_ttl(self, registry, clock):
        registry.acquire(LockVerb.WRITE, "/a.txt")
        clock.advance(61)

        assert registry.active_keys() == []
        registry.acquire(LockVerb.WRITE, "/a.txt")

    def test_snapshot_has_acquisition_time(self, registry, clock):
        registry.acquire(LockVerb.COPY, "/a.txt")
        assert registry.snapshot() == {"copy:/a.txt": clock.now}

    def test_hold_releases_on_error(self, registry):
        with pytest.raises(ValueError):
            with registry.hold(LockVerb.RENAME, "/a.txt"):
                assert registry.is_locked(LockVerb.RENAME, "/a.txt")
                raise ValueError("boom")
        assert not registry.is_locked(LockVerb.RENAME, "/a.txt")

    def test_exactly_one_winner_under_race(self, registry):
        winners, losers = [], []
        barrier = threading.Barrier(16)

        def worker():
            barrier.wait()
            try:
                winners.append(registry.acquire(LockVerb.WRITE, "/race.txt"))
            except OperationInProgressError:
                losers.append(1)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(winners) == 1
        assert len(losers) == 15

    def test_set_ttl_keeps_held_locks(self, registry, clock):
        lock = registry.acquire(LockVerb.WRITE, "/a.txt")

        registry.set_ttl(5)

        assert registry.ttl == 5
        with pytest.raises(OperationInProgressError):
            registry.acquire(LockVerb.WRITE, "/a.txt")
        assert registry.release(lock)

        registry.acquire(LockVerb.READ, "/b.txt")
        clock.advance(6)
        assert registry.active_keys() == []
