"""
Tests for the lock manager (src/scaling/locking.py).
"""

import sys
import threading

import pytest

sys.path.insert(0, "src")

from scaling import get_lock_manager
from scaling.locking import LocalLockManager


class TestLocalLockManager:
    """Tests for LocalLockManager."""

    def test_acquire_and_release(self):
        manager = LocalLockManager()

        assert manager.acquire("ledger") is True
        assert manager.is_locked("ledger") is True
        assert manager.release("ledger") is True
        assert manager.is_locked("ledger") is False

    def test_reentrant_acquire(self):
        manager = LocalLockManager()

        manager.acquire("ledger")
        manager.acquire("ledger")

        assert manager.get_info("ledger").depth == 2
        manager.release("ledger")
        assert manager.is_locked("ledger") is True
        manager.release("ledger")
        assert manager.is_locked("ledger") is False

    def test_release_unheld(self):
        assert LocalLockManager().release("ledger") is False

    def test_context_manager_nests(self):
        manager = LocalLockManager()

        with manager.lock("ledger"):
            with manager.lock("ledger"):
                assert manager.get_info("ledger").depth == 2

        assert manager.get_info("ledger") is None

    def test_other_thread_times_out(self):
        manager = LocalLockManager()
        outcome = []

        def contend():
            try:
                with manager.lock("ledger", timeout=0.05):
                    outcome.append("acquired")
            except TimeoutError:
                outcome.append("timeout")

        with manager.lock("ledger"):
            worker = threading.Thread(target=contend)
            worker.start()
            worker.join()

        assert outcome == ["timeout"]

    def test_independent_names(self):
        manager = LocalLockManager()

        with manager.lock("a"):
            assert manager.is_locked("b") is False

    def test_lock_released_on_error(self):
        manager = LocalLockManager()

        with pytest.raises(RuntimeError):
            with manager.lock("ledger"):
                raise RuntimeError("boom")

        assert manager.is_locked("ledger") is False


class TestGetLockManager:
    """Tests for the process-wide lock manager."""

    def test_singleton(self):
        assert get_lock_manager() is get_lock_manager()

    def test_is_local(self):
        assert isinstance(get_lock_manager(), LocalLockManager)
