"""
Ledger locking for the royalty ledger.

Every listing, settlement and claim runs under one named lock so that no two
operations interleave against the same ledger state. Locks are reentrant for
the holding thread: a payment recipient that calls back into the engine while
being paid proceeds under the outer operation's lock.

Usage:
    from scaling import get_lock_manager

    lock_manager = get_lock_manager()

    with lock_manager.lock("royalty_ledger", timeout=30):
        settle()
"""

import threading
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass
class LockInfo:
    """Information about a held lock."""

    name: str
    holder_id: str
    acquired_at: float
    depth: int = 1


class LockManager(ABC):
    """
    Abstract base class for lock managers.
    """

    @abstractmethod
    def acquire(self, name: str, timeout: float = 30.0) -> bool:
        """
        Acquire a named lock.

        Args:
            name: Lock identifier
            timeout: Maximum time to wait for lock (seconds)

        Returns:
            True if lock acquired, False if timeout
        """
        pass

    @abstractmethod
    def release(self, name: str) -> bool:
        """
        Release a named lock.

        Returns:
            True if lock was held and released, False otherwise
        """
        pass

    @abstractmethod
    def is_locked(self, name: str) -> bool:
        """Check if a lock is currently held."""
        pass

    @contextmanager
    def lock(self, name: str, timeout: float = 30.0):
        """
        Context manager for acquiring a lock.

        Raises:
            TimeoutError: If lock cannot be acquired within timeout
        """
        if not self.acquire(name, timeout=timeout):
            raise TimeoutError(f"Could not acquire lock '{name}' within {timeout}s")
        try:
            yield
        finally:
            self.release(name)

    def get_info(self, name: str) -> LockInfo | None:
        """Get information about a lock (if held)."""
        return None


class LocalLockManager(LockManager):
    """
    Thread-based lock manager for single-process deployments.

    Uses threading.RLock so the holding thread may re-enter.
    """

    def __init__(self):
        self._locks: dict[str, threading.RLock] = {}
        self._lock_info: dict[str, LockInfo] = {}
        self._meta_lock = threading.Lock()
        self._instance_id = str(uuid.uuid4())[:8]

    def _get_lock(self, name: str) -> threading.RLock:
        """Get or create a lock by name."""
        with self._meta_lock:
            if name not in self._locks:
                self._locks[name] = threading.RLock()
            return self._locks[name]

    def acquire(self, name: str, timeout: float = 30.0) -> bool:
        lock = self._get_lock(name)
        if not lock.acquire(timeout=timeout):
            return False

        info = self._lock_info.get(name)
        if info is not None:
            info.depth += 1
        else:
            self._lock_info[name] = LockInfo(
                name=name,
                holder_id=f"{self._instance_id}:{threading.current_thread().name}",
                acquired_at=time.time(),
            )
        return True

    def release(self, name: str) -> bool:
        lock = self._get_lock(name)
        info = self._lock_info.get(name)
        try:
            lock.release()
        except RuntimeError:
            # Not held by this thread
            return False
        if info is not None:
            info.depth -= 1
            if info.depth <= 0:
                self._lock_info.pop(name, None)
        return True

    def is_locked(self, name: str) -> bool:
        return name in self._lock_info

    def get_info(self, name: str) -> LockInfo | None:
        return self._lock_info.get(name)

    def get_all_locks(self) -> list[LockInfo]:
        """Get information about all held locks."""
        return list(self._lock_info.values())
