"""
Concurrency control for the royalty ledger.

Provides the named, reentrant locks that make each ledger operation
indivisible with respect to every other operation.

Usage:
    from scaling import get_lock_manager

    with get_lock_manager().lock("royalty_ledger"):
        ...
"""

from scaling.locking import LocalLockManager, LockInfo, LockManager

__all__ = [
    "LockInfo",
    "LockManager",
    "LocalLockManager",
    "get_lock_manager",
]

# Singleton instance
_lock_manager: LockManager | None = None


def get_lock_manager() -> LockManager:
    """Get the process-wide lock manager."""
    global _lock_manager
    if _lock_manager is None:
        _lock_manager = LocalLockManager()
    return _lock_manager
