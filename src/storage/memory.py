"""
In-memory storage backend.

Keeps the ledger state in process memory, for tests and ephemeral
development servers.
"""

import copy
import threading
from typing import Any

from storage.base import StorageBackend


class MemoryStorage(StorageBackend):
    """
    In-memory storage backend.

    All data is lost when the process exits.
    """

    def __init__(self):
        self._data: dict[str, Any] | None = None
        self._lock = threading.RLock()
        self.save_count = 0

    def load_state(self) -> dict[str, Any] | None:
        with self._lock:
            if self._data is None:
                return None
            # Deep copy so callers cannot mutate stored state
            return copy.deepcopy(self._data)

    def save_state(self, state: dict[str, Any]) -> None:
        with self._lock:
            self._data = copy.deepcopy(state)
            self.save_count += 1

    def is_available(self) -> bool:
        return True

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        with self._lock:
            info.update({
                "has_data": self._data is not None,
                "save_count": self.save_count,
            })
        return info

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._data = None
