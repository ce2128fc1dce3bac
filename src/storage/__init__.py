"""
Storage abstraction layer for the royalty ledger.

Backends:
- JSON file (default)
- Memory (for testing)

Usage:
    from storage import get_storage_backend

    storage = get_storage_backend()
    storage.save_state(engine.to_dict())
    data = storage.load_state()
"""

import os

from storage.base import StorageBackend, StorageError, StorageReadError, StorageWriteError
from storage.json_file import JSONFileStorage
from storage.memory import MemoryStorage

__all__ = [
    "JSONFileStorage",
    "MemoryStorage",
    "StorageBackend",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "get_storage_backend",
]


def get_storage_backend(backend_type: str | None = None, data_file: str | None = None) -> StorageBackend:
    """
    Build a storage backend.

    Environment variables (used when arguments are omitted):
        STORAGE_BACKEND: "json" or "memory"
        LEDGER_DATA_FILE: Path for JSON file storage (default: ledger_data.json)

    Raises:
        StorageError: For an unknown backend type
    """
    backend_type = (backend_type or os.getenv("STORAGE_BACKEND", "json")).lower()

    if backend_type == "json":
        return JSONFileStorage(data_file or os.getenv("LEDGER_DATA_FILE", "ledger_data.json"))

    if backend_type == "memory":
        return MemoryStorage()

    raise StorageError(f"Unknown storage backend: {backend_type}")
