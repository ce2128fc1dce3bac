"""
JSON file storage backend.

The default backend: the ledger state is written to a local JSON file. Writes
go to a temporary file that is renamed over the target, so a crash never
leaves a half-written ledger behind.
"""

import json
import os
import threading
from typing import Any

from storage.base import StorageBackend, StorageReadError, StorageWriteError


class JSONFileStorage(StorageBackend):
    """
    JSON file storage backend, thread-safe via an instance lock.
    """

    def __init__(self, file_path: str = "ledger_data.json"):
        """
        Initialize JSON file storage.

        Args:
            file_path: Path to the JSON file
        """
        self.file_path = file_path
        self._lock = threading.Lock()

    def load_state(self) -> dict[str, Any] | None:
        with self._lock:
            try:
                if not os.path.exists(self.file_path):
                    return None

                with open(self.file_path, "r", encoding="utf-8") as f:
                    raw_data = f.read()

                if not raw_data.strip():
                    return None

                return json.loads(raw_data)

            except FileNotFoundError:
                return None
            except PermissionError as e:
                raise StorageReadError(f"Permission denied: {self.file_path}") from e
            except json.JSONDecodeError as e:
                raise StorageReadError(f"Invalid JSON format: {e}") from e
            except OSError as e:
                raise StorageReadError(f"Failed to load ledger: {e}") from e

    def save_state(self, state: dict[str, Any]) -> None:
        with self._lock:
            try:
                # Amounts can exceed 64 bits; JSON integers carry them exactly
                data = json.dumps(state, indent=2, ensure_ascii=False)

                temp_path = f"{self.file_path}.tmp"
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(data)

                os.replace(temp_path, self.file_path)

            except PermissionError as e:
                raise StorageWriteError(f"Permission denied: {self.file_path}") from e
            except (TypeError, ValueError) as e:
                raise StorageWriteError(f"Ledger state is not serialisable: {e}") from e
            except OSError as e:
                raise StorageWriteError(f"OS error: {e}") from e

    def is_available(self) -> bool:
        """True if the target directory exists and is writable."""
        directory = os.path.dirname(os.path.abspath(self.file_path))
        return os.path.isdir(directory) and os.access(directory, os.W_OK)

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info.update({
            "file_path": self.file_path,
            "exists": os.path.exists(self.file_path),
            "size_bytes": os.path.getsize(self.file_path) if os.path.exists(self.file_path) else 0,
        })
        return info
