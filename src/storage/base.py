"""
Abstract base class for ledger storage backends.

A backend persists the serialised ledger state produced by
SettlementEngine.to_dict() (and, when the in-memory reference registry is
used, the registry contents alongside it).
"""

from abc import ABC, abstractmethod
from typing import Any


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class StorageReadError(StorageError):
    """Raised when reading from storage fails."""
    pass


class StorageWriteError(StorageError):
    """Raised when writing to storage fails."""
    pass


class StorageBackend(ABC):
    """
    Interface every ledger storage backend implements.
    """

    @abstractmethod
    def load_state(self) -> dict[str, Any] | None:
        """
        Load the persisted ledger state.

        Returns:
            State dictionary, or None if nothing has been saved yet

        Raises:
            StorageReadError: If reading fails
        """
        pass

    @abstractmethod
    def save_state(self, state: dict[str, Any]) -> None:
        """
        Persist the complete ledger state, replacing what was stored.

        Raises:
            StorageWriteError: If writing fails
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """True if the backend is ready for reads and writes."""
        pass

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the storage backend.

        Returns:
            Dictionary with backend type and status
        """
        return {
            "backend_type": self.__class__.__name__,
            "available": self.is_available(),
        }
