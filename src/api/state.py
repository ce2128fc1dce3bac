"""
Shared state for the royalty ledger API.

Holds the single engine instance and its collaborators, shared by every
blueprint. The app factory populates it; persistence happens here after
each committed mutation.
"""

import logging
from dataclasses import dataclass
from typing import Any

from asset_registry import InMemoryTransferRegistry
from config import MarketConfig
from payments import InMemoryPaymentGateway
from rate_oracle import StaticRateOracle
from settlement import LEDGER_LOCK_NAME, SettlementEngine
from storage import StorageBackend, get_storage_backend

logger = logging.getLogger(__name__)

STATE_VERSION = 1


@dataclass
class MarketState:
    """The engine plus the reference collaborators it runs against."""

    config: MarketConfig
    engine: SettlementEngine
    registry: InMemoryTransferRegistry
    oracle: StaticRateOracle
    gateway: InMemoryPaymentGateway
    storage: StorageBackend

    def locked(self):
        """Context manager holding the ledger lock."""
        return self.engine.lock_manager.lock(LEDGER_LOCK_NAME, timeout=self.engine.lock_timeout)

    def to_dict(self) -> dict[str, Any]:
        """Consistent view of ledger, registry and rates, read under the ledger lock."""
        with self.locked():
            return {
                "version": STATE_VERSION,
                "ledger": self.engine.to_dict(),
                "registry": self.registry.to_dict(),
                "rates": self.oracle.to_dict(),
            }

    def persist(self) -> None:
        """Save the full state to the configured backend."""
        # Held across the write so saves land in commit order
        with self.locked():
            self.storage.save_state(self.to_dict())

    def load(self) -> bool:
        """
        Load saved state if the backend has any.

        Returns:
            True if state was loaded
        """
        data = self.storage.load_state()
        if not data:
            return False

        self.engine.load_state(data.get("ledger", {}))
        self.registry.load_dict(data.get("registry", {}))
        for asset_id, bps in data.get("rates", {}).get("overrides", {}).items():
            self.oracle.set_rate(int(asset_id), int(bps))
        return True


# The active market, set by init_market()
market: MarketState | None = None


def init_market(config: MarketConfig, storage: StorageBackend | None = None) -> MarketState:
    """
    Build the engine and its collaborators, loading any saved state.

    Args:
        config: Process configuration
        storage: Backend override (defaults to the configured backend)

    Returns:
        The new active MarketState
    """
    global market

    registry = InMemoryTransferRegistry()
    oracle = StaticRateOracle(default_bps=config.default_royalty_bps)
    gateway = InMemoryPaymentGateway()
    engine = SettlementEngine(
        registry=registry,
        oracle=oracle,
        gateway=gateway,
        creator=config.creator_address,
        creator_royalty=config.creator_royalty,
        first_sale_policy=config.first_sale_policy,
        lock_timeout=config.lock_timeout,
    )
    if storage is None:
        storage = get_storage_backend(config.storage_backend, config.ledger_data_file)

    market = MarketState(
        config=config,
        engine=engine,
        registry=registry,
        oracle=oracle,
        gateway=gateway,
        storage=storage,
    )
    if market.load():
        logger.info("Restored ledger state from %s", type(storage).__name__)
    return market


def get_market() -> MarketState:
    """Get the active market or fail loudly if the app was not initialised."""
    if market is None:
        raise RuntimeError("Market not initialised; call init_market() first")
    return market
