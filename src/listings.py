"""
Royalty Ledger - Listing Store

Holds at most one active listing per asset. A listing exists exactly when
the asset is available for sale; the two are always created and cleared
together.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from asset_registry import TransferRegistry
from market_errors import Overflow, Unauthorized, check_amount
from rate_oracle import BPS_DENOMINATOR, RoyaltyRateOracle, validate_rate_bps

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Listing:
    """An active fixed-price sale offer for one asset."""

    asset_id: int
    price: int
    royalty_amount: int
    rate_bps: int
    listed_by: str
    listed_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def total_due(self) -> int:
        """Exact payment required to settle this listing."""
        return self.price + self.royalty_amount

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "asset_id": self.asset_id,
            "price": self.price,
            "royalty_amount": self.royalty_amount,
            "rate_bps": self.rate_bps,
            "total_due": self.total_due,
            "listed_by": self.listed_by,
            "listed_at": self.listed_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Listing":
        return cls(
            asset_id=int(data["asset_id"]),
            price=int(data["price"]),
            royalty_amount=int(data["royalty_amount"]),
            rate_bps=int(data["rate_bps"]),
            listed_by=data["listed_by"],
            listed_at=data.get("listed_at") or datetime.utcnow().isoformat(),
        )


def compute_royalty_amount(price: int, rate_bps: int) -> int:
    """Royalty surcharge for a price, truncating toward zero."""
    return price * rate_bps // BPS_DENOMINATOR


class ListingStore:
    """
    Per-asset listing table plus the available-for-sale flags.
    """

    def __init__(self, registry: TransferRegistry, oracle: RoyaltyRateOracle):
        self.registry = registry
        self.oracle = oracle
        self._listings: dict[int, Listing] = {}
        self._available: set[int] = set()

    def create_listing(self, asset_id: int, price: int, actor: str) -> Listing:
        """
        Publish a fixed-price listing for an asset.

        Args:
            asset_id: Asset to list
            price: Sale price in the smallest currency unit
            actor: Address creating the listing

        Returns:
            The stored Listing

        Raises:
            Unauthorized: If actor neither holds nor may transfer the asset
            InvalidAmount: If price or the oracle rate is invalid
            Overflow: If price plus royalty exceeds the amount range
        """
        holder = self.registry.current_holder(asset_id)
        if actor != holder and not self.registry.is_authorized(actor, asset_id):
            raise Unauthorized(
                f"{actor} may not list asset {asset_id}",
                component="listings",
                action="create_listing",
                details={"asset_id": asset_id, "actor": actor},
            )

        price = check_amount(price, "price", "listings", "create_listing")

        rate_bps = validate_rate_bps(self.oracle.rate_bps_for(asset_id))
        royalty_amount = compute_royalty_amount(price, rate_bps)
        try:
            check_amount(price + royalty_amount, "total_due", "listings", "create_listing")
        except Overflow:
            logger.warning("Listing for asset %s rejected: price %s overflows with royalty", asset_id, price)
            raise

        listing = Listing(
            asset_id=asset_id,
            price=price,
            royalty_amount=royalty_amount,
            rate_bps=rate_bps,
            listed_by=actor,
        )
        self._listings[asset_id] = listing
        self._available.add(asset_id)
        return listing

    def clear_listing(self, asset_id: int) -> Listing | None:
        """Remove the listing for an asset; a no-op when none exists."""
        self._available.discard(asset_id)
        return self._listings.pop(asset_id, None)

    def get_listing(self, asset_id: int) -> Listing | None:
        """Active listing for an asset, or None when it is not for sale."""
        if asset_id not in self._available:
            return None
        return self._listings.get(asset_id)

    def is_available(self, asset_id: int) -> bool:
        return asset_id in self._available

    def active_listings(self) -> list[Listing]:
        return [self._listings[a] for a in sorted(self._available)]

    def __len__(self) -> int:
        return len(self._available)

    # =========================================================================
    # Transaction participation
    # =========================================================================

    def snapshot(self) -> tuple[dict[int, Listing], set[int]]:
        return dict(self._listings), set(self._available)

    def restore(self, state: tuple[dict[int, Listing], set[int]]) -> None:
        self._listings, self._available = state

    def to_dict(self) -> dict[str, Any]:
        return {str(a): self._listings[a].to_dict() for a in sorted(self._available)}

    def load_dict(self, data: dict[str, Any]) -> None:
        self._listings = {int(k): Listing.from_dict(v) for k, v in data.items()}
        self._available = set(self._listings)
