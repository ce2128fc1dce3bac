"""
Royalty Ledger - Royalty Rate Oracle

Supplies the royalty rate, in basis points, applied to an asset's sale
price. The rate is read once when a listing is created.
"""

from abc import ABC, abstractmethod
from typing import Any

from market_errors import InvalidAmount

BPS_DENOMINATOR = 10000
DEFAULT_ROYALTY_BPS = 500  # 5%


def validate_rate_bps(bps: Any) -> int:
    """Validate a basis-points rate and return it as int."""
    if isinstance(bps, bool) or not isinstance(bps, int) or not 0 <= bps <= BPS_DENOMINATOR:
        raise InvalidAmount(
            f"Royalty rate must be an integer between 0 and {BPS_DENOMINATOR} bps",
            component="rate_oracle",
            action="validate_rate",
            details={"bps": repr(bps)},
        )
    return bps


class RoyaltyRateOracle(ABC):
    """Abstract per-asset royalty rate source."""

    @abstractmethod
    def rate_bps_for(self, asset_id: int) -> int:
        """Get the royalty rate for an asset in basis points, within [0, 10000]."""
        pass


class StaticRateOracle(RoyaltyRateOracle):
    """Fixed default rate with optional per-asset overrides."""

    def __init__(self, default_bps: int = DEFAULT_ROYALTY_BPS, overrides: dict[int, int] | None = None):
        self.default_bps = validate_rate_bps(default_bps)
        self.overrides: dict[int, int] = {}
        for asset_id, bps in (overrides or {}).items():
            self.set_rate(asset_id, bps)

    def set_rate(self, asset_id: int, bps: int) -> None:
        """Override the rate for one asset."""
        self.overrides[asset_id] = validate_rate_bps(bps)

    def rate_bps_for(self, asset_id: int) -> int:
        return self.overrides.get(asset_id, self.default_bps)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "default_bps": self.default_bps,
            "overrides": {str(k): v for k, v in self.overrides.items()},
        }
