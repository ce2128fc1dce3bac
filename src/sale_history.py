"""
Royalty Ledger - Sale History

Append-only, per-asset log of completed sales. Prior sale prices are the
weights used to split the seller pool of every later royalty.

The log has no length bound, so the cost of a settlement grows with the
number of times the asset has been resold.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class SaleRecord:
    """One completed sale. Immutable once appended."""

    price: int
    royalty_amount: int
    seller: str
    buyer: str = ""
    settled_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "price": self.price,
            "royalty_amount": self.royalty_amount,
            "seller": self.seller,
            "buyer": self.buyer,
            "settled_at": self.settled_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SaleRecord":
        return cls(
            price=int(data["price"]),
            royalty_amount=int(data["royalty_amount"]),
            seller=data["seller"],
            buyer=data.get("buyer", ""),
            settled_at=data.get("settled_at") or datetime.utcnow().isoformat(),
        )


class SaleHistory:
    """Ordered sale log keyed by asset id."""

    def __init__(self):
        self._records: dict[int, list[SaleRecord]] = {}

    def append(self, asset_id: int, record: SaleRecord) -> None:
        self._records.setdefault(asset_id, []).append(record)

    def total_historical_value(self, asset_id: int) -> int:
        """Sum of prices over every recorded sale of the asset (0 if none)."""
        return sum(r.price for r in self._records.get(asset_id, ()))

    def records_for(self, asset_id: int) -> Iterator[SaleRecord]:
        """Iterate the asset's sales in append order."""
        return iter(tuple(self._records.get(asset_id, ())))

    def count(self, asset_id: int) -> int:
        return len(self._records.get(asset_id, ()))

    def assets(self) -> list[int]:
        return sorted(self._records)

    # =========================================================================
    # Transaction participation
    # =========================================================================

    def snapshot(self) -> dict[int, int]:
        # Append-only: remembering lengths is enough to undo appends
        return {asset_id: len(records) for asset_id, records in self._records.items()}

    def restore(self, state: dict[int, int]) -> None:
        for asset_id in list(self._records):
            if asset_id not in state:
                del self._records[asset_id]
            else:
                del self._records[asset_id][state[asset_id]:]

    def to_dict(self) -> dict[str, Any]:
        return {
            str(asset_id): [r.to_dict() for r in records]
            for asset_id, records in self._records.items()
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        self._records = {
            int(k): [SaleRecord.from_dict(r) for r in v]
            for k, v in data.items()
        }
