"""
Royalty Ledger - Settlement Engine

Atomic fixed-price sales with a royalty surcharge that is split between the
collection creator and every prior seller of the asset.

Key Concepts:
- A holder lists an asset at a price; the royalty surcharge is fixed from the
  rate oracle at listing time
- A buyer settles by paying exactly price + royalty
- The creator receives creator_royalty percent of each royalty
- The remaining seller pool is divided among prior sellers in proportion to
  the price each of them sold at
- Royalties accrue in the allocation ledger and are withdrawn with claim()

Every public mutating operation is all-or-nothing. State a reentrant call
could reuse (the listing in settle, the balance in claim) is consumed before
any outbound payment is made.
"""

import logging
import secrets
from collections.abc import Callable, Iterable
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from allocation_ledger import AllocationLedger
from asset_registry import TransferRegistry, is_null_address
from listings import Listing, ListingStore
from market_errors import (
    IncorrectPayment,
    InvalidDestination,
    MarketError,
    NotOwner,
    Unauthorized,
    checked_add,
)
from monitoring.metrics import MetricsCollector
from monitoring.metrics import metrics as default_metrics
from payments import PaymentGateway
from rate_oracle import RoyaltyRateOracle
from sale_history import SaleHistory, SaleRecord
from scaling import get_lock_manager
from scaling.locking import LockManager

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

LEDGER_LOCK_NAME = "royalty_ledger"
PERCENT_DENOMINATOR = 100
DEFAULT_LOCK_TIMEOUT = 30.0


# =============================================================================
# Enums
# =============================================================================


class FirstSalePolicy(Enum):
    """Where the seller pool goes when there are no prior sale prices to weight by."""

    SELLER = "seller"  # Credit the current seller
    CREATOR = "creator"  # Credit the collection creator
    ESCROW = "escrow"  # Leave it unallocated in the contract balance


class MarketEventType(Enum):
    """Committed ledger notifications."""

    LISTED = "listed"
    SOLD = "sold"
    CLAIMED = "claimed"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class RoyaltySplit:
    """How one royalty payment is divided."""

    royalty_amount: int
    creator_amount: int
    seller_pool: int
    total_historical_value: int
    seller_credits: list[tuple[str, int]] = field(default_factory=list)
    # Set only when there was no prior sale value to weight the pool by
    undivided_recipient: str | None = None
    undivided_amount: int = 0
    escrowed: int = 0
    residual: int = 0

    @property
    def allocated(self) -> int:
        """Total credited to beneficiaries."""
        return (
            self.creator_amount
            + sum(amount for _, amount in self.seller_credits)
            + self.undivided_amount
        )

    @property
    def unallocated(self) -> int:
        """Part of the royalty left in the contract balance."""
        return self.escrowed + self.residual

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "royalty_amount": self.royalty_amount,
            "creator_amount": self.creator_amount,
            "seller_pool": self.seller_pool,
            "total_historical_value": self.total_historical_value,
            "seller_credits": [
                {"seller": seller, "amount": amount} for seller, amount in self.seller_credits
            ],
            "undivided_recipient": self.undivided_recipient,
            "undivided_amount": self.undivided_amount,
            "escrowed": self.escrowed,
            "residual": self.residual,
            "allocated": self.allocated,
        }


@dataclass
class SettlementResult:
    """Outcome of a successful settlement."""

    asset_id: int
    seller: str
    buyer: str
    price: int
    royalty_amount: int
    split: RoyaltySplit
    record: SaleRecord

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "settled": True,
            "asset_id": self.asset_id,
            "seller": self.seller,
            "buyer": self.buyer,
            "price": self.price,
            "royalty_amount": self.royalty_amount,
            "split": self.split.to_dict(),
            "record": self.record.to_dict(),
        }


@dataclass
class MarketEvent:
    """Audit trail entry."""

    event_id: str
    event_type: MarketEventType
    timestamp: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "data": self.data,
        }


# =============================================================================
# Royalty Split
# =============================================================================


def compute_royalty_split(
    royalty_amount: int,
    creator_royalty: int,
    prior_sales: Iterable[SaleRecord],
    creator: str,
    seller: str,
    policy: FirstSalePolicy = FirstSalePolicy.SELLER,
) -> RoyaltySplit:
    """
    Divide a royalty between the creator and the asset's prior sellers.

    Each prior seller's share is a whole percentage of the total prior sale
    value, truncated, and then applied to the seller pool with a second
    truncation. The double truncation under-allocates slightly; whatever is
    not credited is reported as the residual.

    Args:
        royalty_amount: Royalty collected by this settlement
        creator_royalty: Creator's percentage (0-100)
        prior_sales: Sales recorded before this one, in append order
        creator: Creator address
        seller: Seller of the current sale
        policy: Destination of the pool when no prior value exists

    Returns:
        RoyaltySplit describing every credit
    """
    creator_amount = royalty_amount * creator_royalty // PERCENT_DENOMINATOR
    seller_pool = royalty_amount - creator_amount

    prior = list(prior_sales)
    total_historical_value = sum(r.price for r in prior)

    split = RoyaltySplit(
        royalty_amount=royalty_amount,
        creator_amount=creator_amount,
        seller_pool=seller_pool,
        total_historical_value=total_historical_value,
    )

    if total_historical_value == 0:
        # Nothing to weight by; the proportional loop would divide by zero
        if policy is FirstSalePolicy.ESCROW:
            split.escrowed = seller_pool
        else:
            split.undivided_recipient = seller if policy is FirstSalePolicy.SELLER else creator
            split.undivided_amount = seller_pool
    else:
        for record in prior:
            share = record.price * PERCENT_DENOMINATOR // total_historical_value
            amount = seller_pool * share // PERCENT_DENOMINATOR
            split.seller_credits.append((record.seller, amount))

    split.residual = royalty_amount - split.allocated - split.escrowed
    return split


# =============================================================================
# Settlement Engine
# =============================================================================


class SettlementEngine:
    """
    Listing, settlement and claim operations over one collection.
    """

    def __init__(
        self,
        registry: TransferRegistry,
        oracle: RoyaltyRateOracle,
        gateway: PaymentGateway,
        creator: str,
        creator_royalty: int,
        first_sale_policy: FirstSalePolicy | str = FirstSalePolicy.SELLER,
        lock_manager: LockManager | None = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the settlement engine.

        Args:
            registry: Ownership registry consulted and updated on settlement
            oracle: Royalty rate source read at listing time
            gateway: Outbound payment primitive
            creator: Collection creator credited with the creator share
            creator_royalty: Creator percentage of every royalty, fixed for life
            first_sale_policy: Destination of the undivided seller pool
            lock_manager: Lock provider (defaults to the process-wide one)
            lock_timeout: Seconds to wait for the ledger lock
            metrics: Metrics collector (defaults to the global collector)
        """
        if isinstance(creator_royalty, bool) or not isinstance(creator_royalty, int):
            raise ValueError("creator_royalty must be an integer percentage")
        if not 0 <= creator_royalty <= PERCENT_DENOMINATOR:
            raise ValueError("creator_royalty must be between 0 and 100")
        if is_null_address(creator):
            raise ValueError("creator address is required")

        self._creator_royalty = creator_royalty
        self.creator = creator
        self.first_sale_policy = FirstSalePolicy(first_sale_policy)

        self.registry = registry
        self.oracle = oracle
        self.gateway = gateway

        self.listings = ListingStore(registry, oracle)
        self.history = SaleHistory()
        self.ledger = AllocationLedger()

        # Funds received and not yet paid out
        self.held_balance = 0
        # Escrowed pools and truncation dust; part of held_balance
        self.unallocated_total = 0

        self.lock_manager = lock_manager or get_lock_manager()
        self.lock_timeout = lock_timeout
        self.metrics = metrics if metrics is not None else default_metrics

        # Audit trail
        self.events: list[MarketEvent] = []
        self._pending: list[MarketEvent] = []
        self._listeners: list[Callable[[MarketEvent], None]] = []
        self._depth = 0

    @property
    def creator_royalty(self) -> int:
        """Creator's percentage of every royalty."""
        return self._creator_royalty

    # =========================================================================
    # Listing
    # =========================================================================

    def create_listing(self, asset_id: int, price: int, actor: str) -> Listing:
        """
        List an asset for sale, replacing any existing listing.

        Args:
            asset_id: Asset to list
            price: Price in the smallest currency unit
            actor: Holder, or an address with transfer authority

        Returns:
            The new Listing (price and royalty_amount)
        """
        with self._atomic("create_listing"):
            listing = self.listings.create_listing(asset_id, price, actor)
            self._emit(MarketEventType.LISTED, {"asset_id": asset_id, "price": listing.price})

        logger.info(
            "Listed asset %s at %s (royalty %s at %s bps)",
            asset_id, listing.price, listing.royalty_amount, listing.rate_bps,
        )
        self.metrics.increment("listings_created_total")
        self._dispatch_pending()
        return listing

    def get_listing(self, asset_id: int) -> Listing | None:
        return self.listings.get_listing(asset_id)

    def is_available(self, asset_id: int) -> bool:
        return self.listings.is_available(asset_id)

    # =========================================================================
    # Settlement
    # =========================================================================

    def settle(
        self,
        asset_id: int,
        buyer: str,
        seller: str,
        payment_sent: int,
        caller: str,
    ) -> SettlementResult | None:
        """
        Buy a listed asset.

        Args:
            asset_id: Asset being bought
            buyer: Address receiving custody
            seller: Asserted current holder
            payment_sent: Amount paid; must equal price + royalty
            caller: Address submitting the settlement (seller or authorized)

        Returns:
            SettlementResult, or None when the asset is not listed (no-op)

        Raises:
            NotOwner, Unauthorized, InvalidDestination, IncorrectPayment,
            PayoutFailed, Overflow
        """
        try:
            with self.metrics.timer("settlement_duration_ms"):
                with self._atomic("settle"):
                    result = self._settle(asset_id, buyer, seller, payment_sent, caller)
        except MarketError as e:
            self.metrics.increment("settlements_failed_total", labels={"error": type(e).__name__})
            logger.info("Settlement of asset %s rejected: %s", asset_id, e)
            raise

        if result is None:
            self.metrics.increment("settlements_noop_total")
            return None

        logger.info(
            "Settled asset %s: %s -> %s for %s + %s royalty",
            asset_id, seller, buyer, result.price, result.royalty_amount,
        )
        self.metrics.increment("settlements_total")
        self.metrics.increment("royalty_allocated_total", result.split.allocated)
        self._update_gauges()
        self._dispatch_pending()
        return result

    def _settle(
        self,
        asset_id: int,
        buyer: str,
        seller: str,
        payment_sent: int,
        caller: str,
    ) -> SettlementResult | None:
        if self.registry.current_holder(asset_id) != seller:
            raise NotOwner(
                f"{seller} does not hold asset {asset_id}",
                component="settlement",
                action="settle",
                details={"asset_id": asset_id, "seller": seller},
            )
        if caller != seller and not self.registry.is_authorized(caller, asset_id):
            raise Unauthorized(
                f"{caller} may not sell asset {asset_id} for {seller}",
                component="settlement",
                action="settle",
                details={"asset_id": asset_id, "caller": caller},
            )
        if is_null_address(buyer):
            raise InvalidDestination(
                "Buyer cannot be the null address",
                component="settlement",
                action="settle",
                details={"asset_id": asset_id},
            )

        listing = self.listings.get_listing(asset_id)
        if listing is None:
            logger.warning("Settlement requested for unlisted asset %s; nothing done", asset_id)
            return None

        if (
            isinstance(payment_sent, bool)
            or not isinstance(payment_sent, int)
            or payment_sent != listing.total_due
        ):
            raise IncorrectPayment(
                f"Payment must be exactly {listing.total_due}",
                component="settlement",
                action="settle",
                details={
                    "asset_id": asset_id,
                    "expected": listing.total_due,
                    "received": repr(payment_sent),
                },
            )
        self.held_balance = checked_add(self.held_balance, payment_sent, "settlement", "settle")

        # Consume the listing before money leaves, so a reentrant settle is a no-op
        self.listings.clear_listing(asset_id)

        self.gateway.send(seller, listing.price)
        self.held_balance -= listing.price

        split = self._allocate_royalty(asset_id, listing.royalty_amount, seller)

        record = SaleRecord(
            price=listing.price,
            royalty_amount=listing.royalty_amount,
            seller=seller,
            buyer=buyer,
        )
        self.history.append(asset_id, record)

        self.registry.transfer_custody(asset_id, seller, buyer)

        self._emit(MarketEventType.SOLD, {
            "asset_id": asset_id,
            "seller": seller,
            "buyer": buyer,
            "price": listing.price,
            "royalty_amount": listing.royalty_amount,
        })

        return SettlementResult(
            asset_id=asset_id,
            seller=seller,
            buyer=buyer,
            price=listing.price,
            royalty_amount=listing.royalty_amount,
            split=split,
            record=record,
        )

    def _allocate_royalty(self, asset_id: int, royalty_amount: int, seller: str) -> RoyaltySplit:
        """Credit the ledger with one royalty, against strictly prior sales."""
        split = compute_royalty_split(
            royalty_amount,
            self._creator_royalty,
            self.history.records_for(asset_id),
            self.creator,
            seller,
            self.first_sale_policy,
        )

        self.ledger.credit(self.creator, split.creator_amount)
        for prior_seller, amount in split.seller_credits:
            self.ledger.credit(prior_seller, amount)
        if split.undivided_recipient is not None:
            self.ledger.credit(split.undivided_recipient, split.undivided_amount)

        self.unallocated_total = checked_add(
            self.unallocated_total, split.unallocated, "settlement", "allocate_royalty"
        )
        return split

    def preview_split(self, asset_id: int, royalty_amount: int, seller: str | None = None) -> RoyaltySplit:
        """Split a hypothetical royalty against current history without changing state."""
        if seller is None:
            try:
                seller = self.registry.current_holder(asset_id)
            except MarketError:
                seller = ""
        return compute_royalty_split(
            royalty_amount,
            self._creator_royalty,
            self.history.records_for(asset_id),
            self.creator,
            seller,
            self.first_sale_policy,
        )

    def sale_history(self, asset_id: int) -> list[SaleRecord]:
        return list(self.history.records_for(asset_id))

    # =========================================================================
    # Claims
    # =========================================================================

    def claim(self, address: str) -> int:
        """
        Withdraw address's entire allocation.

        Returns:
            Amount paid out

        Raises:
            NothingToClaim: If the balance is zero
            PayoutFailed: If the payment cannot be delivered
        """
        with self._atomic("claim"):
            amount = self.ledger.claim(address, self.gateway)
            self.held_balance -= amount
            self._emit(MarketEventType.CLAIMED, {"address": address, "amount": amount})

        logger.info("Claimed %s for %s", amount, address)
        self.metrics.increment("claims_total")
        self._update_gauges()
        self._dispatch_pending()
        return amount

    def balance_of(self, address: str) -> int:
        return self.ledger.balance_of(address)

    def beneficiaries(self) -> list[str]:
        return self.ledger.beneficiaries()

    # =========================================================================
    # Notifications
    # =========================================================================

    def subscribe(self, listener: Callable[[MarketEvent], None]) -> None:
        """Register a listener for committed events."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[MarketEvent], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event_type: MarketEventType, data: dict[str, Any]) -> None:
        event = MarketEvent(
            event_id=f"evt_{secrets.token_hex(8)}",
            event_type=event_type,
            timestamp=datetime.utcnow().isoformat(),
            data=data,
        )
        self.events.append(event)
        self._pending.append(event)

    def _dispatch_pending(self) -> None:
        """Deliver events queued by committed operations."""
        with self.lock_manager.lock(LEDGER_LOCK_NAME, timeout=self.lock_timeout):
            if self._depth > 0:
                # Still inside an outer operation; it dispatches on commit
                return
            pending, self._pending = self._pending, []

        for event in pending:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Event listener failed for %s", event.event_type.value)

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transaction(self, action: str = "transaction"):
        """
        Serialise changes to shared collaborators with ledger operations.

        Registry and rate changes made outside the engine must run in here;
        otherwise a concurrent settlement that rolls back restores its
        snapshot over them.

        Usage:
            with engine.transaction("mint"):
                registry.mint(asset_id, owner)
        """
        with self._atomic(action):
            yield

    @contextmanager
    def _atomic(self, action: str):
        """Run a block under the ledger lock, undoing all of its effects on error."""
        with self.lock_manager.lock(LEDGER_LOCK_NAME, timeout=self.lock_timeout):
            saved = [(p, p.snapshot()) for p in self._participants()]
            self._depth += 1
            try:
                yield
            except Exception as e:
                for participant, state in reversed(saved):
                    participant.restore(state)
                logger.warning("Rolled back %s: %s", action, e)
                raise
            finally:
                self._depth -= 1

    def _participants(self) -> list[Any]:
        participants: list[Any] = [self, self.listings, self.history, self.ledger]
        for collaborator in (self.registry, self.gateway, self.oracle):
            if hasattr(collaborator, "snapshot") and hasattr(collaborator, "restore"):
                participants.append(collaborator)
        return participants

    def snapshot(self) -> tuple[int, int, int, int]:
        return self.held_balance, self.unallocated_total, len(self.events), len(self._pending)

    def restore(self, state: tuple[int, int, int, int]) -> None:
        self.held_balance, self.unallocated_total, event_count, pending_count = state
        del self.events[event_count:]
        del self._pending[pending_count:]

    def _update_gauges(self) -> None:
        self.metrics.set_gauge("held_balance", float(self.held_balance))
        self.metrics.set_gauge("unallocated_total", float(self.unallocated_total))

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Serialise the whole ledger state."""
        with self.lock_manager.lock(LEDGER_LOCK_NAME, timeout=self.lock_timeout):
            return {
                "creator": self.creator,
                "creator_royalty": self._creator_royalty,
                "first_sale_policy": self.first_sale_policy.value,
                "held_balance": self.held_balance,
                "unallocated_total": self.unallocated_total,
                "listings": self.listings.to_dict(),
                "history": self.history.to_dict(),
                "allocations": self.ledger.to_dict(),
            }

    def load_state(self, data: dict[str, Any]) -> None:
        """
        Restore ledger state produced by to_dict().

        Raises:
            ValueError: If the stored creator or creator royalty differs from this engine's
        """
        stored_creator = data.get("creator", self.creator)
        if stored_creator != self.creator:
            raise ValueError(
                f"Stored creator {stored_creator} differs from configured "
                f"{self.creator}; creator cannot change"
            )
        stored_royalty = data.get("creator_royalty", self._creator_royalty)
        if int(stored_royalty) != self._creator_royalty:
            raise ValueError(
                f"Stored creator royalty {stored_royalty} differs from configured "
                f"{self._creator_royalty}; creator royalty cannot change"
            )

        with self.lock_manager.lock(LEDGER_LOCK_NAME, timeout=self.lock_timeout):
            self.listings.load_dict(data.get("listings", {}))
            self.history.load_dict(data.get("history", {}))
            self.ledger.load_dict(data.get("allocations", {}))
            self.held_balance = int(data.get("held_balance", 0))
            self.unallocated_total = int(data.get("unallocated_total", 0))

        logger.info(
            "Loaded ledger state: %d listings, %d assets with history, %d beneficiaries",
            len(self.listings), len(self.history.assets()), len(self.ledger.beneficiaries()),
        )

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_statistics(self) -> dict[str, Any]:
        """Summary of ledger contents."""
        with self.lock_manager.lock(LEDGER_LOCK_NAME, timeout=self.lock_timeout):
            assets = self.history.assets()
            sale_count = sum(self.history.count(a) for a in assets)
            volume = sum(self.history.total_historical_value(a) for a in assets)
            event_counts: dict[str, int] = {}
            for event in self.events:
                key = event.event_type.value
                event_counts[key] = event_counts.get(key, 0) + 1

            return {
                "creator": self.creator,
                "creator_royalty": self._creator_royalty,
                "first_sale_policy": self.first_sale_policy.value,
                "active_listings": len(self.listings),
                "assets_sold": len(assets),
                "sales": sale_count,
                "volume": volume,
                "held_balance": self.held_balance,
                "unallocated_total": self.unallocated_total,
                "outstanding_allocations": self.ledger.total_outstanding(),
                "beneficiaries": len(self.ledger.beneficiaries()),
                "events": event_counts,
            }
