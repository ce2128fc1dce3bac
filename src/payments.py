"""
Royalty Ledger - Outbound Payments

The engine pays sellers and claimants through a PaymentGateway. Every
send() is treated as a point where recipient code may run, including calls
straight back into the engine.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from market_errors import PayoutFailed

logger = logging.getLogger(__name__)


class PaymentGateway(ABC):
    """Native-currency transfer primitive used by the engine."""

    @abstractmethod
    def send(self, recipient: str, amount: int) -> None:
        """
        Deliver amount to recipient.

        Raises:
            PayoutFailed: If the payment cannot be delivered
        """
        pass


@dataclass
class Transfer:
    """A delivered outbound payment."""

    recipient: str
    amount: int
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "recipient": self.recipient,
            "amount": self.amount,
            "timestamp": self.timestamp,
        }


class InMemoryPaymentGateway(PaymentGateway):
    """
    Gateway that records deliveries in memory.

    Recipients can be marked as rejecting payments, and receive hooks can be
    attached to run arbitrary code while a payment is being delivered.
    """

    def __init__(self):
        self.received: dict[str, int] = {}
        self.transfers: list[Transfer] = []
        self._rejecting: set[str] = set()
        self._hooks: dict[str, Callable[[str, int], None]] = {}

    def reject(self, address: str, rejecting: bool = True) -> None:
        """Make deliveries to address fail (or succeed again)."""
        if rejecting:
            self._rejecting.add(address)
        else:
            self._rejecting.discard(address)

    def on_receive(self, address: str, hook: Callable[[str, int], None] | None) -> None:
        """Run hook(address, amount) whenever address is paid."""
        if hook is None:
            self._hooks.pop(address, None)
        else:
            self._hooks[address] = hook

    def send(self, recipient: str, amount: int) -> None:
        if recipient in self._rejecting:
            raise PayoutFailed(
                f"Recipient {recipient} rejected payment",
                component="payments",
                action="send",
                details={"recipient": recipient, "amount": amount},
            )

        self.received[recipient] = self.received.get(recipient, 0) + amount
        self.transfers.append(Transfer(
            recipient=recipient,
            amount=amount,
            timestamp=datetime.utcnow().isoformat(),
        ))

        hook = self._hooks.get(recipient)
        if hook is not None:
            try:
                hook(recipient, amount)
            except Exception as e:
                raise PayoutFailed(
                    f"Recipient {recipient} failed while receiving payment",
                    component="payments",
                    action="send",
                    details={"recipient": recipient, "amount": amount},
                    cause=e,
                ) from e

    def received_by(self, address: str) -> int:
        """Total delivered to address."""
        return self.received.get(address, 0)

    # =========================================================================
    # Transaction participation
    # =========================================================================

    def snapshot(self) -> dict[str, Any]:
        return {"received": dict(self.received), "transfer_count": len(self.transfers)}

    def restore(self, state: dict[str, Any]) -> None:
        self.received = state["received"]
        del self.transfers[state["transfer_count"]:]
