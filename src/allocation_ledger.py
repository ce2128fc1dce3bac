"""
Royalty Ledger - Allocation Ledger

Pull-payment ledger of accrued but unclaimed royalties. Beneficiaries are
credited during settlement and withdraw their whole balance with claim().
"""

import logging
from typing import Any

from market_errors import NothingToClaim, PayoutFailed, check_amount, checked_add
from payments import PaymentGateway

logger = logging.getLogger(__name__)


class AllocationLedger:
    """
    Beneficiary -> balance mapping with lifetime totals.

    Entries are kept at zero after a claim so former beneficiaries stay
    enumerable; a zero entry has no effect on future splits.
    """

    def __init__(self):
        self.balances: dict[str, int] = {}
        self.total_earned: dict[str, int] = {}
        self.total_claimed: dict[str, int] = {}

    def credit(self, address: str, amount: int) -> int:
        """
        Add amount to address's balance.

        Returns:
            The new balance

        Raises:
            Overflow: If the balance would exceed the amount range
        """
        amount = check_amount(amount, "amount", "ledger", "credit")
        balance = checked_add(self.balances.get(address, 0), amount, "ledger", "credit")
        earned = checked_add(self.total_earned.get(address, 0), amount, "ledger", "credit")
        self.balances[address] = balance
        self.total_earned[address] = earned
        return balance

    def balance_of(self, address: str) -> int:
        return self.balances.get(address, 0)

    def claim(self, address: str, gateway: PaymentGateway) -> int:
        """
        Pay out and zero address's balance.

        The balance is zeroed before the payment is sent, so a recipient that
        calls claim() again while being paid finds nothing to claim.

        Returns:
            The amount paid

        Raises:
            NothingToClaim: If the balance is zero
            PayoutFailed: If delivery fails; the balance is restored first
        """
        amount = self.balances.get(address, 0)
        if amount == 0:
            raise NothingToClaim(
                f"No allocation to claim for {address}",
                component="ledger",
                action="claim",
                details={"address": address},
            )

        self.balances[address] = 0
        try:
            gateway.send(address, amount)
        except PayoutFailed:
            self.balances[address] = self.balances.get(address, 0) + amount
            logger.warning("Claim payout of %s to %s failed; balance restored", amount, address)
            raise

        self.total_claimed[address] = self.total_claimed.get(address, 0) + amount
        return amount

    def beneficiaries(self) -> list[str]:
        return sorted(self.balances)

    def total_outstanding(self) -> int:
        return sum(self.balances.values())

    # =========================================================================
    # Transaction participation
    # =========================================================================

    def snapshot(self) -> tuple[dict[str, int], dict[str, int], dict[str, int]]:
        return dict(self.balances), dict(self.total_earned), dict(self.total_claimed)

    def restore(self, state: tuple[dict[str, int], dict[str, int], dict[str, int]]) -> None:
        self.balances, self.total_earned, self.total_claimed = state

    def to_dict(self) -> dict[str, Any]:
        return {
            address: {
                "balance": self.balances[address],
                "total_earned": self.total_earned.get(address, 0),
                "total_claimed": self.total_claimed.get(address, 0),
            }
            for address in self.beneficiaries()
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        self.balances = {a: int(v["balance"]) for a, v in data.items()}
        self.total_earned = {a: int(v.get("total_earned", 0)) for a, v in data.items()}
        self.total_claimed = {a: int(v.get("total_claimed", 0)) for a, v in data.items()}
