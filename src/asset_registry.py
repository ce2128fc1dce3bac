"""
Royalty Ledger - Transfer Registry

The registry owns asset ownership, approvals and the primitive custody
transfer. The settlement engine only consumes the TransferRegistry
interface; InMemoryTransferRegistry is the reference implementation used by
the bundled server and the tests.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any

from market_errors import InvalidDestination, NotOwner, UnknownAsset

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def is_null_address(address: str | None) -> bool:
    """True for the empty/None address and the all-zero address."""
    return not address or address.lower() == ZERO_ADDRESS


class TransferRegistry(ABC):
    """
    Abstract ownership registry consumed by the settlement engine.
    """

    @abstractmethod
    def current_holder(self, asset_id: int) -> str:
        """
        Get the current holder of an asset.

        Raises:
            UnknownAsset: If the asset is not tracked
        """
        pass

    @abstractmethod
    def is_authorized(self, actor: str, asset_id: int) -> bool:
        """True if actor holds the asset or may transfer it on the holder's behalf."""
        pass

    @abstractmethod
    def transfer_custody(self, asset_id: int, from_address: str, to_address: str) -> None:
        """
        Move custody of an asset.

        Raises:
            NotOwner: If from_address is not the current holder
        """
        pass


class InMemoryTransferRegistry(TransferRegistry):
    """
    Dictionary-backed registry with per-asset approvals and operators.
    """

    def __init__(self):
        self.holders: dict[int, str] = {}
        self.approvals: dict[int, str] = {}  # asset_id -> approved spender
        self.operators: dict[str, set[str]] = {}  # holder -> operators

    def mint(self, asset_id: int, owner: str) -> None:
        """Register a new asset under owner."""
        if is_null_address(owner):
            raise InvalidDestination(
                "Cannot mint to the null address",
                component="registry",
                action="mint",
            )
        if asset_id in self.holders:
            raise NotOwner(
                f"Asset {asset_id} already exists",
                component="registry",
                action="mint",
                details={"asset_id": asset_id},
            )
        self.holders[asset_id] = owner
        logger.debug("Minted asset %s to %s", asset_id, owner)

    def approve(self, owner: str, asset_id: int, spender: str | None) -> None:
        """Grant (or with None, revoke) single-asset transfer authority."""
        if self.current_holder(asset_id) != owner:
            raise NotOwner(
                f"{owner} does not hold asset {asset_id}",
                component="registry",
                action="approve",
                details={"asset_id": asset_id},
            )
        if spender:
            self.approvals[asset_id] = spender
        else:
            self.approvals.pop(asset_id, None)

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        """Grant or revoke operator authority over all of owner's assets."""
        ops = self.operators.setdefault(owner, set())
        if approved:
            ops.add(operator)
        else:
            ops.discard(operator)

    def current_holder(self, asset_id: int) -> str:
        holder = self.holders.get(asset_id)
        if holder is None:
            raise UnknownAsset(
                f"Asset {asset_id} is not registered",
                component="registry",
                action="current_holder",
                details={"asset_id": asset_id},
            )
        return holder

    def is_authorized(self, actor: str, asset_id: int) -> bool:
        holder = self.holders.get(asset_id)
        if holder is None or not actor:
            return False
        if actor == holder:
            return True
        if self.approvals.get(asset_id) == actor:
            return True
        return actor in self.operators.get(holder, set())

    def transfer_custody(self, asset_id: int, from_address: str, to_address: str) -> None:
        if self.current_holder(asset_id) != from_address:
            raise NotOwner(
                f"{from_address} no longer holds asset {asset_id}",
                component="registry",
                action="transfer_custody",
                details={"asset_id": asset_id},
            )
        if is_null_address(to_address):
            raise InvalidDestination(
                "Cannot transfer to the null address",
                component="registry",
                action="transfer_custody",
            )
        self.holders[asset_id] = to_address
        # Single-asset approvals do not survive a change of custody
        self.approvals.pop(asset_id, None)
        logger.debug("Asset %s custody %s -> %s", asset_id, from_address, to_address)

    # =========================================================================
    # Transaction participation
    # =========================================================================

    def snapshot(self) -> dict[str, Any]:
        return {
            "holders": dict(self.holders),
            "approvals": dict(self.approvals),
            "operators": copy.deepcopy(self.operators),
        }

    def restore(self, state: dict[str, Any]) -> None:
        self.holders = state["holders"]
        self.approvals = state["approvals"]
        self.operators = state["operators"]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "holders": {str(k): v for k, v in self.holders.items()},
            "approvals": {str(k): v for k, v in self.approvals.items()},
            "operators": {k: sorted(v) for k, v in self.operators.items()},
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        """Replace registry contents from to_dict() output."""
        self.holders = {int(k): v for k, v in data.get("holders", {}).items()}
        self.approvals = {int(k): v for k, v in data.get("approvals", {}).items()}
        self.operators = {k: set(v) for k, v in data.get("operators", {}).items()}
