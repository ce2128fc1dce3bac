"""
Royalty Ledger - Market Exception Hierarchy

Every failure of a listing, settlement or claim is raised as a subclass of
MarketError. All exceptions carry structured error context so the REST layer
and the logs can report them uniformly.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for market errors."""
    LOW = "low"           # Caller mistake, nothing moved
    MEDIUM = "medium"     # Rejected operation, should be monitored
    HIGH = "high"         # Funds could not be delivered
    CRITICAL = "critical" # Ledger arithmetic limit reached


@dataclass
class ErrorContext:
    """Structured context for error tracking and debugging."""
    component: str
    action: str
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")
    details: dict[str, Any] = field(default_factory=dict)
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "component": self.component,
            "action": self.action,
            "timestamp": self.timestamp,
            "details": self.details,
            "severity": self.severity.value
        }


class MarketError(Exception):
    """
    Base exception for all sale and royalty ledger errors.

    Any MarketError aborts the operation that raised it; the engine rolls
    back every effect of that operation before the exception reaches the
    caller.
    """

    http_status = 400
    default_severity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        component: str = "market",
        action: str = "unknown",
        details: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        super().__init__(message)
        self.message = message
        self.context = ErrorContext(
            component=component,
            action=action,
            severity=self.default_severity,
            details=details or {}
        )
        self.cause = cause

        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "message": self.message,
            **self.context.to_dict()
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }
        return result

    def __str__(self) -> str:
        base = f"[{self.context.component}:{self.context.action}] {self.message}"
        if self.cause:
            base += f" (caused by: {self.cause})"
        return base


# =============================================================================
# Authorization Errors
# =============================================================================

class Unauthorized(MarketError):
    """Caller lacks rights over the asset."""
    http_status = 403


class NotOwner(MarketError):
    """The asserted seller is not the asset's current holder."""
    http_status = 409


class UnknownAsset(MarketError):
    """The asset id is not tracked by the transfer registry."""
    http_status = 404
    default_severity = ErrorSeverity.LOW


# =============================================================================
# Input Errors
# =============================================================================

class InvalidDestination(MarketError):
    """Transfer destination is the null address."""
    default_severity = ErrorSeverity.LOW


class InvalidAmount(MarketError):
    """Price or rate is negative, non-integral, or out of range."""
    default_severity = ErrorSeverity.LOW


class IncorrectPayment(MarketError):
    """Payment sent does not equal price plus royalty."""
    http_status = 402
    default_severity = ErrorSeverity.LOW


# =============================================================================
# Ledger Errors
# =============================================================================

class NothingToClaim(MarketError):
    """Claim attempted against a zero balance."""
    http_status = 409
    default_severity = ErrorSeverity.LOW


class PayoutFailed(MarketError):
    """An outbound payment could not be delivered."""
    http_status = 502
    default_severity = ErrorSeverity.HIGH


class Overflow(MarketError):
    """Arithmetic would exceed the representable amount range."""
    default_severity = ErrorSeverity.CRITICAL


# =============================================================================
# Amount Helpers
# =============================================================================

# Amounts are unsigned 256-bit integers in the smallest currency unit.
MAX_AMOUNT = 2**256 - 1


def check_amount(value: Any, name: str, component: str, action: str) -> int:
    """
    Validate a currency amount.

    Args:
        value: Candidate amount
        name: Field name used in the error message
        component: Component raising on failure
        action: Operation raising on failure

    Returns:
        The amount as int

    Raises:
        InvalidAmount: If value is not a non-negative int
        Overflow: If value exceeds MAX_AMOUNT
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(
            f"{name} must be an integer amount",
            component=component,
            action=action,
            details={name: repr(value)},
        )
    if value < 0:
        raise InvalidAmount(
            f"{name} cannot be negative",
            component=component,
            action=action,
            details={name: value},
        )
    if value > MAX_AMOUNT:
        raise Overflow(
            f"{name} exceeds maximum amount",
            component=component,
            action=action,
            details={name: str(value)},
        )
    return value


def checked_add(a: int, b: int, component: str, action: str) -> int:
    """Add two amounts, raising Overflow instead of exceeding MAX_AMOUNT."""
    total = a + b
    if total > MAX_AMOUNT:
        raise Overflow(
            "amount addition overflows",
            component=component,
            action=action,
            details={"a": str(a), "b": str(b)},
        )
    return total
