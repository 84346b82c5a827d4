"""
PrivateArt - Ledger Exception Hierarchy

Provides a consistent set of exceptions for every ledger component.
All exceptions carry a machine-readable reason and structured error context,
so callers (HTTP layer, automated retry logic) can tell failures apart.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorReason(Enum):
    """Distinguishable rejection reasons."""
    # Validation
    INVALID_PARAMETERS = "invalid_parameters"
    INVALID_ARTWORK = "invalid_artwork"
    INVALID_SHARE_AMOUNT = "invalid_share_amount"
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_PAYMENT = "insufficient_payment"
    INSUFFICIENT_SHARES = "insufficient_shares"
    NO_INVESTORS = "no_investors"
    SHAPE_MISMATCH = "shape_mismatch"
    NO_SHARES = "no_shares"
    INVALID_PROOF = "invalid_proof"
    UNKNOWN_REQUEST = "unknown_request"
    UNKNOWN_HANDLE = "unknown_handle"
    # Authorization
    NOT_OWNER = "not_owner"
    NOT_REGISTERED = "not_registered"
    ACCESS_DENIED = "access_denied"
    # State
    ALREADY_REGISTERED = "already_registered"
    ALREADY_INVESTED = "already_invested"
    ARTWORK_INACTIVE = "artwork_inactive"
    ALREADY_FINALIZED = "already_finalized"
    ALREADY_CLAIMED = "already_claimed"
    TIMEOUT_NOT_REACHED = "timeout_not_reached"
    REFUND_WINDOW_EXPIRED = "refund_window_expired"
    DUPLICATE_REQUEST = "duplicate_request"
    # Arithmetic
    OVERFLOW = "overflow"
    # Transfer
    TRANSFER_FAILED = "transfer_failed"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    # Oracle
    ORACLE_UNAVAILABLE = "oracle_unavailable"


@dataclass
class ErrorContext:
    """Structured context for error tracking and debugging."""
    component: str
    action: str
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "component": self.component,
            "action": self.action,
            "timestamp": self.timestamp,
            "details": self.details,
        }


class ArtLedgerError(Exception):
    """
    Base exception for all ledger errors.

    Every rejection raised from a public operation is an ArtLedgerError;
    the operation that raised it has left no state behind.
    """

    def __init__(
        self,
        message: str,
        reason: ErrorReason,
        component: str = "unknown",
        action: str = "unknown",
        details: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.context = ErrorContext(
            component=component,
            action=action,
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
            "reason": self.reason.value,
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
# Taxonomy
# =============================================================================

class ValidationError(ArtLedgerError):
    """
    Bad input: unknown id, zero amount, shape mismatch, price/value mismatch.
    """


class AuthorizationError(ArtLedgerError):
    """Caller is not the owner, or is not a registered investor."""


class StateError(ArtLedgerError):
    """
    Operation not allowed in the current state.

    Examples:
    - Request not pending
    - Timeout not yet reached / refund window expired
    - Already registered / already invested
    """


class LedgerArithmeticError(ArtLedgerError):
    """Multiplication overflow detected while sizing a payment."""

    def __init__(self, message: str, action: str = "unknown", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            reason=ErrorReason.OVERFLOW,
            component="ledger",
            action=action,
            details=details,
        )


class TransferError(ArtLedgerError):
    """An outgoing payment to an external address failed."""

    def __init__(
        self,
        message: str,
        recipient: str,
        amount: int,
        reason: ErrorReason = ErrorReason.TRANSFER_FAILED,
        cause: Exception | None = None
    ):
        super().__init__(
            message=message,
            reason=reason,
            component="payments",
            action="transfer",
            details={"recipient": recipient, "amount": amount},
            cause=cause,
        )
        self.recipient = recipient
        self.amount = amount


class OracleSubmissionError(ArtLedgerError):
    """The decryption oracle refused or failed to accept a request."""

    def __init__(self, message: str, details: dict[str, Any] | None = None, cause: Exception | None = None):
        super().__init__(
            message=message,
            reason=ErrorReason.ORACLE_UNAVAILABLE,
            component="oracle",
            action="request_decryption",
            details=details,
            cause=cause,
        )


# =============================================================================
# Utility Functions
# =============================================================================

def log_exception(
    logger,
    e: ArtLedgerError,
    level: str = "warning"
) -> None:
    """
    Log an ArtLedgerError with full context.

    Args:
        logger: Logger instance
        e: The exception to log
        level: Log level (debug, info, warning, error, critical)
    """
    log_func = getattr(logger, level, logger.warning)
    log_func(
        str(e),
        extra={"error": e.to_dict()},
        exc_info=level in ("error", "critical")
    )
