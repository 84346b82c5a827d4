"""
PrivateArt - Refund & Timeout Safety Net

Guarantees that returns attached to a decryption request are never locked
forever by a silent oracle.

Two recovery paths over a Pending request:
- Timeout refund: anyone, once CALLBACK_TIMEOUT has elapsed; no upper deadline
- Emergency refund: owner only, while MAX_REFUND_WINDOW has not elapsed

Both finalize the request as Failed and split total_returns evenly (floor)
across the investors captured at request time. Each payment is isolated: one
rejected transfer is recorded and the sweep moves on.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from block_context import BlockContext
from config import CALLBACK_TIMEOUT, MAX_REFUND_WINDOW
from decryption_requests import DecryptionRequest, DecryptionRequestManager, RequestState
from events import EventLog, EventType
from ledger_exceptions import ErrorReason, StateError, TransferError, log_exception
from payments import ValueTransferLayer

logger = logging.getLogger(__name__)


@dataclass
class RefundResult:
    """Outcome of one refund sweep."""

    request_id: int
    artwork_id: int
    refund_per_investor: int
    refunded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "request_id": self.request_id,
            "artwork_id": self.artwork_id,
            "refund_per_investor": str(self.refund_per_investor),
            "refunded": list(self.refunded),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
        }


class RefundSafetyNet:
    """Timeout and emergency refund paths for pending requests."""

    def __init__(
        self,
        manager: DecryptionRequestManager,
        payments: ValueTransferLayer,
        events: EventLog,
        block: BlockContext,
        callback_timeout: int = CALLBACK_TIMEOUT,
        max_refund_window: int = MAX_REFUND_WINDOW,
    ):
        self.manager = manager
        self.payments = payments
        self.events = events
        self.block = block
        self.callback_timeout = callback_timeout
        self.max_refund_window = max_refund_window

    def request_refund_for_failed_decryption(self, caller: str, request_id: int) -> RefundResult:
        """
        Refund a request whose callback never arrived. Callable by anyone.

        Raises:
            ValidationError: Unknown request
            StateError: Request not pending, or timeout not reached
        """
        request = self.manager.get_request(request_id)
        self.manager.require_pending(request, "request_refund_for_failed_decryption")

        now = self.block.timestamp()
        deadline = request.requested_at + self.callback_timeout
        if now < deadline:
            raise StateError(
                "Callback timeout not reached",
                reason=ErrorReason.TIMEOUT_NOT_REACHED,
                component="refunds",
                action="request_refund_for_failed_decryption",
                details={"request_id": request_id, "refundable_at": deadline, "now": now},
            )

        logger.info("Timeout refund triggered", extra={"request_id": request_id, "caller": caller})
        return self._refund(request, "timeout")

    def emergency_refund(self, caller: str, request_id: int) -> RefundResult:
        """
        Owner override while the refund window is open.

        Raises:
            AuthorizationError: Caller is not the owner
            ValidationError: Unknown request
            StateError: Request not pending, or window expired
        """
        self.manager.ledger.require_owner(caller, "emergency_refund")
        request = self.manager.get_request(request_id)
        self.manager.require_pending(request, "emergency_refund")

        now = self.block.timestamp()
        window_end = request.requested_at + self.max_refund_window
        if now > window_end:
            raise StateError(
                "Emergency refund window expired",
                reason=ErrorReason.REFUND_WINDOW_EXPIRED,
                component="refunds",
                action="emergency_refund",
                details={"request_id": request_id, "window_end": window_end, "now": now},
            )

        logger.warning("Emergency refund triggered by owner", extra={"request_id": request_id})
        return self._refund(request, "emergency")

    def refundable_at(self, request_id: int) -> int:
        return self.manager.get_request(request_id).requested_at + self.callback_timeout

    def emergency_window_end(self, request_id: int) -> int:
        return self.manager.get_request(request_id).requested_at + self.max_refund_window

    def _refund(self, request: DecryptionRequest, path: str) -> RefundResult:
        self.manager.finalize(request, RequestState.FAILED)

        investors = request.investors
        refund_per_investor = request.total_returns // len(investors)
        result = RefundResult(
            request_id=request.id,
            artwork_id=request.artwork_id,
            refund_per_investor=refund_per_investor,
        )

        self.events.emit(EventType.DECRYPTION_FAILED, {
            "request_id": request.id,
            "artwork_id": request.artwork_id,
            "path": path,
        })

        claims = self.manager.claims
        for investor in investors:
            if claims.is_claimed(request.artwork_id, investor):
                result.skipped.append(investor)
                continue

            claims.mark_claimed(request.artwork_id, investor)
            try:
                if refund_per_investor > 0:
                    self.payments.transfer(investor, refund_per_investor)
            except TransferError as e:
                # left unclaimed for a later remedy
                claims.release(request.artwork_id, investor)
                log_exception(logger, e)
                result.failed.append(investor)
                self.events.emit(EventType.REFUND_FAILED, {
                    "request_id": request.id,
                    "investor": investor,
                    "amount": str(refund_per_investor),
                })
                continue

            result.refunded.append(investor)
            self.events.emit(EventType.REFUND_ISSUED, {
                "request_id": request.id,
                "investor": investor,
                "amount": str(refund_per_investor),
            })

        return result
