"""
PrivateArt - Decryption Request Manager

Issues batch decryption requests for an artwork's encrypted share counts and
is the single authority over whether a request has been finalized.

Request lifecycle:

    Pending --(valid oracle callback)--> Processed   (terminal)
    Pending --(timeout / emergency refund)--> Failed (terminal)

The oracle callback is an untrusted message that may arrive late, twice, with
a bad proof, or never. A callback with a bad proof is rejected outright and
does not consume the request's single terminal transition.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from block_context import BlockContext
from decryption_oracle import DecryptionCallback, DecryptionOracle, ProofVerifier, decode_cleartexts
from events import EventLog, EventType
from journal import StateJournal
from ledger import InvestmentLedger
from ledger_exceptions import ErrorReason, StateError, ValidationError
from payments import ValueTransferLayer

if TYPE_CHECKING:
    from returns_distribution import DistributionResult, ReturnsDistributionEngine

logger = logging.getLogger(__name__)


class RequestState(Enum):
    """Lifecycle states of a decryption request."""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass
class DecryptionRequest:
    """One outstanding or finalized returns-distribution request."""

    id: int
    artwork_id: int
    requested_at: int
    total_returns: int
    state: RequestState
    investors: tuple[str, ...]  # order matches the submitted handles
    finalized_at: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.state == RequestState.PENDING

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "request_id": self.id,
            "artwork_id": self.artwork_id,
            "requested_at": self.requested_at,
            "total_returns": str(self.total_returns),
            "state": self.state.value,
            "investor_count": len(self.investors),
            "finalized_at": self.finalized_at,
        }


class ClaimRegistry:
    """Per-(artwork, investor) claim flags. Scoped by artwork, not by request."""

    def __init__(self, journal: StateJournal | None = None):
        self.journal = journal or StateJournal()
        self._claimed: set[tuple[int, str]] = set()

    def is_claimed(self, artwork_id: int, investor: str) -> bool:
        return (artwork_id, investor) in self._claimed

    def mark_claimed(self, artwork_id: int, investor: str) -> None:
        key = (artwork_id, investor)
        if key in self._claimed:
            raise StateError(
                "Investor already claimed for this artwork",
                reason=ErrorReason.ALREADY_CLAIMED,
                component="claims",
                action="mark_claimed",
                details={"artwork_id": artwork_id, "investor": investor},
            )
        self.journal.add(self._claimed, key)

    def release(self, artwork_id: int, investor: str) -> None:
        """Clear a claim whose payment did not go through."""
        self.journal.discard(self._claimed, (artwork_id, investor))


class DecryptionRequestManager:
    """Owns decryption requests and claim flags."""

    def __init__(
        self,
        ledger: InvestmentLedger,
        oracle: DecryptionOracle,
        payments: ValueTransferLayer,
        events: EventLog,
        block: BlockContext,
        journal: StateJournal | None = None,
        claims: ClaimRegistry | None = None,
        verifier: ProofVerifier | None = None,
    ):
        self.ledger = ledger
        self.oracle = oracle
        self.payments = payments
        self.events = events
        self.block = block
        self.journal = journal or StateJournal()
        self.claims = claims or ClaimRegistry(self.journal)
        self.verifier = verifier or oracle.verifier()
        self.engine: "ReturnsDistributionEngine | None" = None

        self.requests: dict[int, DecryptionRequest] = {}

    def attach_engine(self, engine: "ReturnsDistributionEngine") -> None:
        self.engine = engine

    # =========================================================================
    # Phase 1: request
    # =========================================================================

    def request_returns_distribution(
        self,
        caller: str,
        artwork_id: int,
        total_returns: int,
        callback: DecryptionCallback | None = None,
    ) -> DecryptionRequest:
        """
        Ask the oracle to decrypt every investor's share count for an artwork.

        `total_returns` is the value attached to the call; it must already be
        credited to the pool.

        Raises:
            AuthorizationError: Caller is not the owner
            ValidationError: Zero returns, unknown artwork, no investors
            OracleSubmissionError: The oracle did not accept the batch
            StateError: The oracle reused a request id
        """
        self.ledger.require_owner(caller, "request_returns_distribution")
        if total_returns <= 0:
            raise ValidationError(
                "Total returns must be positive",
                reason=ErrorReason.INVALID_AMOUNT,
                component="requests",
                action="request_returns_distribution",
            )

        batch = self.ledger.get_artwork_share_handles(artwork_id)
        if not batch.investors:
            raise ValidationError(
                "Artwork has no investors",
                reason=ErrorReason.NO_INVESTORS,
                component="requests",
                action="request_returns_distribution",
                details={"artwork_id": artwork_id},
            )

        request_id = self.oracle.request_decryption(
            list(batch.handles),
            callback or self.process_returns_distribution,
        )
        if request_id in self.requests:
            raise StateError(
                "Oracle returned a request id that is already in use",
                reason=ErrorReason.DUPLICATE_REQUEST,
                component="requests",
                action="request_returns_distribution",
                details={"request_id": request_id},
            )

        request = DecryptionRequest(
            id=request_id,
            artwork_id=artwork_id,
            requested_at=self.block.timestamp(),
            total_returns=total_returns,
            state=RequestState.PENDING,
            investors=batch.investors,
        )
        self.journal.set_item(self.requests, request_id, request)

        self.events.emit(EventType.DECRYPTION_REQUESTED, {
            "request_id": request_id,
            "artwork_id": artwork_id,
            "total_returns": str(total_returns),
            "timestamp": request.requested_at,
        })
        return request

    # =========================================================================
    # Phase 2: oracle callback
    # =========================================================================

    def process_returns_distribution(
        self,
        request_id: int,
        cleartexts: bytes,
        proof: bytes,
    ) -> "DistributionResult":
        """
        Finalize a request with the oracle's decrypted share counts.

        Raises:
            ValidationError: Unknown request, bad proof, shape mismatch, zero shares
            StateError: Request already finalized
            TransferError: Any payout fails (whole call reverts)
        """
        request = self.get_request(request_id)
        self.require_pending(request, "process_returns_distribution")

        self.verifier.verify(request_id, cleartexts, proof)

        shares = decode_cleartexts(cleartexts)
        if len(shares) != len(request.investors):
            raise ValidationError(
                "Cleartext count does not match investor count",
                reason=ErrorReason.SHAPE_MISMATCH,
                component="requests",
                action="process_returns_distribution",
                details={"cleartexts": len(shares), "investors": len(request.investors)},
            )
        if sum(shares) == 0:
            raise ValidationError(
                "Decrypted shares sum to zero",
                reason=ErrorReason.NO_SHARES,
                component="requests",
                action="process_returns_distribution",
                details={"request_id": request_id},
            )

        self.finalize(request, RequestState.PROCESSED)
        if self.engine is None:
            raise RuntimeError("No distribution engine attached")
        return self.engine.distribute(request, shares)

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def get_request(self, request_id: int) -> DecryptionRequest:
        request = self.requests.get(request_id)
        if request is None:
            raise ValidationError(
                "Unknown decryption request",
                reason=ErrorReason.UNKNOWN_REQUEST,
                component="requests",
                action="get_request",
                details={"request_id": request_id},
            )
        return request

    def require_pending(self, request: DecryptionRequest, action: str) -> None:
        if not request.is_pending:
            raise StateError(
                "Decryption request already finalized",
                reason=ErrorReason.ALREADY_FINALIZED,
                component="requests",
                action=action,
                details={"request_id": request.id, "state": request.state.value},
            )

    def finalize(self, request: DecryptionRequest, state: RequestState) -> None:
        """The one terminal transition of a request."""
        if state == RequestState.PENDING:
            raise ValueError("Cannot finalize into the pending state")
        self.require_pending(request, "finalize")
        self.journal.set_attr(request, "state", state)
        self.journal.set_attr(request, "finalized_at", self.block.timestamp())
        logger.info("Decryption request finalized", extra={"request_id": request.id, "state": state.value})

    def list_requests(self, artwork_id: int | None = None) -> list[DecryptionRequest]:
        requests = sorted(self.requests.values(), key=lambda r: r.id)
        if artwork_id is not None:
            requests = [r for r in requests if r.artwork_id == artwork_id]
        return requests
