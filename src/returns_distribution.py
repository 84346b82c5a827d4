"""
PrivateArt - Returns Distribution Engine

Splits a request's total returns across investors in proportion to their
decrypted share counts.

Division obfuscation:
    payout_i = (total_returns * m * shares_i) // (total_shares * m)

where m is a per-call multiplier in [1000, 10000) derived from block state and
the artwork id. This is exactly total_returns * shares_i // total_shares; m
only changes the shape of the intermediate arithmetic. It is NOT a privacy
guarantee: payouts are plaintext on settlement, and anyone who sees
total_returns and the payouts can redo the division. The multiplier's
randomness is weak (block producers can influence it); stronger randomness
would not change the guarantee, since the output is public either way.

Rounding:
    Floor division leaves up to (investor_count - 1) units of dust in the
    pool. There is no sweep for it.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any

from block_context import BlockContext
from decryption_requests import ClaimRegistry, DecryptionRequest, DecryptionRequestManager
from events import EventLog, EventType
from payments import ValueTransferLayer

logger = logging.getLogger(__name__)

MULTIPLIER_MIN = 1000
MULTIPLIER_MAX = 10000  # exclusive


def draw_obfuscation_multiplier(block: BlockContext, artwork_id: int) -> int:
    """Deterministic multiplier in [MULTIPLIER_MIN, MULTIPLIER_MAX) for this block and artwork."""
    seed = (
        block.timestamp().to_bytes(32, "big")
        + block.prevrandao().to_bytes(32, "big")
        + artwork_id.to_bytes(32, "big")
    )
    digest = int.from_bytes(hashlib.sha256(seed).digest(), "big")
    return MULTIPLIER_MIN + digest % (MULTIPLIER_MAX - MULTIPLIER_MIN)


def obfuscated_share(total_returns: int, shares: int, total_shares: int, multiplier: int) -> int:
    """Proportional floor division with the multiplier folded into both sides."""
    if total_shares <= 0:
        raise ValueError("total_shares must be positive")
    if multiplier <= 0:
        raise ValueError("multiplier must be positive")
    return (total_returns * multiplier * shares) // (total_shares * multiplier)


def compute_payouts(total_returns: int, shares: list[int], multiplier: int) -> list[int]:
    """Payout for every position in `shares` (zero where shares are zero)."""
    total_shares = sum(shares)
    return [
        obfuscated_share(total_returns, s, total_shares, multiplier) if s > 0 else 0
        for s in shares
    ]


@dataclass
class DistributionResult:
    """Outcome of one successful distribution."""

    request_id: int
    artwork_id: int
    total_returns: int
    payouts: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def total_paid(self) -> int:
        return sum(self.payouts.values())

    @property
    def dust(self) -> int:
        return self.total_returns - self.total_paid

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "request_id": self.request_id,
            "artwork_id": self.artwork_id,
            "total_returns": str(self.total_returns),
            "payouts": {k: str(v) for k, v in self.payouts.items()},
            "skipped": list(self.skipped),
            "total_paid": str(self.total_paid),
            "dust": str(self.dust),
        }


class ReturnsDistributionEngine:
    """Pays out a processed request. Any failed payment aborts the call."""

    def __init__(
        self,
        claims: ClaimRegistry,
        payments: ValueTransferLayer,
        events: EventLog,
        block: BlockContext,
    ):
        self.claims = claims
        self.payments = payments
        self.events = events
        self.block = block

    @classmethod
    def for_manager(cls, manager: DecryptionRequestManager) -> "ReturnsDistributionEngine":
        """Build an engine sharing the manager's claims and attach it."""
        engine = cls(manager.claims, manager.payments, manager.events, manager.block)
        manager.attach_engine(engine)
        return engine

    def distribute(self, request: DecryptionRequest, shares: list[int]) -> DistributionResult:
        """
        Pay each unclaimed investor with a positive share count.

        The request must already be finalized. Claims are written before each
        transfer; a TransferError propagates so the caller's frame reverts.
        """
        multiplier = draw_obfuscation_multiplier(self.block, request.artwork_id)
        payouts = compute_payouts(request.total_returns, shares, multiplier)

        result = DistributionResult(
            request_id=request.id,
            artwork_id=request.artwork_id,
            total_returns=request.total_returns,
        )

        for investor, share_count, payout in zip(request.investors, shares, payouts):
            if share_count == 0 or self.claims.is_claimed(request.artwork_id, investor):
                result.skipped.append(investor)
                continue

            self.claims.mark_claimed(request.artwork_id, investor)
            if payout > 0:
                self.payments.transfer(investor, payout)
            result.payouts[investor] = payout

        self.events.emit(EventType.DISTRIBUTION_COMPLETED, {
            "artwork_id": request.artwork_id,
            "total_returns": str(request.total_returns),
        })
        logger.info(
            "Returns distributed",
            extra={"request_id": request.id, "paid": len(result.payouts), "skipped": len(result.skipped)},
        )
        return result
