"""
PrivateArt - Event Log

Public, append-only event stream of the ledger. Events are part of the
journaled state, so an operation that reverts leaves no events behind.
"""

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any

from block_context import BlockContext, SystemBlockContext
from journal import StateJournal

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Observable ledger events."""
    ARTWORK_LISTED = "ArtworkListed"
    INVESTOR_REGISTERED = "InvestorRegistered"
    INVESTMENT_MADE = "InvestmentMade"
    DECRYPTION_REQUESTED = "DecryptionRequested"
    DISTRIBUTION_COMPLETED = "DistributionCompleted"
    DECRYPTION_FAILED = "DecryptionFailed"
    REFUND_ISSUED = "RefundIssued"
    REFUND_FAILED = "RefundFailed"
    ARTWORK_SOLD = "ArtworkSold"


@dataclass
class LedgerEvent:
    """A single emitted event."""
    event_id: str
    event_type: str
    timestamp: int  # block time
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "data": self.data,
        }


class EventLog:
    """Collects events emitted by ledger components."""

    def __init__(self, block: BlockContext | None = None, journal: StateJournal | None = None):
        self.block = block or SystemBlockContext()
        self.journal = journal or StateJournal()
        self.events: list[LedgerEvent] = []

    def emit(self, event_type: EventType, data: dict[str, Any]) -> LedgerEvent:
        """Append an event stamped with the current block time and log it."""
        event = LedgerEvent(
            event_id=f"evt_{secrets.token_hex(8)}",
            event_type=event_type.value,
            timestamp=self.block.timestamp(),
            data=data,
        )
        self.journal.append(self.events, event)
        logger.info("Event %s", event.event_type, extra={"event_data": data})
        return event

    def of_type(self, event_type: EventType) -> list[LedgerEvent]:
        """All events of one type, in emission order."""
        return [e for e in self.events if e.event_type == event_type.value]

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent events, newest first."""
        return [e.to_dict() for e in reversed(self.events[-limit:])]
