"""
PrivateArt - Investment Ledger

Artwork listings, investor registration and private (encrypted) investments.

Key Concepts:
- Share counts and invested values are stored only as encrypted handles
- Each investor may invest in a given artwork once; investments are immutable
- Every handle is readable by its investor and usable by the ledger itself
- The ordered investor list per artwork is the correlation key for
  decryption requests
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from block_context import BlockContext
from config import UINT256_MAX
from encrypted_store import VALUE_MODULUS, EncryptedValueBackend
from events import EventLog, EventType
from journal import StateJournal
from ledger_exceptions import (
    AuthorizationError,
    ErrorReason,
    LedgerArithmeticError,
    StateError,
    ValidationError,
)
from payments import ValueTransferLayer

logger = logging.getLogger(__name__)


# =============================================================================
# Records
# =============================================================================


@dataclass
class Artwork:
    """A listed artwork divided into equal-priced shares."""

    id: int
    name: str
    artist: str
    metadata_ref: str  # e.g. IPFS hash
    total_value: int
    share_price: int
    total_shares: int
    available_shares: int
    active: bool
    creator: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "artist": self.artist,
            "metadata_ref": self.metadata_ref,
            "total_value": str(self.total_value),
            "share_price": str(self.share_price),
            "total_shares": self.total_shares,
            "available_shares": self.available_shares,
            "active": self.active,
            "creator": self.creator,
            "created_at": self.created_at,
        }


@dataclass
class InvestorProfile:
    """Registration record with encrypted running totals."""

    registered: bool
    registered_at: int
    encrypted_total_invested: str
    encrypted_portfolio_count: str


@dataclass
class PrivateInvestment:
    """One investor's position in one artwork."""

    encrypted_shares: str
    encrypted_value: str
    invested: bool
    timestamp: int


@dataclass
class ShareHandleList:
    """Ordered investors of an artwork with their encrypted share handles."""

    artwork_id: int
    investors: tuple[str, ...]
    handles: tuple[str, ...] = field(default_factory=tuple)


# =============================================================================
# Ledger
# =============================================================================


class InvestmentLedger:
    """
    Owns artworks, investor profiles and private investments.

    All mutations go through the methods below; the contract facade wraps each
    one in a journal frame.
    """

    def __init__(
        self,
        owner: str,
        contract_address: str,
        store: EncryptedValueBackend,
        payments: ValueTransferLayer,
        events: EventLog,
        block: BlockContext,
        journal: StateJournal | None = None,
    ):
        self.owner = owner
        self.contract_address = contract_address
        self.store = store
        self.payments = payments
        self.events = events
        self.block = block
        self.journal = journal or StateJournal()

        self.artworks: list[Artwork] = []
        self.investors: dict[str, InvestorProfile] = {}
        self.investments: dict[tuple[int, str], PrivateInvestment] = {}
        self.artwork_investors: dict[int, list[str]] = {}
        self.total_investors = 0

    # =========================================================================
    # Registration
    # =========================================================================

    def register_investor(self, principal: str) -> InvestorProfile:
        """
        Register the caller as an investor.

        Raises:
            StateError: If the principal is already registered
        """
        if principal in self.investors:
            raise StateError(
                "Investor already registered",
                reason=ErrorReason.ALREADY_REGISTERED,
                component="ledger",
                action="register_investor",
                details={"investor": principal},
            )

        zero_total = self.store.encrypt(0)
        zero_count = self.store.encrypt(0)
        for handle in (zero_total, zero_count):
            self.store.allow(handle, self.contract_address)
            self.store.allow(handle, principal)

        profile = InvestorProfile(
            registered=True,
            registered_at=self.block.timestamp(),
            encrypted_total_invested=zero_total,
            encrypted_portfolio_count=zero_count,
        )
        self.journal.set_item(self.investors, principal, profile)
        self.journal.set_attr(self, "total_investors", self.total_investors + 1)

        self.events.emit(EventType.INVESTOR_REGISTERED, {
            "investor": principal,
            "timestamp": profile.registered_at,
        })
        return profile

    # =========================================================================
    # Listings
    # =========================================================================

    def list_artwork(
        self,
        caller: str,
        name: str,
        artist: str,
        metadata_ref: str,
        total_value: int,
        share_price: int,
        total_shares: int,
    ) -> Artwork:
        """
        List a new artwork. Owner only.

        Raises:
            AuthorizationError: If caller is not the owner
            ValidationError: On zero values or total_value != share_price * total_shares
        """
        self.require_owner(caller, "list_artwork")

        if not name or total_value <= 0 or share_price <= 0 or total_shares <= 0:
            raise ValidationError(
                "Name, total value, share price and total shares are required",
                reason=ErrorReason.INVALID_PARAMETERS,
                component="ledger",
                action="list_artwork",
            )
        if total_value != share_price * total_shares:
            raise ValidationError(
                "Total value must equal share price times total shares",
                reason=ErrorReason.INVALID_PARAMETERS,
                component="ledger",
                action="list_artwork",
                details={
                    "total_value": total_value,
                    "share_price": share_price,
                    "total_shares": total_shares,
                },
            )

        if total_value >= VALUE_MODULUS:
            raise ValidationError(
                "Total value exceeds the encrypted value range",
                reason=ErrorReason.INVALID_PARAMETERS,
                component="ledger",
                action="list_artwork",
                details={"total_value": total_value},
            )

        artwork = Artwork(
            id=len(self.artworks),
            name=name,
            artist=artist,
            metadata_ref=metadata_ref,
            total_value=total_value,
            share_price=share_price,
            total_shares=total_shares,
            available_shares=total_shares,
            active=True,
            creator=caller,
            created_at=self.block.timestamp(),
        )
        self.journal.append(self.artworks, artwork)
        self.journal.set_item(self.artwork_investors, artwork.id, [])

        self.events.emit(EventType.ARTWORK_LISTED, {
            "artwork_id": artwork.id,
            "name": name,
            "artist": artist,
            "total_value": str(total_value),
            "total_shares": total_shares,
        })
        return artwork

    def mark_artwork_sold(self, caller: str, artwork_id: int) -> Artwork:
        """Deactivate an artwork after its sale. Owner only."""
        self.require_owner(caller, "mark_artwork_sold")
        artwork = self._get_artwork(artwork_id, "mark_artwork_sold")
        self._require_active(artwork, "mark_artwork_sold")

        self.journal.set_attr(artwork, "active", False)
        self.events.emit(EventType.ARTWORK_SOLD, {
            "artwork_id": artwork_id,
            "timestamp": self.block.timestamp(),
        })
        return artwork

    # =========================================================================
    # Investments
    # =========================================================================

    def make_private_investment(
        self,
        caller: str,
        artwork_id: int,
        share_amount: int,
        payment: int,
    ) -> PrivateInvestment:
        """
        Buy `share_amount` shares of an artwork with an encrypted position.

        The attached `payment` must already have been credited to the pool;
        anything above the required amount is sent back to the caller.

        Raises:
            AuthorizationError: Caller not registered
            ValidationError: Unknown artwork, zero amount, too few shares, underpayment
            StateError: Artwork inactive or already invested
            LedgerArithmeticError: share_price * share_amount overflows
            TransferError: The overpayment refund fails
        """
        profile = self.investors.get(caller)
        if profile is None or not profile.registered:
            raise AuthorizationError(
                "Caller is not a registered investor",
                reason=ErrorReason.NOT_REGISTERED,
                component="ledger",
                action="make_private_investment",
                details={"investor": caller},
            )

        artwork = self._get_artwork(artwork_id, "make_private_investment")
        self._require_active(artwork, "make_private_investment")

        if share_amount <= 0:
            raise ValidationError(
                "Share amount must be positive",
                reason=ErrorReason.INVALID_SHARE_AMOUNT,
                component="ledger",
                action="make_private_investment",
            )
        if artwork.available_shares < share_amount:
            raise ValidationError(
                "Not enough shares available",
                reason=ErrorReason.INSUFFICIENT_SHARES,
                component="ledger",
                action="make_private_investment",
                details={"requested": share_amount, "available": artwork.available_shares},
            )
        if (artwork_id, caller) in self.investments:
            raise StateError(
                "Investor already holds a position in this artwork",
                reason=ErrorReason.ALREADY_INVESTED,
                component="ledger",
                action="make_private_investment",
                details={"artwork_id": artwork_id, "investor": caller},
            )

        required = artwork.share_price * share_amount
        # uint256 semantics: the product must round-trip
        if required > UINT256_MAX or required // artwork.share_price != share_amount:
            raise LedgerArithmeticError(
                "Payment size overflows",
                action="make_private_investment",
                details={"share_price": artwork.share_price, "share_amount": share_amount},
            )
        if payment < required:
            raise ValidationError(
                "Insufficient payment",
                reason=ErrorReason.INSUFFICIENT_PAYMENT,
                component="ledger",
                action="make_private_investment",
                details={"required": str(required), "paid": str(payment)},
            )

        encrypted_shares = self.store.encrypt(share_amount)
        encrypted_value = self.store.encrypt(required)
        one = self.store.encrypt(1)

        investment = PrivateInvestment(
            encrypted_shares=encrypted_shares,
            encrypted_value=encrypted_value,
            invested=True,
            timestamp=self.block.timestamp(),
        )
        self.journal.set_item(self.investments, (artwork_id, caller), investment)
        self.journal.set_attr(artwork, "available_shares", artwork.available_shares - share_amount)
        self.journal.append(self.artwork_investors[artwork_id], caller)

        self.journal.set_attr(
            profile, "encrypted_total_invested", self.store.add(profile.encrypted_total_invested, encrypted_value)
        )
        self.journal.set_attr(
            profile, "encrypted_portfolio_count", self.store.add(profile.encrypted_portfolio_count, one)
        )

        for handle in (
            encrypted_shares,
            encrypted_value,
            profile.encrypted_total_invested,
            profile.encrypted_portfolio_count,
        ):
            self.store.allow(handle, self.contract_address)
            self.store.allow(handle, caller)

        self.events.emit(EventType.INVESTMENT_MADE, {
            "artwork_id": artwork_id,
            "investor": caller,
            "timestamp": investment.timestamp,
        })

        excess = payment - required
        if excess > 0:
            self.payments.transfer(caller, excess)

        logger.info("Private investment recorded", extra={"artwork_id": artwork_id})
        return investment

    # =========================================================================
    # Queries (no encrypted data)
    # =========================================================================

    def get_artwork_info(self, artwork_id: int) -> Artwork:
        return self._get_artwork(artwork_id, "get_artwork_info")

    def is_investor_registered(self, principal: str) -> bool:
        profile = self.investors.get(principal)
        return bool(profile and profile.registered)

    def get_investment_status(self, principal: str, artwork_id: int) -> tuple[bool, int]:
        """Returns (invested, timestamp). Amounts are never exposed."""
        investment = self.investments.get((artwork_id, principal))
        if investment is None:
            return False, 0
        return investment.invested, investment.timestamp

    def get_artwork_investor_count(self, artwork_id: int) -> int:
        self._get_artwork(artwork_id, "get_artwork_investor_count")
        return len(self.artwork_investors[artwork_id])

    def get_total_stats(self) -> dict[str, int]:
        return {
            "total_artworks": len(self.artworks),
            "total_investors": self.total_investors,
        }

    # =========================================================================
    # Encrypted handles
    # =========================================================================

    def get_encrypted_investment(self, principal: str, artwork_id: int) -> tuple[str, str]:
        """Returns (encrypted_shares, encrypted_value) handles."""
        investment = self.investments.get((artwork_id, principal))
        if investment is None:
            raise ValidationError(
                "No investment for this artwork",
                reason=ErrorReason.INVALID_PARAMETERS,
                component="ledger",
                action="get_encrypted_investment",
                details={"artwork_id": artwork_id},
            )
        return investment.encrypted_shares, investment.encrypted_value

    def get_encrypted_portfolio(self, principal: str) -> tuple[str, str]:
        """Returns (encrypted_total_invested, encrypted_portfolio_count) handles."""
        profile = self.investors.get(principal)
        if profile is None:
            raise AuthorizationError(
                "Caller is not a registered investor",
                reason=ErrorReason.NOT_REGISTERED,
                component="ledger",
                action="get_encrypted_portfolio",
            )
        return profile.encrypted_total_invested, profile.encrypted_portfolio_count

    def get_artwork_share_handles(self, artwork_id: int) -> ShareHandleList:
        """Ordered investors of an artwork with their encrypted share handles."""
        self._get_artwork(artwork_id, "get_artwork_share_handles")
        investors = tuple(self.artwork_investors[artwork_id])
        handles = tuple(self.investments[(artwork_id, i)].encrypted_shares for i in investors)
        return ShareHandleList(artwork_id=artwork_id, investors=investors, handles=handles)

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def require_owner(self, caller: str, action: str) -> None:
        if caller != self.owner:
            raise AuthorizationError(
                "Caller is not the ledger owner",
                reason=ErrorReason.NOT_OWNER,
                component="ledger",
                action=action,
                details={"caller": caller},
            )

    def _get_artwork(self, artwork_id: int, action: str) -> Artwork:
        if not isinstance(artwork_id, int) or not 0 <= artwork_id < len(self.artworks):
            raise ValidationError(
                "Unknown artwork",
                reason=ErrorReason.INVALID_ARTWORK,
                component="ledger",
                action=action,
                details={"artwork_id": artwork_id},
            )
        return self.artworks[artwork_id]

    def _require_active(self, artwork: Artwork, action: str) -> None:
        if not artwork.active:
            raise StateError(
                "Artwork is not active",
                reason=ErrorReason.ARTWORK_INACTIVE,
                component="ledger",
                action=action,
                details={"artwork_id": artwork.id},
            )
