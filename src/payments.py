"""
PrivateArt - Value Transfer Layer

Holds the contract's single shared balance pool and performs outgoing
payments. A payment to an address may run code registered for that address
(a "recipient hook"), which can reject the payment or call back into the
ledger. Each transfer runs in its own journal frame, so a rejected payment
undoes whatever the recipient did before rejecting.

Core Properties:
- One pool for all artworks and requests; no per-artwork balance counters
- A failed transfer raises TransferError and moves no value
- Running totals per address for audit queries
"""

import logging
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any

from journal import StateJournal
from ledger_exceptions import ErrorReason, TransferError

logger = logging.getLogger(__name__)

RecipientHook = Callable[[str, int], None]


def parse_ether(amount: str | int | Decimal) -> int:
    """Convert an ether amount ("0.1") to wei. Fractions below 1 wei are rejected."""
    try:
        wei = Decimal(str(amount)).scaleb(18)
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {amount!r}") from e
    if wei != wei.to_integral_value():
        raise ValueError(f"More precision than 1 wei: {amount!r}")
    return int(wei)


def format_ether(wei: int) -> str:
    """Convert wei to a plain ether string ("1.5")."""
    text = format(Decimal(wei).scaleb(-18), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class ValueTransferLayer:
    """Balance pool plus outgoing-payment mechanics."""

    def __init__(self, journal: StateJournal, contract_address: str):
        self.journal = journal
        self.contract_address = contract_address

        self.balance = 0
        self.total_inflows = 0
        self.total_outflows = 0
        self.received: dict[str, int] = {}   # address -> total paid out to it
        self.deposited: dict[str, int] = {}  # address -> total paid in by it

        self._hooks: dict[str, RecipientHook] = {}

    def register_recipient(self, address: str, hook: RecipientHook) -> None:
        """
        Attach code that runs when `address` is paid.

        The hook is called as hook(address, amount); raising rejects the payment.
        """
        self._hooks[address] = hook

    def unregister_recipient(self, address: str) -> None:
        self._hooks.pop(address, None)

    def receive(self, sender: str, amount: int) -> None:
        """Credit value attached to a call."""
        if amount < 0:
            raise ValueError("Attached value cannot be negative")
        self.journal.set_attr(self, "balance", self.balance + amount)
        self.journal.set_attr(self, "total_inflows", self.total_inflows + amount)
        self.journal.set_item(self.deposited, sender, self.deposited.get(sender, 0) + amount)

    def transfer(self, recipient: str, amount: int) -> None:
        """
        Pay `amount` from the pool to `recipient`.

        Raises:
            TransferError: If the pool is short or the recipient rejects
        """
        if amount > self.balance:
            raise TransferError(
                "Insufficient contract balance",
                recipient=recipient,
                amount=amount,
                reason=ErrorReason.INSUFFICIENT_BALANCE,
            )
        try:
            with self.journal.atomic(f"transfer:{recipient}"):
                self.journal.set_attr(self, "balance", self.balance - amount)
                self.journal.set_attr(self, "total_outflows", self.total_outflows + amount)
                self.journal.set_item(self.received, recipient, self.received.get(recipient, 0) + amount)
                hook = self._hooks.get(recipient)
                if hook is not None:
                    hook(recipient, amount)
        except Exception as e:
            logger.warning("Transfer rejected by recipient", extra={"recipient": recipient, "amount": amount})
            raise TransferError(
                "Recipient rejected the transfer",
                recipient=recipient,
                amount=amount,
                cause=e,
            ) from e

    def received_by(self, address: str) -> int:
        return self.received.get(address, 0)

    def get_balance(self) -> dict[str, Any]:
        """Current pool balance and statistics."""
        return {
            "total_balance": self.balance,
            "total_inflows": self.total_inflows,
            "total_outflows": self.total_outflows,
        }
