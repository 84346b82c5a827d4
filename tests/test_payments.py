"""
Tests for the value transfer layer and ether amount helpers.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from config import ETHER
from journal import StateJournal
from ledger_exceptions import ErrorReason, TransferError
from payments import ValueTransferLayer, format_ether, parse_ether

POOL = "0x" + "a7" * 20
ALICE = "0x" + "a1" * 20


class Counter:
    """Journaled state outside the transfer layer."""

    def __init__(self, journal):
        self.journal = journal
        self.value = 0

    def bump(self):
        self.journal.set_attr(self, "value", self.value + 1)


@pytest.fixture
def journal():
    return StateJournal()


@pytest.fixture
def payments(journal):
    return ValueTransferLayer(journal, POOL)


class TestEtherAmounts:
    """Tests for parse_ether / format_ether."""

    @pytest.mark.parametrize("text,wei", [
        ("1", ETHER),
        ("0.1", ETHER // 10),
        ("15.0", 15 * ETHER),
        ("0.000000000000000001", 1),
        (2, 2 * ETHER),
    ])
    def test_parse(self, text, wei):
        assert parse_ether(text) == wei

    def test_sub_wei_rejected(self):
        with pytest.raises(ValueError):
            parse_ether("0.0000000000000000001")

    def test_not_a_number(self):
        with pytest.raises(ValueError):
            parse_ether("ten")

    @pytest.mark.parametrize("wei,text", [
        (ETHER, "1"),
        (ETHER // 10, "0.1"),
        (3 * ETHER // 2, "1.5"),
        (1, "0.000000000000000001"),
        (0, "0"),
    ])
    def test_format(self, wei, text):
        assert format_ether(wei) == text


class TestValueTransferLayer:
    """Tests for the balance pool."""

    def test_receive(self, payments):
        payments.receive(ALICE, 5)

        assert payments.get_balance() == {"total_balance": 5, "total_inflows": 5, "total_outflows": 0}
        assert payments.deposited[ALICE] == 5

    def test_negative_receive(self, payments):
        with pytest.raises(ValueError):
            payments.receive(ALICE, -1)

    def test_transfer(self, payments):
        payments.receive(ALICE, 10)
        payments.transfer(ALICE, 4)

        assert payments.balance == 6
        assert payments.total_outflows == 4
        assert payments.received_by(ALICE) == 4

    def test_insufficient_balance(self, payments):
        payments.receive(ALICE, 1)

        with pytest.raises(TransferError) as exc_info:
            payments.transfer(ALICE, 2)

        assert exc_info.value.reason == ErrorReason.INSUFFICIENT_BALANCE
        assert payments.balance == 1

    def test_hook_sees_payment(self, payments):
        seen = []
        payments.register_recipient(ALICE, lambda address, amount: seen.append((address, amount)))
        payments.receive(ALICE, 3)
        payments.transfer(ALICE, 3)

        assert seen == [(ALICE, 3)]

    def test_rejecting_hook(self, payments):
        payments.receive(ALICE, 10)

        def reject(address, amount):
            raise RuntimeError("no")

        payments.register_recipient(ALICE, reject)

        with pytest.raises(TransferError) as exc_info:
            payments.transfer(ALICE, 4)

        assert exc_info.value.reason == ErrorReason.TRANSFER_FAILED
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.recipient == ALICE
        assert exc_info.value.amount == 4
        assert payments.balance == 10
        assert payments.received_by(ALICE) == 0

    def test_hook_side_effects_reverted(self, journal, payments):
        counter = Counter(journal)
        payments.receive(ALICE, 10)

        def bump_then_reject(address, amount):
            counter.bump()
            raise RuntimeError("no")

        payments.register_recipient(ALICE, bump_then_reject)
        with pytest.raises(TransferError):
            payments.transfer(ALICE, 1)

        assert counter.value == 0

    def test_unregister(self, payments):
        payments.register_recipient(ALICE, lambda address, amount: 1 / 0)
        payments.unregister_recipient(ALICE)
        payments.receive(ALICE, 1)
        payments.transfer(ALICE, 1)

        assert payments.received_by(ALICE) == 1
