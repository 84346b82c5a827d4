"""
Tests for the timeout and emergency refund paths.

These tests verify that:
1. Anyone can refund a request once the callback timeout has passed
2. The owner can force a refund only inside the refund window
3. Each request resolves exactly once across all three paths
4. One rejected refund payment does not block the others
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import ALICE, BOB, CAROL, OWNER, STRANGER, invest, list_artwork
from config import CALLBACK_TIMEOUT, ETHER, MAX_REFUND_WINDOW
from decryption_requests import RequestState
from events import EventType
from ledger_exceptions import AuthorizationError, ErrorReason, StateError, ValidationError

HOUR = 60 * 60


@pytest.fixture
def request_id(contract, gateway, funded_artwork):
    """A 3 ETH request over ALICE/BOB/CAROL whose callback never arrives."""
    rid = contract.request_returns_distribution(OWNER, funded_artwork, 3 * ETHER)
    gateway.drop(rid)
    return rid


class TestTimeoutRefund:
    """Tests for request_refund_for_failed_decryption."""

    def test_refund_after_timeout(self, contract, block, request_id):
        block.advance(CALLBACK_TIMEOUT + HOUR)
        result = contract.request_refund_for_failed_decryption(STRANGER, request_id)

        assert result.refund_per_investor == ETHER
        assert result.refunded == [ALICE, BOB, CAROL]
        for investor in (ALICE, BOB, CAROL):
            assert contract.payments.received_by(investor) == ETHER
        assert contract.get_request_state(request_id) == RequestState.FAILED

    def test_refund_is_even_not_proportional(self, contract, block, request_id):
        block.advance(CALLBACK_TIMEOUT)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        # CAROL holds 12x ALICE's shares but the refund is per head
        assert contract.payments.received_by(CAROL) == contract.payments.received_by(ALICE)

    def test_before_timeout_rejected(self, contract, block, request_id):
        block.advance(CALLBACK_TIMEOUT - 1)

        with pytest.raises(StateError) as exc_info:
            contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert exc_info.value.reason == ErrorReason.TIMEOUT_NOT_REACHED
        assert contract.get_request_state(request_id) == RequestState.PENDING

    def test_refund_at_exact_timeout(self, contract, block, request_id):
        block.advance(CALLBACK_TIMEOUT)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert contract.get_request_state(request_id) == RequestState.FAILED

    def test_no_upper_deadline(self, contract, block, request_id):
        block.advance(MAX_REFUND_WINDOW * 10)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert contract.get_request_state(request_id) == RequestState.FAILED

    def test_double_refund_rejected(self, contract, block, request_id):
        block.advance(CALLBACK_TIMEOUT + HOUR)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        with pytest.raises(StateError) as exc_info:
            contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert exc_info.value.reason == ErrorReason.ALREADY_FINALIZED
        assert contract.payments.received_by(ALICE) == ETHER

    def test_callback_after_refund_rejected(self, contract, gateway, block, request_id):
        cleartexts, proof = gateway.answer(request_id)
        block.advance(CALLBACK_TIMEOUT + HOUR)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        with pytest.raises(StateError):
            contract.process_returns_distribution(request_id, cleartexts, proof)

    def test_late_answer_discarded_by_gateway(self, contract, gateway, block, funded_artwork):
        refunded = contract.request_returns_distribution(OWNER, funded_artwork, 3 * ETHER)
        block.advance(CALLBACK_TIMEOUT + HOUR)
        contract.request_refund_for_failed_decryption(ALICE, refunded)

        other = list_artwork(contract, name="Second Piece")
        invest(contract, ALICE, other, 5)
        later = contract.request_returns_distribution(OWNER, other, ETHER)

        assert gateway.fulfill_all() == [later]
        assert gateway.pending_requests() == []
        assert contract.get_request_state(refunded) == RequestState.FAILED
        assert contract.get_request_state(later) == RequestState.PROCESSED

    def test_refund_after_distribution_rejected(self, contract, gateway, block, funded_artwork):
        rid = contract.request_returns_distribution(OWNER, funded_artwork, 3 * ETHER)
        gateway.fulfill(rid)
        block.advance(CALLBACK_TIMEOUT + HOUR)

        with pytest.raises(StateError):
            contract.request_refund_for_failed_decryption(ALICE, rid)

    def test_unknown_request(self, contract):
        with pytest.raises(ValidationError) as exc_info:
            contract.request_refund_for_failed_decryption(ALICE, 404)

        assert exc_info.value.reason == ErrorReason.UNKNOWN_REQUEST

    def test_events(self, contract, block, request_id):
        block.advance(CALLBACK_TIMEOUT + HOUR)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        failed = contract.events.of_type(EventType.DECRYPTION_FAILED)
        assert [e.data["path"] for e in failed] == ["timeout"]
        issued = contract.events.of_type(EventType.REFUND_ISSUED)
        assert [e.data["investor"] for e in issued] == [ALICE, BOB, CAROL]
        assert all(e.data["amount"] == str(ETHER) for e in issued)

    def test_uneven_split_leaves_remainder(self, contract, gateway, block):
        artwork_id = list_artwork(contract, share_price=1, total_shares=3)
        for investor in (ALICE, BOB, CAROL):
            invest(contract, investor, artwork_id, 1)
        rid = contract.request_returns_distribution(OWNER, artwork_id, 10)
        block.advance(CALLBACK_TIMEOUT)

        result = contract.request_refund_for_failed_decryption(ALICE, rid)

        assert result.refund_per_investor == 3
        assert contract.get_balance()["total_balance"] == 3 + 1

    def test_already_paid_investors_skipped(self, contract, gateway, block, funded_artwork):
        gateway.fulfill(contract.request_returns_distribution(OWNER, funded_artwork, 15 * ETHER))
        rid = contract.request_returns_distribution(OWNER, funded_artwork, 3 * ETHER)
        block.advance(CALLBACK_TIMEOUT)

        result = contract.request_refund_for_failed_decryption(ALICE, rid)

        assert result.refunded == []
        assert result.skipped == [ALICE, BOB, CAROL]
        assert contract.payments.received_by(ALICE) == ETHER

    def test_refund_metrics(self, contract, block, request_id, metrics_collector):
        block.advance(CALLBACK_TIMEOUT)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert metrics_collector.get_counter("refunds_total", labels={"path": "timeout"}) == 1


class TestEmergencyRefund:
    """Tests for the owner override."""

    def test_owner_can_refund_immediately(self, contract, request_id):
        result = contract.emergency_refund(OWNER, request_id)

        assert result.refunded == [ALICE, BOB, CAROL]
        assert contract.get_request_state(request_id) == RequestState.FAILED
        event = contract.events.of_type(EventType.DECRYPTION_FAILED)[0]
        assert event.data["path"] == "emergency"

    def test_owner_only(self, contract, request_id):
        with pytest.raises(AuthorizationError) as exc_info:
            contract.emergency_refund(ALICE, request_id)

        assert exc_info.value.reason == ErrorReason.NOT_OWNER
        assert contract.get_request_state(request_id) == RequestState.PENDING

    def test_last_second_of_window(self, contract, block, request_id):
        block.advance(MAX_REFUND_WINDOW)
        contract.emergency_refund(OWNER, request_id)

        assert contract.get_request_state(request_id) == RequestState.FAILED

    def test_window_expired(self, contract, block, request_id):
        block.advance(MAX_REFUND_WINDOW + 1)

        with pytest.raises(StateError) as exc_info:
            contract.emergency_refund(OWNER, request_id)

        assert exc_info.value.reason == ErrorReason.REFUND_WINDOW_EXPIRED
        # the timeout path still works
        contract.request_refund_for_failed_decryption(STRANGER, request_id)
        assert contract.get_request_state(request_id) == RequestState.FAILED

    def test_emergency_after_timeout_refund_rejected(self, contract, block, request_id):
        block.advance(CALLBACK_TIMEOUT)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        with pytest.raises(StateError) as exc_info:
            contract.emergency_refund(OWNER, request_id)
        assert exc_info.value.reason == ErrorReason.ALREADY_FINALIZED

    def test_windows_reported(self, contract, request_id):
        requested_at = contract.get_request(request_id).requested_at

        assert contract.safety_net.refundable_at(request_id) == requested_at + CALLBACK_TIMEOUT
        assert contract.safety_net.emergency_window_end(request_id) == requested_at + MAX_REFUND_WINDOW


class TestRefundIsolation:
    """One rejected refund must not block the rest."""

    def test_failed_transfer_isolated(self, contract, block, request_id):
        def reject(address, amount):
            raise RuntimeError("recipient reverted")

        contract.payments.register_recipient(BOB, reject)
        block.advance(CALLBACK_TIMEOUT)

        result = contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert result.refunded == [ALICE, CAROL]
        assert result.failed == [BOB]
        assert contract.payments.received_by(ALICE) == ETHER
        assert contract.payments.received_by(BOB) == 0
        assert contract.payments.received_by(CAROL) == ETHER
        assert contract.get_request_state(request_id) == RequestState.FAILED

    def test_failed_investor_left_unclaimed(self, contract, block, request_id, funded_artwork):
        contract.payments.register_recipient(BOB, lambda address, amount: 1 / 0)
        block.advance(CALLBACK_TIMEOUT)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert not contract.is_claimed(funded_artwork, BOB)
        assert contract.is_claimed(funded_artwork, ALICE)
        events = contract.events.of_type(EventType.REFUND_FAILED)
        assert [e.data["investor"] for e in events] == [BOB]

    def test_failed_share_stays_in_pool(self, contract, block, request_id):
        before = contract.get_balance()["total_balance"]
        contract.payments.register_recipient(BOB, lambda address, amount: 1 / 0)
        block.advance(CALLBACK_TIMEOUT)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert contract.get_balance()["total_balance"] == before - 2 * ETHER

    def test_rejecting_recipient_side_effects_undone(self, contract, block, request_id):
        def register_then_reject(address, amount):
            contract.register_investor(STRANGER)
            raise RuntimeError("recipient reverted")

        contract.payments.register_recipient(BOB, register_then_reject)
        block.advance(CALLBACK_TIMEOUT)
        result = contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert result.failed == [BOB]
        assert not contract.is_investor_registered(STRANGER)

    def test_reentrant_refund_during_sweep(self, contract, block, request_id):
        seen = []

        def reenter(address, amount):
            try:
                contract.request_refund_for_failed_decryption(address, request_id)
            except StateError as e:
                seen.append(e.reason.value)

        contract.payments.register_recipient(ALICE, reenter)
        block.advance(CALLBACK_TIMEOUT)
        contract.request_refund_for_failed_decryption(BOB, request_id)

        assert seen == ["already_finalized"]
        assert contract.payments.received_by(ALICE) == ETHER

    def test_failure_metrics(self, contract, block, request_id, metrics_collector):
        contract.payments.register_recipient(BOB, lambda address, amount: 1 / 0)
        block.advance(CALLBACK_TIMEOUT)
        contract.request_refund_for_failed_decryption(ALICE, request_id)

        assert metrics_collector.get_counter("transfer_failures_total") == 1
