"""
Tests for the state journal, event log, exception hierarchy, configuration
and block context.
"""

import logging
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from block_context import ManualBlockContext, SystemBlockContext
from config import CALLBACK_TIMEOUT, DEFAULT_OWNER, MAX_REFUND_WINDOW, LedgerConfig
from events import EventLog, EventType
from journal import StateJournal
from ledger_exceptions import (
    ErrorReason,
    LedgerArithmeticError,
    StateError,
    TransferError,
    ValidationError,
    log_exception,
)


class Box:
    def __init__(self, value):
        self.value = value


class TestStateJournal:
    """Tests for atomic call frames."""

    def test_success_keeps_changes(self):
        journal = StateJournal()
        box = Box(1)

        with journal.atomic():
            journal.set_attr(box, "value", 2)

        assert box.value == 2

    def test_failure_reverts_every_kind_of_change(self):
        journal = StateJournal()
        box = Box(1)
        mapping = {"kept": 1}
        items = [1]
        members = {"a"}

        with pytest.raises(KeyError):
            with journal.atomic():
                journal.set_attr(box, "value", 2)
                journal.set_item(mapping, "kept", 5)
                journal.set_item(mapping, "new", 6)
                journal.append(items, 2)
                journal.add(members, "b")
                journal.discard(members, "a")
                raise KeyError("boom")

        assert box.value == 1
        assert mapping == {"kept": 1}
        assert items == [1]
        assert members == {"a"}

    def test_repeated_changes_unwind_in_order(self):
        journal = StateJournal()
        box = Box(0)

        with pytest.raises(RuntimeError):
            with journal.atomic():
                for i in range(1, 4):
                    journal.set_attr(box, "value", i)
                raise RuntimeError("boom")

        assert box.value == 0

    def test_inner_failure_only_reverts_inner(self):
        journal = StateJournal()
        box = Box(0)

        with journal.atomic("outer"):
            journal.set_attr(box, "value", 1)
            with pytest.raises(RuntimeError):
                with journal.atomic("inner"):
                    journal.set_attr(box, "value", 2)
                    raise RuntimeError("inner")
            assert box.value == 1
            assert journal.depth == 1

        assert box.value == 1
        assert journal.depth == 0

    def test_outer_failure_reverts_committed_inner(self):
        journal = StateJournal()
        items = []

        with pytest.raises(RuntimeError):
            with journal.atomic("outer"):
                with journal.atomic("inner"):
                    journal.append(items, "paid")
                raise RuntimeError("outer")

        assert items == []

    def test_changes_outside_frames_are_permanent(self):
        journal = StateJournal()
        box = Box(0)
        journal.set_attr(box, "value", 1)

        with pytest.raises(RuntimeError):
            with journal.atomic():
                raise RuntimeError("boom")

        assert box.value == 1


class TestEventLog:
    """Tests for the event log."""

    def test_emit(self):
        log = EventLog()
        event = log.emit(EventType.ARTWORK_LISTED, {"artwork_id": 0})

        assert event.event_id.startswith("evt_")
        assert event.event_type == "ArtworkListed"
        assert log.of_type(EventType.ARTWORK_LISTED) == [event]

    def test_stamped_with_block_time(self):
        block = ManualBlockContext(start_timestamp=1_000, prevrandao=1)
        log = EventLog(block=block)

        first = log.emit(EventType.ARTWORK_LISTED, {"artwork_id": 0})
        block.advance(60)
        second = log.emit(EventType.ARTWORK_SOLD, {"artwork_id": 0})

        assert first.timestamp == 1_000
        assert second.timestamp == 1_060

    def test_recent_newest_first(self):
        log = EventLog()
        for i in range(5):
            log.emit(EventType.INVESTOR_REGISTERED, {"n": i})

        recent = log.recent(limit=2)
        assert [e["data"]["n"] for e in recent] == [4, 3]

    def test_reverted_frame_emits_nothing(self):
        journal = StateJournal()
        log = EventLog(journal=journal)
        log.emit(EventType.ARTWORK_SOLD, {"artwork_id": 1})

        with pytest.raises(RuntimeError):
            with journal.atomic():
                log.emit(EventType.ARTWORK_SOLD, {"artwork_id": 2})
                raise RuntimeError("revert")

        assert [e.data["artwork_id"] for e in log.events] == [1]


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_str_includes_context(self):
        error = StateError("Not now", reason=ErrorReason.TIMEOUT_NOT_REACHED, component="refunds", action="refund")
        assert str(error) == "[refunds:refund] Not now"

    def test_to_dict(self):
        error = ValidationError(
            "Bad", reason=ErrorReason.SHAPE_MISMATCH, component="requests", action="process", details={"n": 2}
        )
        data = error.to_dict()

        assert data["error_type"] == "ValidationError"
        assert data["reason"] == "shape_mismatch"
        assert data["details"] == {"n": 2}
        assert "timestamp" in data

    def test_cause_chained(self):
        cause = RuntimeError("reverted")
        error = TransferError("Rejected", recipient="0xabc", amount=5, cause=cause)

        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == {"type": "RuntimeError", "message": "reverted"}
        assert "caused by" in str(error)

    def test_arithmetic_reason(self):
        assert LedgerArithmeticError("overflow").reason == ErrorReason.OVERFLOW

    def test_log_exception(self, caplog):
        logger = logging.getLogger("test.ledger")
        error = StateError("Done", reason=ErrorReason.ALREADY_FINALIZED)

        with caplog.at_level(logging.INFO, logger="test.ledger"):
            log_exception(logger, error, level="info")

        record = caplog.records[0]
        assert record.levelno == logging.INFO
        assert record.error["reason"] == "already_finalized"


class TestLedgerConfig:
    """Tests for configuration."""

    def test_defaults(self):
        config = LedgerConfig()

        assert config.owner == DEFAULT_OWNER
        assert config.callback_timeout == CALLBACK_TIMEOUT == 86400
        assert config.max_refund_window == MAX_REFUND_WINDOW == 604800

    def test_timeout_must_fit_window(self):
        with pytest.raises(ValueError):
            LedgerConfig(callback_timeout=10, max_refund_window=5)

    def test_windows_positive(self):
        with pytest.raises(ValueError):
            LedgerConfig(callback_timeout=0)

    def test_from_env(self, monkeypatch):
        owner = "0x" + "ab" * 20
        monkeypatch.setenv("PRIVATEART_OWNER", owner)
        monkeypatch.setenv("PRIVATEART_CALLBACK_TIMEOUT", "60")
        monkeypatch.setenv("LOG_FORMAT", "JSON")

        config = LedgerConfig.from_env()

        assert config.owner == owner
        assert config.callback_timeout == 60
        assert config.log_format == "json"


class TestBlockContext:
    """Tests for block clocks."""

    def test_manual_advance(self):
        block = ManualBlockContext(start_timestamp=100, prevrandao=1)

        assert block.advance(50) == 150
        assert block.timestamp() == 150

    def test_manual_cannot_go_back(self):
        with pytest.raises(ValueError):
            ManualBlockContext().advance(-1)

    def test_set_prevrandao(self):
        block = ManualBlockContext()
        block.set_prevrandao(99)
        assert block.prevrandao() == 99

    def test_system_beacon_stable_within_block(self):
        block = SystemBlockContext()
        assert block.timestamp() > 0
        assert 0 <= block.prevrandao() < 2**256
