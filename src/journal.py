"""
PrivateArt - State Journal

Gives every public operation all-or-nothing semantics. Components make their
state changes through the journal (`set_attr`, `set_item`, `append`, `add`,
`discard`), which records the inverse of each change in the current call
frame. If the frame raises, its undo log is replayed newest first.

Frames nest. A failing inner frame (e.g. one payment to a recipient that
re-entered the contract) is undone without disturbing the enclosing
operation; a successful inner frame hands its undo log to the enclosing one,
so a later failure there still reverts it. The cost of a frame is
proportional to the changes made inside it, not to the size of the ledger.
"""

import logging
from collections.abc import Callable
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)

Undo = Callable[[], None]

_MISSING = object()


class StateJournal:
    """Undo log shared by all ledger components."""

    def __init__(self):
        self._frames: list[list[Undo]] = []

    @property
    def depth(self) -> int:
        return len(self._frames)

    def record(self, undo: Undo) -> None:
        """Register the inverse of a change. Outside any frame this is a no-op."""
        if self._frames:
            self._frames[-1].append(undo)

    @contextmanager
    def atomic(self, label: str = "call"):
        """
        Run the enclosed block as one call frame.

        Usage:
            with journal.atomic("make_private_investment"):
                ...  # any exception undoes every journaled change
        """
        self._frames.append([])
        try:
            yield self
        except BaseException:
            undo_log = self._frames.pop()
            for undo in reversed(undo_log):
                undo()
            logger.debug(
                "Reverted call frame",
                extra={"frame": label, "depth": self.depth + 1, "changes": len(undo_log)},
            )
            raise
        else:
            undo_log = self._frames.pop()
            if self._frames:
                self._frames[-1].extend(undo_log)

    # =========================================================================
    # Journaled mutations
    # =========================================================================

    def set_attr(self, obj: Any, name: str, value: Any) -> None:
        old = getattr(obj, name)
        setattr(obj, name, value)
        self.record(lambda: setattr(obj, name, old))

    def set_item(self, mapping: dict, key: Any, value: Any) -> None:
        old = mapping.get(key, _MISSING)
        mapping[key] = value
        if old is _MISSING:
            self.record(lambda: mapping.pop(key, None))
        else:
            self.record(lambda: mapping.__setitem__(key, old))

    def append(self, items: list, value: Any) -> None:
        items.append(value)
        self.record(items.pop)

    def add(self, members: set, value: Any) -> None:
        if value not in members:
            members.add(value)
            self.record(lambda: members.discard(value))

    def discard(self, members: set, value: Any) -> None:
        if value in members:
            members.discard(value)
            self.record(lambda: members.add(value))
