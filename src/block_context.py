"""
PrivateArt - Block Context

Source of "now" and of the per-block random beacon used by the ledger.
`SystemBlockContext` follows the wall clock; `ManualBlockContext` is driven
explicitly by simulations and tests.
"""

import secrets
import time
from abc import ABC, abstractmethod

BLOCK_TIME_SECONDS = 12


class BlockContext(ABC):
    """Chain metadata visible to a call."""

    @abstractmethod
    def timestamp(self) -> int:
        """Current block timestamp, in seconds."""
        pass

    @abstractmethod
    def prevrandao(self) -> int:
        """
        Current block's random beacon.

        Weak randomness: influenceable by whoever produces the block.
        """
        pass


class SystemBlockContext(BlockContext):
    """Wall-clock context; a fresh beacon per 12-second block."""

    def __init__(self):
        self._beacons: dict[int, int] = {}

    def timestamp(self) -> int:
        return int(time.time())

    def prevrandao(self) -> int:
        block_number = self.timestamp() // BLOCK_TIME_SECONDS
        if block_number not in self._beacons:
            # only the current block's beacon is ever read
            self._beacons = {block_number: secrets.randbits(256)}
        return self._beacons[block_number]


class ManualBlockContext(BlockContext):
    """Explicitly driven context."""

    def __init__(self, start_timestamp: int = 1_700_000_000, prevrandao: int | None = None):
        self._timestamp = start_timestamp
        self._prevrandao = prevrandao if prevrandao is not None else secrets.randbits(256)

    def timestamp(self) -> int:
        return self._timestamp

    def prevrandao(self) -> int:
        return self._prevrandao

    def advance(self, seconds: int) -> int:
        """Move time forward and roll the beacon. Returns the new timestamp."""
        if seconds < 0:
            raise ValueError("Cannot move block time backwards")
        self._timestamp += seconds
        self._prevrandao = secrets.randbits(256)
        return self._timestamp

    def set_prevrandao(self, value: int) -> None:
        self._prevrandao = value
