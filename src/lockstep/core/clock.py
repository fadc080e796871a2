"""Injectable time sources.

All throttling state is expressed in Unix-epoch milliseconds.  Components
take a :class:`Clock` so escalation and expiry can be driven
deterministically in tests with :class:`ManualClock`.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current time in epoch milliseconds."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Wall-clock time source."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def advance(self, ms: int) -> None:
        if ms < 0:
            raise ValueError("Cannot move a clock backwards")
        self._now += ms

    def set(self, now_ms: int) -> None:
        self._now = now_ms
