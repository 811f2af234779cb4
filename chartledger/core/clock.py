# chartledger/core/clock.py
"""
Clock collaborators. The ledger only ever asks "what time is it" when a
commitment is created, and requires the answer never to go backwards.
"""

import time
from typing import Callable, Optional

Clock = Callable[[], int]


class SystemClock:
    """Wall-clock unix seconds."""

    def __call__(self) -> int:
        return int(time.time())


class ManualClock:
    """Settable clock for tests and replays."""

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def advance(self, seconds: int = 1) -> int:
        self.now += seconds
        return self.now

    def __call__(self) -> int:
        return self.now


class MonotonicClock:
    """Wraps any clock so successive readings are non-decreasing."""

    def __init__(self, source: Optional[Clock] = None):
        self.source = source or SystemClock()
        self._last = 0

    def __call__(self) -> int:
        self._last = max(self._last, int(self.source()))
        return self._last
