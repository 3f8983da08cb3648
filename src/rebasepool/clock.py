"""
rebasepool/clock.py

Time sources for the pool. Timestamps are whole seconds.
"""

import time


class SystemClock:
    """Wall clock time."""

    def __call__(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Clock that only moves when told to.

    Usage:
        clock = ManualClock(1_700_000_000)
        pool = StakingPool(staked, reward, 86400, owner="alice", clock=clock)
        clock.advance(3600)
    """

    def __init__(self, start: int = 0):
        self._now = int(start)

    def __call__(self) -> int:
        return self._now

    @property
    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """Move forward by `seconds` and return the new time."""
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += int(seconds)
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError("clock cannot move backwards")
        self._now = int(timestamp)
