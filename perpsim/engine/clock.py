"""
Simulated clock for deterministic sessions.

PerpExchange takes any zero-argument callable returning a datetime. This one
only moves when told to, so funding schedules and oracle staleness can be
replayed exactly.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


class SimulatedClock:
    """Manually advanced, timezone-aware clock."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self._now

    @property
    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        """Move time forward and return the new time."""
        if delta < timedelta(0):
            raise ValueError("SimulatedClock cannot move backwards")
        self._now += delta
        return self._now

    def advance_seconds(self, seconds: float) -> datetime:
        return self.advance(timedelta(seconds=seconds))
