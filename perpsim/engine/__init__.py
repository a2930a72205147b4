"""
Runtime drivers for the simulated exchange.
"""

from .clock import SimulatedClock
from .scheduler import TickScheduler, SchedulerStats

__all__ = [
    "SimulatedClock",
    "TickScheduler",
    "SchedulerStats",
]
