"""
Tick scheduler for PerpExchange.

Drives exchange.tick() at a fixed cadence on a daemon thread:
1. Wait for the interval (or a stop request)
2. Run one tick under the exchange lock
3. Record stats and notify the optional on_tick callback

A tick that raises is logged with its traceback and counted; the loop keeps
going. Stopping halts future ticks; a tick already in flight finishes.

Usage:
    from perpsim.engine import TickScheduler

    with TickScheduler(exchange, interval_seconds=2.0) as scheduler:
        ...  # commands from other threads are serialized with ticks
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..config.constants import DEFAULT_TICK_INTERVAL_SECONDS
from ..sim.exchange import PerpExchange
from ..sim.types import TickResult

logger = logging.getLogger(__name__)


@dataclass
class SchedulerStats:
    """Statistics from the tick scheduler."""

    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    ticks: int = 0
    funding_periods: int = 0
    liquidations: int = 0
    last_tick_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.stopped_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
            "duration_seconds": self.duration_seconds,
            "ticks": self.ticks,
            "funding_periods": self.funding_periods,
            "liquidations": self.liquidations,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "errors": self.errors[-10:],  # Last 10 errors
        }


class TickScheduler:
    """
    Runs exchange ticks on a background thread at a fixed interval.

    start() and stop() are idempotent. The scheduler can be restarted after
    stop(); stats are reset on every start.
    """

    def __init__(
        self,
        exchange: PerpExchange,
        interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
        on_tick: Optional[Callable[[TickResult], None]] = None,
    ):
        """
        Initialize scheduler.

        Args:
            exchange: Exchange to tick
            interval_seconds: Delay between ticks
            on_tick: Optional callback receiving each TickResult

        Raises:
            ValueError: If interval_seconds is not positive
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")

        self._exchange = exchange
        self._interval = interval_seconds
        self._on_tick = on_tick
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stats = SchedulerStats()

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking in the background (no-op if already running)."""
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                logger.warning("Tick scheduler already running")
                return

            self._stop_event.clear()
            self._stats = SchedulerStats(started_at=datetime.now(timezone.utc))
            self._thread = threading.Thread(
                target=self._run,
                name=f"perpsim-tick-{self._exchange.symbol}",
                daemon=True,
            )
            self._thread.start()

        logger.info(
            "Tick scheduler started for %s (every %.2fs)",
            self._exchange.symbol, self._interval,
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop ticking and wait for the worker thread.

        Args:
            timeout: Seconds to wait for an in-flight tick (None = forever)
        """
        with self._state_lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()

        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Tick thread did not stop within %.1fs", timeout)
            return

        with self._state_lock:
            self._thread = None
            self._stats.stopped_at = datetime.now(timezone.utc)

        logger.info(
            "Tick scheduler stopped: %d ticks, %d errors, %.1fs",
            self._stats.ticks, len(self._stats.errors), self._stats.duration_seconds,
        )

    def run_once(self) -> Optional[TickResult]:
        """
        Run a single tick in the calling thread, with the loop's error handling.

        Returns:
            TickResult, or None if the tick raised
        """
        try:
            result = self._exchange.tick()
        except Exception as e:
            self._record_error(e)
            logger.exception("Tick failed (continuing): %s", e)
            return None

        with self._state_lock:
            self._stats.ticks += 1
            self._stats.last_tick_at = result.timestamp
            self._stats.funding_periods += result.funding_result.periods_settled
            self._stats.liquidations += len(result.liquidation_result.liquidated)

        if self._on_tick is not None:
            try:
                self._on_tick(result)
            except Exception as e:
                self._record_error(e)
                logger.exception("on_tick callback failed (continuing): %s", e)

        return result

    def _record_error(self, error: Exception) -> None:
        with self._state_lock:
            self._stats.errors.append(str(error))

    def _run(self) -> None:
        # Event.wait returns True once stop() has been requested
        while not self._stop_event.wait(self._interval):
            self.run_once()

    def __enter__(self) -> "TickScheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
