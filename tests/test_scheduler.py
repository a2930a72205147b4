"""
Tests for TickScheduler.

Validates that:
1. Ticks run in the background until stopped
2. start()/stop() are idempotent
3. A failing tick is logged and counted, and the loop keeps going
"""

import threading
import time
from datetime import timedelta

import pytest

from perpsim.engine import SimulatedClock, TickScheduler
from perpsim.sim import PerpExchange, Side

from conftest import FixedRandom, open_and_get_id


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class ExplodingExchange:
    """Stand-in exchange whose tick always raises."""

    symbol = "TEST"

    def __init__(self):
        self.calls = 0

    def tick(self):
        self.calls += 1
        raise RuntimeError("price feed exploded")


class TestLifecycle:
    """Start, stop and restart."""

    def test_runs_ticks_in_background(self):
        exchange = PerpExchange(rng=FixedRandom(0.5))
        scheduler = TickScheduler(exchange, interval_seconds=0.01)

        scheduler.start()
        try:
            assert scheduler.is_running
            assert wait_for(lambda: scheduler.stats.ticks >= 3)
        finally:
            scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.stats.stopped_at is not None
        assert scheduler.stats.last_tick_at is not None

    def test_start_and_stop_are_idempotent(self):
        scheduler = TickScheduler(PerpExchange(rng=FixedRandom(0.5)), interval_seconds=0.01)
        scheduler.stop()
        scheduler.start()
        scheduler.start()
        scheduler.stop()
        scheduler.stop()
        assert not scheduler.is_running

    def test_stop_halts_future_ticks(self):
        scheduler = TickScheduler(PerpExchange(rng=FixedRandom(0.5)), interval_seconds=0.01)
        scheduler.start()
        wait_for(lambda: scheduler.stats.ticks >= 1)
        scheduler.stop()

        ticks = scheduler.stats.ticks
        time.sleep(0.05)
        assert scheduler.stats.ticks == ticks

    def test_context_manager(self):
        with TickScheduler(PerpExchange(rng=FixedRandom(0.5)), interval_seconds=0.01) as scheduler:
            assert scheduler.is_running
        assert not scheduler.is_running

    @pytest.mark.parametrize("interval", [0.0, -1.0])
    def test_invalid_interval(self, interval):
        with pytest.raises(ValueError):
            TickScheduler(PerpExchange(rng=FixedRandom(0.5)), interval_seconds=interval)


class TestErrorHandling:
    """Failures never stop the loop."""

    def test_failing_tick_is_counted_and_loop_continues(self):
        exchange = ExplodingExchange()
        scheduler = TickScheduler(exchange, interval_seconds=0.01)

        with scheduler:
            assert wait_for(lambda: exchange.calls >= 3)

        assert scheduler.stats.ticks == 0
        assert len(scheduler.stats.errors) >= 3
        assert scheduler.stats.errors[0] == "price feed exploded"

    def test_run_once_returns_none_on_failure(self):
        scheduler = TickScheduler(ExplodingExchange(), interval_seconds=1.0)
        assert scheduler.run_once() is None
        assert len(scheduler.stats.errors) == 1

    def test_callback_failure_is_contained(self):
        def bad_callback(result):
            raise ValueError("render failed")

        scheduler = TickScheduler(PerpExchange(rng=FixedRandom(0.5)), interval_seconds=1.0, on_tick=bad_callback)
        assert scheduler.run_once() is not None
        assert scheduler.stats.ticks == 1
        assert scheduler.stats.errors == ["render failed"]


class TestStats:
    """Tick statistics."""

    def test_run_once_counts_funding_and_liquidations(self):
        clock = SimulatedClock()
        exchange = PerpExchange(rng=FixedRandom(0.0), clock=clock)
        exchange.deposit(1000.0)
        open_and_get_id(exchange, Side.LONG, 100.0, 5.0)

        seen = []
        scheduler = TickScheduler(exchange, interval_seconds=1.0, on_tick=seen.append)

        clock.advance(timedelta(hours=2))
        exchange.update_price(50.0)
        scheduler.run_once()

        assert len(seen) == 1
        assert scheduler.stats.ticks == 1
        assert scheduler.stats.funding_periods == 2
        assert scheduler.stats.liquidations == 1
        assert scheduler.stats.to_dict()["ticks"] == 1

    def test_parallel_run_once_counts_every_tick(self):
        scheduler = TickScheduler(PerpExchange(rng=FixedRandom(0.5)), interval_seconds=1.0)

        def tick_many():
            for _ in range(200):
                scheduler.run_once()

        workers = [threading.Thread(target=tick_many) for _ in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert scheduler.stats.ticks == 800
        assert scheduler.stats.errors == []
