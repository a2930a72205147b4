"""
Pytest configuration and shared fixtures for perpsim tests.
"""

import logging
from datetime import datetime, timezone
from typing import Sequence

import pytest

from perpsim.config import MarketConfig
from perpsim.engine import SimulatedClock
from perpsim.sim import PerpExchange, Position, Side, StaticPriceSource

T0 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class FixedRandom:
    """Random source that always returns the same value."""

    def __init__(self, value: float = 0.5):
        self.value = value

    def random(self) -> float:
        return self.value


class SequenceRandom:
    """Random source cycling through a fixed sequence."""

    def __init__(self, values: Sequence[float]):
        self._values = list(values)
        self._index = 0

    def random(self) -> float:
        value = self._values[self._index % len(self._values)]
        self._index += 1
        return value


def make_position(
    side: Side = Side.LONG,
    collateral: float = 100.0,
    leverage: float = 3.0,
    entry: float = 100.0,
    upnl: float = 0.0,
    funding: float = 0.0,
    position_id: str = "pos-1",
) -> Position:
    """Position built with the default market fractions (MMF 0.10, taker 0.0008)."""
    notional = collateral * leverage
    return Position(
        position_id=position_id,
        side=side,
        leverage=leverage,
        entry_price=entry,
        collateral=collateral,
        notional=notional,
        size_index=notional / entry,
        maintenance_margin=notional * 0.10,
        liquidation_price=0.0,
        open_fee=notional * 0.0008,
        opened_at=T0,
        unrealized_pnl=upnl,
        realized_funding=funding,
    )


def open_and_get_id(exchange: PerpExchange, side: Side, collateral: float, leverage: float) -> str:
    """Open a position that must succeed and return its id."""
    reason = exchange.open_position(side, collateral, leverage)
    assert reason is None, f"open rejected: {reason}"
    return exchange.positions()[-1].position_id


@pytest.fixture(autouse=True)
def reset_perpsim_loggers():
    """Drop handlers attached by setup_logger() so streams don't leak between tests."""
    yield
    for name in ("perpsim", "perpsim.trades"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def clock() -> SimulatedClock:
    """Simulated clock starting at 2024-01-01 00:00 UTC."""
    return SimulatedClock(T0)


@pytest.fixture
def steady_rng() -> FixedRandom:
    """
    random() == 0.5: zero jitter noise, zero funding drift, mid slippage.
    """
    return FixedRandom(0.5)


@pytest.fixture
def market() -> MarketConfig:
    """Default market with slippage disabled so fills equal the reference price."""
    return MarketConfig(max_slippage=0.0)


@pytest.fixture
def exchange(market, steady_rng, clock) -> PerpExchange:
    """Exchange whose price, funding rate and fills are fully predictable."""
    return PerpExchange(market, rng=steady_rng, clock=clock, debug_check_invariants=True)


@pytest.fixture
def funded_exchange(exchange) -> PerpExchange:
    """Predictable exchange with 1000 deposited."""
    assert exchange.deposit(1000.0) is None
    return exchange


@pytest.fixture
def oracle() -> StaticPriceSource:
    return StaticPriceSource()
