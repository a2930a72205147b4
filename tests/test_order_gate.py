"""
Tests for OrderGate (opens and closes through PerpExchange).

Validates that:
1. Open checks run in a fixed order and the first failure wins
2. Rejections leave no state behind
3. A successful open fixes notional, maintenance margin and liquidation price
4. Close realizes gross PnL and nets out fees and funding
"""

import math

import pytest

from perpsim.config import MarketConfig
from perpsim.sim import PerpExchange, RejectReason, Side

from conftest import FixedRandom, open_and_get_id


class TestOpenRejectOrder:
    """The ordered open checks."""

    def test_zero_price_wins_over_everything(self, exchange):
        exchange.update_price(0.0)
        # No deposit, tiny collateral, absurd leverage: price is still checked first
        assert exchange.open_position(Side.LONG, 1.0, 100.0) is RejectReason.ZERO_PRICE

    def test_no_deposit_wins_over_later_checks(self, exchange):
        assert exchange.open_position(Side.LONG, 1.0, 100.0) is RejectReason.NO_DEPOSIT

    def test_min_order_size(self, funded_exchange):
        assert funded_exchange.open_position(Side.LONG, 9.99, 100.0) is RejectReason.MIN_ORDER_SIZE

    @pytest.mark.parametrize("leverage", [5.01, 10.0, 0.5, 0.0, -2.0, math.nan])
    def test_leverage_out_of_range(self, funded_exchange, leverage):
        assert funded_exchange.open_position(Side.LONG, 100.0, leverage) is RejectReason.MAX_LEVERAGE

    def test_max_positions(self, exchange):
        exchange.deposit(10_000.0)
        for _ in range(10):
            open_and_get_id(exchange, Side.LONG, 10.0, 1.0)

        # Would also fail the margin check; the position cap is checked first
        assert exchange.open_position(Side.SHORT, 1_000_000.0, 1.0) is RejectReason.MAX_POSITIONS
        assert len(exchange.positions()) == 10

    def test_collateral_below_initial_margin(self, steady_rng, clock):
        """Only reachable when max leverage exceeds 1 / IMF."""
        market = MarketConfig(initial_margin_fraction=0.5, max_slippage=0.0)
        exchange = PerpExchange(market, rng=steady_rng, clock=clock)
        exchange.deposit(1000.0)

        assert exchange.open_position(Side.LONG, 100.0, 3.0) is RejectReason.INSUFFICIENT_MARGIN
        assert exchange.open_position(Side.LONG, 100.0, 2.0) is None

    def test_collateral_above_free_margin(self, exchange):
        exchange.deposit(100.0)
        assert exchange.open_position(Side.LONG, 150.0, 1.0) is RejectReason.INSUFFICIENT_MARGIN

    def test_rejection_leaves_no_state(self, funded_exchange):
        before = funded_exchange.snapshot()
        funded_exchange.open_position(Side.LONG, 5000.0, 2.0)

        after = funded_exchange.snapshot()
        assert after.positions == []
        assert after.account == before.account
        assert after.metrics == before.metrics


class TestOpen:
    """Successful opens."""

    def test_reference_scenario_open(self, funded_exchange):
        """deposit 1000, long 100 x 3 at 100."""
        position_id = open_and_get_id(funded_exchange, Side.LONG, 100.0, 3.0)
        position = funded_exchange.get_position(position_id)

        assert position.notional == 300.0
        assert position.size_index == pytest.approx(3.0)
        assert position.maintenance_margin == pytest.approx(30.0)
        assert position.liquidation_price == pytest.approx(100.0 * (1 - 70.0 / 300.0))
        assert position.liquidation_price == pytest.approx(76.67, abs=0.005)
        assert position.open_fee == pytest.approx(0.24)
        assert position.mark_price == position.entry_price == 100.0

        m = funded_exchange.metrics()
        assert m.equity == pytest.approx(999.76)
        assert m.total_initial_margin == pytest.approx(60.0)
        assert m.free_margin == pytest.approx(939.76)
        assert funded_exchange.account.total_fees_paid == pytest.approx(0.24)

    def test_short_liquidation_price_above_entry(self, funded_exchange):
        position_id = open_and_get_id(funded_exchange, Side.SHORT, 100.0, 5.0)
        # buffer = 100 - 50 = 50 -> 100 x (1 + 50/500)
        assert funded_exchange.get_position(position_id).liquidation_price == pytest.approx(110.0)

    def test_side_accepts_string(self, funded_exchange):
        assert funded_exchange.open_position("short", 50.0, 2.0) is None
        assert funded_exchange.positions()[0].side is Side.SHORT

    def test_invalid_side_raises(self, funded_exchange):
        with pytest.raises(ValueError):
            funded_exchange.open_position("sideways", 50.0, 2.0)

    def test_entry_slippage_is_adverse(self, clock):
        exchange = PerpExchange(MarketConfig(), rng=FixedRandom(0.5), clock=clock)
        exchange.deposit(1000.0)
        long_id = open_and_get_id(exchange, Side.LONG, 100.0, 2.0)
        short_id = open_and_get_id(exchange, Side.SHORT, 100.0, 2.0)

        # 100 x 0.001 x 0.5 = 0.05
        assert exchange.get_position(long_id).entry_price == pytest.approx(100.05)
        assert exchange.get_position(short_id).entry_price == pytest.approx(99.95)
        assert exchange.get_position(long_id).size_index == pytest.approx(200.0 / 100.05)

    def test_position_ids_are_unique(self, funded_exchange):
        ids = {open_and_get_id(funded_exchange, Side.LONG, 10.0, 1.0) for _ in range(5)}
        assert len(ids) == 5


class TestClose:
    """Closing positions."""

    def test_reference_scenario_close_at_110(self, funded_exchange):
        position_id = open_and_get_id(funded_exchange, Side.LONG, 100.0, 3.0)
        funded_exchange.update_price(110.0)

        record = funded_exchange.close_position(position_id)

        assert record.exit_price == 110.0
        assert record.gross_pnl == pytest.approx(30.0)
        assert record.fees == pytest.approx(0.48)
        assert record.funding == 0.0
        assert record.net_pnl == pytest.approx(29.52)
        assert not record.is_liquidation

        state = funded_exchange.account
        assert state.realized_pnl == pytest.approx(30.0)
        assert state.total_fees_paid == pytest.approx(0.48)
        assert funded_exchange.metrics().equity == pytest.approx(1029.52)
        assert funded_exchange.positions() == []
        assert funded_exchange.trade_history() == [record]

    def test_short_profits_when_price_falls(self, funded_exchange):
        position_id = open_and_get_id(funded_exchange, Side.SHORT, 100.0, 2.0)
        funded_exchange.update_price(95.0)
        record = funded_exchange.close_position(position_id)
        assert record.gross_pnl == pytest.approx(10.0)

    def test_leverage_one_round_trip_costs_only_fees(self, funded_exchange):
        position_id = open_and_get_id(funded_exchange, Side.LONG, 100.0, 1.0)
        record = funded_exchange.close_position(position_id)

        open_fee = close_fee = 100.0 * 0.0008
        assert record.gross_pnl == pytest.approx(0.0)
        assert record.net_pnl == pytest.approx(-(open_fee + close_fee))

    def test_exit_slippage_is_adverse(self, clock):
        exchange = PerpExchange(MarketConfig(), rng=FixedRandom(0.5), clock=clock)
        exchange.deposit(1000.0)
        long_id = open_and_get_id(exchange, Side.LONG, 100.0, 1.0)
        short_id = open_and_get_id(exchange, Side.SHORT, 100.0, 1.0)

        assert exchange.close_position(long_id).exit_price == pytest.approx(99.95)
        assert exchange.close_position(short_id).exit_price == pytest.approx(100.05)

    def test_close_unknown_id_is_noop(self, funded_exchange):
        before = funded_exchange.snapshot()
        assert funded_exchange.close_position("pos-missing") is None
        assert funded_exchange.snapshot().account == before.account
        assert funded_exchange.trade_history() == []

    def test_close_twice_returns_none_second_time(self, funded_exchange):
        position_id = open_and_get_id(funded_exchange, Side.LONG, 100.0, 2.0)
        assert funded_exchange.close_position(position_id) is not None
        assert funded_exchange.close_position(position_id) is None
        assert len(funded_exchange.trade_history()) == 1
