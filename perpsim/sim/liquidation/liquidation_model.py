"""
Liquidation model for mark-based, per-position liquidation.

Checks each position's health on every tick:
    position_equity = collateral + unrealized_pnl - realized_funding
    position_equity <= maintenance_margin  ->  LIQUIDATE

Force closes at the mark price with a liquidation penalty:
    penalty = notional x liquidation_fee_rate
    net_pnl = unrealized_pnl - open_fee - penalty - realized_funding

The liquidation price computed at open is informational only; it is never
compared against the mark to trigger liquidation.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..book import PositionBook
from ..types import (
    CloseReason,
    LiquidationResult,
    Position,
    Side,
    TradeRecord,
)


@dataclass
class LiquidationModelConfig:
    """Configuration for liquidation model."""
    liquidation_fee_rate: float = 0.005  # 0.5% penalty on notional


class LiquidationModel:
    """
    Checks liquidation conditions and handles forced closure.

    The sweep is a partition of the book into retained and liquidated
    positions; liquidated positions never survive into the next tick.
    """

    def __init__(self, config: Optional[LiquidationModelConfig] = None):
        self._config = config or LiquidationModelConfig()

    @property
    def liquidation_fee_rate(self) -> float:
        return self._config.liquidation_fee_rate

    def is_liquidatable(self, position: Position) -> bool:
        """
        Check the live health of a position at its current mark.

        Args:
            position: Position already marked to market

        Returns:
            True if position equity is at or below maintenance margin
        """
        return position.equity <= position.maintenance_margin

    def sweep(
        self,
        book: PositionBook,
        mark_price: float,
        timestamp: datetime,
    ) -> LiquidationResult:
        """
        Mark every position to market and liquidate breached ones.

        Liquidated positions are removed from the book. Ledger effects
        (realized PnL, penalties) are reported in the result for the caller
        to apply.

        Args:
            book: Position book (mutated)
            mark_price: Current mark price
            timestamp: Tick time, used as close time

        Returns:
            LiquidationResult with the (retained, liquidated) partition
        """
        book.mark_to_market(mark_price)
        retained, liquidated = book.partition(self.is_liquidatable)

        result = LiquidationResult(retained=retained, liquidated=liquidated)

        for position in liquidated:
            penalty = position.notional * self._config.liquidation_fee_rate
            net_pnl = (
                position.unrealized_pnl
                - position.open_fee
                - penalty
                - position.realized_funding
            )

            result.records.append(TradeRecord(
                position_id=position.position_id,
                side=position.side,
                notional=position.notional,
                leverage=position.leverage,
                entry_price=position.entry_price,
                exit_price=mark_price,
                gross_pnl=position.unrealized_pnl,
                fees=position.open_fee + penalty,
                funding=position.realized_funding,
                net_pnl=net_pnl,
                opened_at=position.opened_at,
                closed_at=timestamp,
                reason=CloseReason.LIQUIDATION,
            ))
            result.log_lines.append(format_liquidation_line(position, mark_price, net_pnl))
            result.total_penalty += penalty
            result.total_realized_pnl += position.unrealized_pnl

        return result


def calculate_liquidation_price(
    side: Side,
    entry_price: float,
    collateral: float,
    notional: float,
    maintenance_margin: float,
) -> float:
    """
    Price at which position equity equals maintenance margin (ignoring funding).

    buffer = collateral - maintenance_margin
    long:  entry x (1 - buffer / notional)
    short: entry x (1 + buffer / notional)

    Returns:
        Liquidation price, clamped at zero
    """
    if notional <= 0:
        return 0.0

    buffer = collateral - maintenance_margin
    liq_price = entry_price * (1.0 - side.direction * buffer / notional)
    return max(0.0, liq_price)


def format_liquidation_line(position: Position, mark_price: float, net_pnl: float) -> str:
    """Human-readable liquidation log entry."""
    return (
        f"LIQUIDATED {position.side.value.upper()} ${position.notional:,.0f} "
        f"@ {mark_price:.2f} | Loss: ${abs(net_pnl):,.2f}"
    )
