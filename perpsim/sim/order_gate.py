"""
Order gate: validates and executes position opens and closes.

Open checks run in a fixed order and the first failure wins:
1. ZERO_PRICE           reference price <= 0
2. NO_DEPOSIT           nothing deposited
3. MIN_ORDER_SIZE       collateral below the minimum order size
4. MAX_LEVERAGE         leverage above the maximum (or below 1)
5. MAX_POSITIONS        the book is full
6. INSUFFICIENT_MARGIN  collateral below the initial margin of the notional
7. INSUFFICIENT_MARGIN  collateral above free margin

A rejected open leaves no trace. A successful open inserts the position,
charges the taker fee and recomputes the ledger metrics.

Close is a market exit with adverse slippage:
    gross_pnl = direction x (fill - entry) x size_index
    net_pnl   = gross_pnl - open_fee - close_fee - realized_funding
"""

import math
import uuid
from datetime import datetime
from typing import Callable, Optional, Tuple

from ..config import MarketConfig
from .book import PositionBook
from .execution import SlippageModel
from .ledger import AccountLedger
from .liquidation import calculate_liquidation_price
from .types import (
    CloseReason,
    Position,
    PositionId,
    RejectReason,
    Side,
    TradeRecord,
)


def new_position_id() -> PositionId:
    """Opaque, unique position id."""
    return f"pos-{uuid.uuid4().hex[:12]}"


class OrderGate:
    """
    Validates and executes market opens and closes.

    Owns no state: mutates the ledger and book it was built with.
    """

    def __init__(
        self,
        market: MarketConfig,
        ledger: AccountLedger,
        book: PositionBook,
        slippage: SlippageModel,
        id_factory: Callable[[], PositionId] = new_position_id,
    ):
        self._market = market
        self._ledger = ledger
        self._book = book
        self._slippage = slippage
        self._id_factory = id_factory

    def validate_open(
        self,
        side: Side,
        collateral: float,
        leverage: float,
        price: float,
    ) -> Optional[RejectReason]:
        """
        Run the ordered open checks against the current ledger snapshot.

        Returns:
            None if the open may proceed, otherwise the first RejectReason
        """
        m = self._market

        if not price > 0:
            return RejectReason.ZERO_PRICE
        if self._ledger.deposited <= 0:
            return RejectReason.NO_DEPOSIT
        if not math.isfinite(collateral) or collateral < m.min_order_size:
            return RejectReason.MIN_ORDER_SIZE
        if not math.isfinite(leverage) or leverage < 1 or leverage > m.max_leverage:
            return RejectReason.MAX_LEVERAGE
        if len(self._book) >= m.max_positions:
            return RejectReason.MAX_POSITIONS
        if collateral < collateral * leverage * m.initial_margin_fraction:
            return RejectReason.INSUFFICIENT_MARGIN
        if collateral > self._ledger.metrics.free_margin:
            return RejectReason.INSUFFICIENT_MARGIN
        return None

    def open(
        self,
        side: Side,
        collateral: float,
        leverage: float,
        price: float,
        now: datetime,
    ) -> Tuple[Optional[Position], Optional[RejectReason]]:
        """
        Open a market position.

        Args:
            side: LONG or SHORT
            collateral: Margin committed to the position
            leverage: Notional multiplier in [1, max_leverage]
            price: Current reference price
            now: Open time

        Returns:
            (position, None) on success, (None, reason) on rejection
        """
        reason = self.validate_open(side, collateral, leverage, price)
        if reason is not None:
            return None, reason

        m = self._market
        fill_price = self._slippage.apply_entry_slippage(price, side)
        notional = collateral * leverage
        maintenance_margin = notional * m.maintenance_margin_fraction
        open_fee = notional * m.taker_fee

        position_id = self._id_factory()
        while position_id in self._book:
            position_id = self._id_factory()

        position = Position(
            position_id=position_id,
            side=side,
            leverage=leverage,
            entry_price=fill_price,
            collateral=collateral,
            notional=notional,
            size_index=notional / fill_price,
            maintenance_margin=maintenance_margin,
            liquidation_price=calculate_liquidation_price(
                side, fill_price, collateral, notional, maintenance_margin,
            ),
            open_fee=open_fee,
            opened_at=now,
        )

        self._book.insert(position)
        self._ledger.apply_open_fee(open_fee)
        self._ledger.recompute(self._book)
        return position, None

    def close(
        self,
        position_id: PositionId,
        price: float,
        now: datetime,
    ) -> Optional[TradeRecord]:
        """
        Close a position at market.

        Falls back to the position's last mark when no reference price is
        available.

        Returns:
            TradeRecord, or None if the id is not in the book
        """
        position = self._book.get(position_id)
        if position is None:
            return None

        reference = price if price > 0 else position.mark_price
        fill_price = self._slippage.apply_exit_slippage(reference, position.side)
        close_fee = position.notional * self._market.taker_fee
        gross_pnl = position.pnl_at(fill_price)
        net_pnl = gross_pnl - position.open_fee - close_fee - position.realized_funding

        record = TradeRecord(
            position_id=position.position_id,
            side=position.side,
            notional=position.notional,
            leverage=position.leverage,
            entry_price=position.entry_price,
            exit_price=fill_price,
            gross_pnl=gross_pnl,
            fees=position.open_fee + close_fee,
            funding=position.realized_funding,
            net_pnl=net_pnl,
            opened_at=position.opened_at,
            closed_at=now,
            reason=CloseReason.CLOSE,
        )

        self._book.remove(position_id)
        self._ledger.apply_close(gross_pnl, close_fee)
        self._ledger.recompute(self._book)
        return record
