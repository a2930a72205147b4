"""
Simulated perpetual exchange.

Thin orchestrator and the single owner of all session state. Routes every
command and tick to the modular components:

Tick pipeline (in tick()):
1. pricing: refresh(now) -> oracle price or jitter
2. funding: settle(book, now) -> FundingResult (one settlement per elapsed period)
3. liquidation: sweep(book, mark, now) -> LiquidationResult (retained, liquidated)
4. ledger: recompute(book) -> AccountMetrics

Commands (deposit, withdraw, open, close, update_price) mutate the ledger and
book synchronously and recompute metrics before returning.

Concurrency: every command, tick and read holds one re-entrant lock, so no
two mutations interleave and readers never observe a half-applied update.
"""

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional, Union

import numpy as np

from ..config import MarketConfig
from ..utils.logger import ROOT_LOGGER_NAME, format_risk_event, format_trade_event
from .book import PositionBook
from .execution import RandomSource, SlippageConfig, SlippageModel
from .funding import FundingModel, FundingModelConfig
from .ledger import AccountLedger, LedgerConfig
from .liquidation import LiquidationModel, LiquidationModelConfig
from .order_gate import OrderGate
from .pricing import PRICE_SOURCE_NONE, PriceModel, PriceModelConfig, PriceSource
from .types import (
    AccountMetrics,
    AccountState,
    ExchangeSnapshot,
    FundingTick,
    LiquidationResult,
    Position,
    PositionId,
    RejectReason,
    Side,
    TickResult,
    TradeRecord,
)

logger = logging.getLogger(__name__)
trade_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.trades")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PerpExchange:
    """
    Simulated single-account, cross-margin perpetual exchange.

    Lifecycle: construct -> commands/ticks -> reset() for a new session.
    Randomness and time are injected so sessions can be replayed exactly.
    """

    def __init__(
        self,
        market: Optional[MarketConfig] = None,
        rng: Optional[RandomSource] = None,
        clock: Optional[Clock] = None,
        price_source: Optional[PriceSource] = None,
        debug_check_invariants: bool = False,
    ):
        """
        Initialize simulated exchange.

        Args:
            market: Market parameters (defaults to the PKMN-INDEX profile)
            rng: Random source shared by slippage, funding drift and jitter
            clock: Returns the current time (defaults to UTC wall clock)
            price_source: Optional oracle; without one the price jitters
            debug_check_invariants: Check ledger invariants after every mutation
        """
        self._market = market or MarketConfig()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._clock = clock or utc_now
        self._lock = threading.RLock()

        m = self._market
        self._ledger = AccountLedger(LedgerConfig(
            initial_margin_fraction=m.initial_margin_fraction,
            debug_check_invariants=debug_check_invariants,
        ))
        self._book = PositionBook()
        self._slippage = SlippageModel(SlippageConfig(max_slippage=m.max_slippage), rng=self._rng)
        self._price_model = PriceModel(
            PriceModelConfig(
                initial_price=m.initial_price,
                jitter_amplitude=m.jitter_amplitude,
                mean_reversion=m.mean_reversion,
                max_price_age=m.max_price_age,
            ),
            rng=self._rng,
            source=price_source,
        )
        self._funding_model = FundingModel(
            self._clock(),
            FundingModelConfig(
                period=m.funding_period,
                initial_rate=m.initial_funding_rate,
                max_rate=m.max_funding_rate,
                drift_band=m.funding_drift_band,
            ),
            rng=self._rng,
        )
        self._liquidation_model = LiquidationModel(
            LiquidationModelConfig(liquidation_fee_rate=m.liquidation_fee_rate)
        )
        self._gate = OrderGate(m, self._ledger, self._book, self._slippage)

        self._trade_history: Deque[TradeRecord] = deque(maxlen=m.trade_history_cap)
        self._liquidation_log: Deque[str] = deque(maxlen=m.liquidation_log_cap)
        self._funding_history: Deque[FundingTick] = deque(maxlen=m.funding_history_cap)

    # ─────────────────────────────────────────────────────────────────────────
    # Properties
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def market(self) -> MarketConfig:
        return self._market

    @property
    def symbol(self) -> str:
        return self._market.symbol

    @property
    def reference_price(self) -> float:
        with self._lock:
            return self._price_model.price

    @property
    def funding_rate(self) -> float:
        with self._lock:
            return self._funding_model.rate

    @property
    def next_funding_time(self) -> datetime:
        with self._lock:
            return self._funding_model.next_funding_time

    @property
    def account(self) -> AccountState:
        with self._lock:
            return self._ledger.state

    # ─────────────────────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────────────────────

    def deposit(self, amount: float) -> Optional[RejectReason]:
        """
        Add collateral to the account.

        Returns:
            None on success, INVALID_AMOUNT if amount is not positive
        """
        with self._lock:
            reason = self._ledger.deposit(amount)
            if reason is not None:
                self._log_reject("DEPOSIT", reason, amount=amount)
                return reason

            self._recompute()
            trade_logger.info(format_trade_event(
                "DEPOSIT", amount=float(amount), deposited=self._ledger.deposited,
            ))
            return None

    def withdraw(self, amount: float) -> bool:
        """
        Remove collateral from the account, bounded by free margin.

        Returns:
            True if the withdrawal was applied
        """
        with self._lock:
            reason = self._ledger.withdraw(amount)
            if reason is not None:
                self._log_reject(
                    "WITHDRAW", reason,
                    amount=amount, free_margin=f"{self._ledger.metrics.free_margin:.4f}",
                )
                return False

            self._recompute()
            trade_logger.info(format_trade_event(
                "WITHDRAW", amount=float(amount), deposited=self._ledger.deposited,
            ))
            return True

    def open_position(
        self,
        side: Union[Side, str],
        collateral: float,
        leverage: float,
    ) -> Optional[RejectReason]:
        """
        Open a market position at the current reference price.

        Args:
            side: Side.LONG / Side.SHORT (or "long" / "short")
            collateral: Margin committed to the position
            leverage: Notional multiplier

        Returns:
            None on success, otherwise the first failing RejectReason

        Raises:
            ValueError: If side is not a valid Side
        """
        side = Side(side)
        with self._lock:
            price = self._price_model.price
            position, reason = self._gate.open(side, collateral, leverage, price, self._clock())
            if reason is not None:
                self._log_reject(
                    "OPEN", reason,
                    side=side.value, collateral=collateral, leverage=leverage, price=price,
                )
                return reason

            trade_logger.info(format_trade_event(
                "POSITION_OPENED",
                id=position.position_id,
                side=side.value,
                collateral=position.collateral,
                leverage=float(position.leverage),
                notional=position.notional,
                entry=position.entry_price,
                liq_price=position.liquidation_price,
                fee=position.open_fee,
            ))
            return None

    def close_position(self, position_id: PositionId) -> Optional[TradeRecord]:
        """
        Close a position at the current reference price.

        Returns:
            TradeRecord, or None if the id is unknown (no-op)
        """
        with self._lock:
            record = self._gate.close(position_id, self._price_model.price, self._clock())
            if record is None:
                logger.info("Close ignored: unknown position id %s", position_id)
                return None

            self._trade_history.appendleft(record)
            trade_logger.info(format_trade_event(
                "POSITION_CLOSED",
                id=record.position_id,
                side=record.side.value,
                exit=record.exit_price,
                gross=record.gross_pnl,
                fees=record.fees,
                funding=record.funding,
                net=record.net_pnl,
            ))
            return record

    def update_price(self, price: float) -> None:
        """
        Push a reference price directly (last value wins).

        The push is stamped with the exchange clock and serves as the mark
        until it is older than max_price_age. Positions are revalued on the
        next tick.

        Raises:
            ValueError: If price is negative or not finite
        """
        with self._lock:
            self._price_model.update_price(price, self._clock())
            logger.debug("Reference price set to %.4f", price)

    def reset(self) -> None:
        """Start a new session: zero the account and drop all positions and history."""
        with self._lock:
            self._ledger.reset()
            self._book.clear()
            self._price_model.reset()
            self._funding_model.reset(self._clock())
            self._trade_history.clear()
            self._liquidation_log.clear()
            self._funding_history.clear()
            self._recompute()
            logger.info("Session reset for %s", self.symbol)

    # ─────────────────────────────────────────────────────────────────────────
    # Tick
    # ─────────────────────────────────────────────────────────────────────────

    def tick(self) -> TickResult:
        """
        Run one background recalculation.

        Order: price refresh, funding settlement, liquidation sweep, metrics.

        Returns:
            TickResult describing what happened
        """
        with self._lock:
            now = self._clock()

            # 1. Price
            price_source = self._price_model.refresh(now)
            mark_price = self._price_model.price

            # 2. Funding (strictly before liquidation, using the new rate)
            funding_result = self._funding_model.settle(self._book, now)
            if funding_result.periods_settled:
                self._ledger.apply_funding(funding_result.total_payment)
                self._funding_history.extend(funding_result.ticks)
                trade_logger.info(format_trade_event(
                    "FUNDING_SETTLED",
                    periods=funding_result.periods_settled,
                    rate=funding_result.rate,
                    payment=funding_result.total_payment,
                    positions=len(self._book),
                ))

            # 3. Liquidation
            if price_source == PRICE_SOURCE_NONE or mark_price <= 0:
                liquidation_result = LiquidationResult(retained=list(self._book))
            else:
                liquidation_result = self._liquidation_model.sweep(self._book, mark_price, now)
                self._apply_liquidations(liquidation_result)

            # 4. Metrics
            metrics = self._recompute()

            return TickResult(
                timestamp=now,
                mark_price=mark_price,
                price_source=price_source,
                funding_result=funding_result,
                liquidation_result=liquidation_result,
                metrics=metrics,
            )

    def _apply_liquidations(self, result: LiquidationResult) -> None:
        if not result.liquidated:
            return

        self._ledger.apply_liquidation(result.total_realized_pnl, result.total_penalty)
        for record, line in zip(result.records, result.log_lines):
            self._trade_history.appendleft(record)
            self._liquidation_log.appendleft(line)
            logger.warning(format_risk_event(
                "LIQUIDATED", line, id=record.position_id, net=f"{record.net_pnl:.4f}",
            ))
            trade_logger.info(format_trade_event(
                "LIQUIDATED",
                id=record.position_id,
                side=record.side.value,
                exit=record.exit_price,
                gross=record.gross_pnl,
                fees=record.fees,
                net=record.net_pnl,
            ))

    # ─────────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────────

    def metrics(self) -> AccountMetrics:
        with self._lock:
            return self._ledger.metrics

    def positions(self) -> List[Position]:
        """Copies of the open positions, oldest first."""
        with self._lock:
            return self._book.snapshot()

    def get_position(self, position_id: PositionId) -> Optional[Position]:
        """Copy of one open position (None if unknown)."""
        with self._lock:
            for position in self._book.snapshot():
                if position.position_id == position_id:
                    return position
            return None

    def trade_history(self) -> List[TradeRecord]:
        """Closed and liquidated positions, newest first."""
        with self._lock:
            return list(self._trade_history)

    def liquidation_log(self) -> List[str]:
        """Liquidation log lines, newest first."""
        with self._lock:
            return list(self._liquidation_log)

    def funding_history(self) -> List[FundingTick]:
        """Funding settlements, oldest first."""
        with self._lock:
            return list(self._funding_history)

    def check_invariants(self) -> List[str]:
        """
        Check ledger invariants against the current book.

        Returns:
            List of error messages (empty if all invariants hold)
        """
        with self._lock:
            return self._ledger.check_invariants(self._book)

    def snapshot(self) -> ExchangeSnapshot:
        """Consistent view of the whole session, taken atomically."""
        with self._lock:
            return ExchangeSnapshot(
                symbol=self.symbol,
                timestamp=self._clock(),
                reference_price=self._price_model.price,
                funding_rate=self._funding_model.rate,
                next_funding_time=self._funding_model.next_funding_time,
                account=self._ledger.state,
                metrics=self._ledger.metrics,
                positions=self._book.snapshot(),
                trade_history=list(self._trade_history),
                funding_history=list(self._funding_history),
                liquidation_log=list(self._liquidation_log),
            )

    # ─────────────────────────────────────────────────────────────────────────
    # Internal
    # ─────────────────────────────────────────────────────────────────────────

    def _recompute(self) -> AccountMetrics:
        return self._ledger.recompute(self._book)

    def _log_reject(self, action: str, reason: RejectReason, **fields) -> None:
        logger.warning(format_risk_event("BLOCKED", reason.value, command=action, **fields))
