"""
Core types for the simulated perpetual exchange.

Provides all shared types, enums, records and snapshots:
- Position: Open leveraged exposure (mutable, owned by the PositionBook)
- TradeRecord, FundingTick: Immutable history records
- AccountMetrics: Derived account health (never authoritative)
- RejectReason: Closed set of command rejection reasons

Type design principles:
- Immutable where possible (frozen dataclasses)
- All monetary values are in quote currency (USD)
- Serializable (to_dict methods)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

# Type alias for position IDs
PositionId = str


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────

class Side(str, Enum):
    """Position side."""
    LONG = "long"
    SHORT = "short"

    @property
    def direction(self) -> float:
        """+1 for long, -1 for short (multiplies price delta and funding)."""
        return 1.0 if self is Side.LONG else -1.0

    @property
    def opposite(self) -> "Side":
        return Side.SHORT if self is Side.LONG else Side.LONG


class RejectReason(str, Enum):
    """
    Reason a command was rejected.

    Rejections are expected business outcomes, never exceptions, and never
    leave partial state behind.
    """
    ZERO_PRICE = "ZERO_PRICE"
    NO_DEPOSIT = "NO_DEPOSIT"
    MIN_ORDER_SIZE = "MIN_ORDER_SIZE"
    MAX_LEVERAGE = "MAX_LEVERAGE"
    MAX_POSITIONS = "MAX_POSITIONS"
    INSUFFICIENT_MARGIN = "INSUFFICIENT_MARGIN"
    EXCEEDS_FREE_MARGIN = "EXCEEDS_FREE_MARGIN"
    INVALID_AMOUNT = "INVALID_AMOUNT"


class CloseReason(str, Enum):
    """Why a position left the book."""
    CLOSE = "close"
    LIQUIDATION = "liquidation"


# ─────────────────────────────────────────────────────────────────────────────
# Position
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class Position:
    """
    Currently open position.

    Fixed at open (never recomputed):
    - notional = collateral x leverage
    - size_index = notional / entry_price
    - maintenance_margin = notional x MMF
    - liquidation_price (informational)
    - open_fee

    Updated by the tick:
    - mark_price, unrealized_pnl, unrealized_pnl_percent (mark-to-market)
    - realized_funding (funding settlement)
    """
    position_id: PositionId
    side: Side
    leverage: float
    entry_price: float
    collateral: float
    notional: float
    size_index: float
    maintenance_margin: float
    liquidation_price: float
    open_fee: float
    opened_at: datetime
    mark_price: float = 0.0
    unrealized_pnl: float = 0.0
    unrealized_pnl_percent: float = 0.0
    realized_funding: float = 0.0

    def __post_init__(self) -> None:
        if self.mark_price <= 0:
            self.mark_price = self.entry_price

    def pnl_at(self, price: float) -> float:
        """Gross PnL if the position were valued at price."""
        return self.side.direction * (price - self.entry_price) * self.size_index

    def mark_to_market(self, mark_price: float) -> None:
        """Revalue the position at the current mark price."""
        self.mark_price = mark_price
        self.unrealized_pnl = self.pnl_at(mark_price)
        if self.collateral > 0:
            self.unrealized_pnl_percent = self.unrealized_pnl / self.collateral * 100.0
        else:
            self.unrealized_pnl_percent = 0.0

    @property
    def equity(self) -> float:
        """Position equity: collateral + unrealized PnL - funding paid."""
        return self.collateral + self.unrealized_pnl - self.realized_funding

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "side": self.side.value,
            "leverage": self.leverage,
            "entry_price": self.entry_price,
            "mark_price": self.mark_price,
            "collateral": self.collateral,
            "notional": self.notional,
            "size_index": self.size_index,
            "maintenance_margin": self.maintenance_margin,
            "liquidation_price": self.liquidation_price,
            "unrealized_pnl": self.unrealized_pnl,
            "unrealized_pnl_percent": self.unrealized_pnl_percent,
            "realized_funding": self.realized_funding,
            "open_fee": self.open_fee,
            "opened_at": self.opened_at.isoformat(),
        }


# ─────────────────────────────────────────────────────────────────────────────
# History Records
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TradeRecord:
    """
    Immutable snapshot of a closed or liquidated position.

    fees = open fee + close fee (or liquidation penalty)
    net_pnl = gross_pnl - fees - funding
    """
    position_id: PositionId
    side: Side
    notional: float
    leverage: float
    entry_price: float
    exit_price: float
    gross_pnl: float
    fees: float
    funding: float
    net_pnl: float
    opened_at: datetime
    closed_at: datetime
    reason: CloseReason = CloseReason.CLOSE

    @property
    def is_liquidation(self) -> bool:
        return self.reason is CloseReason.LIQUIDATION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "side": self.side.value,
            "notional": self.notional,
            "leverage": self.leverage,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "gross_pnl": self.gross_pnl,
            "fees": self.fees,
            "funding": self.funding,
            "net_pnl": self.net_pnl,
            "opened_at": self.opened_at.isoformat(),
            "closed_at": self.closed_at.isoformat(),
            "reason": self.reason.value,
        }


@dataclass(frozen=True)
class FundingTick:
    """
    Funding settlement for one position in one period.

    payment > 0: paid by the position, payment < 0: received.
    """
    timestamp: datetime
    rate: float
    payment: float
    position_id: PositionId

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "rate": self.rate,
            "payment": self.payment,
            "position_id": self.position_id,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Account Metrics
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AccountMetrics:
    """
    Account health at a point in time.

    Pure function of (account, positions); always recomputed, never stored as
    authoritative state. equity is clamped at zero for display; raw_equity
    keeps the unclamped value used by internal checks.
    """
    equity: float = 0.0
    total_initial_margin: float = 0.0
    total_maintenance_margin: float = 0.0
    free_margin: float = 0.0
    margin_ratio: float = 0.0
    account_leverage: float = 0.0
    total_unrealized_pnl: float = 0.0
    total_notional: float = 0.0
    raw_equity: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "equity": self.equity,
            "total_initial_margin": self.total_initial_margin,
            "total_maintenance_margin": self.total_maintenance_margin,
            "free_margin": self.free_margin,
            "margin_ratio": self.margin_ratio,
            "account_leverage": self.account_leverage,
            "total_unrealized_pnl": self.total_unrealized_pnl,
            "total_notional": self.total_notional,
            "raw_equity": self.raw_equity,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Account State
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AccountState:
    """Authoritative account balances (the ledger's core state)."""
    deposited: float = 0.0
    realized_pnl: float = 0.0
    total_fees_paid: float = 0.0
    total_funding_paid: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deposited": self.deposited,
            "realized_pnl": self.realized_pnl,
            "total_fees_paid": self.total_fees_paid,
            "total_funding_paid": self.total_funding_paid,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Step Results
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class FundingResult:
    """Result of funding settlement within one tick."""
    periods_settled: int = 0
    rate: float = 0.0
    total_payment: float = 0.0
    ticks: List[FundingTick] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "periods_settled": self.periods_settled,
            "rate": self.rate,
            "total_payment": self.total_payment,
            "ticks": [t.to_dict() for t in self.ticks],
        }


@dataclass
class LiquidationResult:
    """
    Result of one liquidation sweep.

    The sweep partitions the book: every position ends up in exactly one of
    retained or liquidated.
    """
    retained: List[Position] = field(default_factory=list)
    liquidated: List[Position] = field(default_factory=list)
    records: List[TradeRecord] = field(default_factory=list)
    log_lines: List[str] = field(default_factory=list)
    total_penalty: float = 0.0
    total_realized_pnl: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "retained": [p.position_id for p in self.retained],
            "liquidated": [p.position_id for p in self.liquidated],
            "records": [r.to_dict() for r in self.records],
            "log_lines": list(self.log_lines),
            "total_penalty": self.total_penalty,
            "total_realized_pnl": self.total_realized_pnl,
        }


@dataclass
class TickResult:
    """
    Result of processing a single tick.

    Aggregates price refresh, funding and liquidation outcomes.
    """
    timestamp: datetime
    mark_price: float
    price_source: str  # "oracle" | "jitter" | "none"
    funding_result: FundingResult = field(default_factory=FundingResult)
    liquidation_result: LiquidationResult = field(default_factory=LiquidationResult)
    metrics: Optional[AccountMetrics] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "mark_price": self.mark_price,
            "price_source": self.price_source,
            "funding_result": self.funding_result.to_dict(),
            "liquidation_result": self.liquidation_result.to_dict(),
            "metrics": self.metrics.to_dict() if self.metrics else None,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Exchange Snapshot
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExchangeSnapshot:
    """
    Consistent view of the whole session, taken atomically.

    Used by UI/persistence layers; positions are copies.
    """
    symbol: str
    timestamp: datetime
    reference_price: float
    funding_rate: float
    next_funding_time: datetime
    account: AccountState
    metrics: AccountMetrics
    positions: List[Position]
    trade_history: List[TradeRecord]
    funding_history: List[FundingTick]
    liquidation_log: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "reference_price": self.reference_price,
            "funding_rate": self.funding_rate,
            "next_funding_time": self.next_funding_time.isoformat(),
            "account": self.account.to_dict(),
            "metrics": self.metrics.to_dict(),
            "positions": [p.to_dict() for p in self.positions],
            "trade_history": [t.to_dict() for t in self.trade_history],
            "funding_history": [f.to_dict() for f in self.funding_history],
            "liquidation_log": list(self.liquidation_log),
        }
