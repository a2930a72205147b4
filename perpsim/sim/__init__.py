"""
Simulated perpetual exchange.

Modular architecture:
- types.py: Shared types (Position, TradeRecord, FundingTick, AccountMetrics, ...)
- ledger.py: Account balances and derived metrics
- book.py: Open positions and their lifecycle
- order_gate.py: Ordered open validation, market open/close
- pricing/: Oracle price with mean-reverting jitter fallback
- execution/: Slippage on fills
- funding/: Random-walk funding rate and per-period settlement
- liquidation/: Mark-based liquidation sweep
- exchange.py: Orchestrator and single owner of session state

Usage:
    from perpsim.sim import PerpExchange, Side

    exchange = PerpExchange(rng=np.random.default_rng(42))
    exchange.deposit(1000.0)
    exchange.open_position(Side.LONG, collateral=100.0, leverage=3.0)
    exchange.tick()
"""

from .types import (
    PositionId,
    Side,
    RejectReason,
    CloseReason,
    Position,
    TradeRecord,
    FundingTick,
    AccountMetrics,
    AccountState,
    FundingResult,
    LiquidationResult,
    TickResult,
    ExchangeSnapshot,
)
from .ledger import AccountLedger, LedgerConfig
from .book import PositionBook, check_position_invariants
from .order_gate import OrderGate, new_position_id
from .pricing import PriceModel, PriceModelConfig, PriceQuote, PriceSource, StaticPriceSource
from .execution import SlippageModel, SlippageConfig, RandomSource
from .funding import FundingModel, FundingModelConfig
from .liquidation import LiquidationModel, LiquidationModelConfig, calculate_liquidation_price
from .exchange import PerpExchange, Clock, utc_now

__all__ = [
    # Types
    "PositionId",
    "Side",
    "RejectReason",
    "CloseReason",
    "Position",
    "TradeRecord",
    "FundingTick",
    "AccountMetrics",
    "AccountState",
    "FundingResult",
    "LiquidationResult",
    "TickResult",
    "ExchangeSnapshot",
    # Ledger and book
    "AccountLedger",
    "LedgerConfig",
    "PositionBook",
    "check_position_invariants",
    # Orders
    "OrderGate",
    "new_position_id",
    # Models
    "PriceModel",
    "PriceModelConfig",
    "PriceQuote",
    "PriceSource",
    "StaticPriceSource",
    "SlippageModel",
    "SlippageConfig",
    "RandomSource",
    "FundingModel",
    "FundingModelConfig",
    "LiquidationModel",
    "LiquidationModelConfig",
    "calculate_liquidation_price",
    # Exchange
    "PerpExchange",
    "Clock",
    "utc_now",
]
