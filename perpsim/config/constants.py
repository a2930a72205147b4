"""
Centralized constants for the perpetual simulator.

Market defaults mirror the PKMN-INDEX market profile. Every value here is a
default only: the active values live on MarketConfig, which is fixed for the
lifetime of a session.
"""

from datetime import timedelta


# ==================== Market Defaults ====================

DEFAULT_SYMBOL = "PKMN-INDEX"

# Margin fractions (IMF 0.20 -> max 5x)
INITIAL_MARGIN_FRACTION = 0.20
MAINTENANCE_MARGIN_FRACTION = 0.10

# Fees
TAKER_FEE = 0.0008  # 0.08% per side
LIQUIDATION_FEE_RATE = 0.005  # 0.5% penalty on notional

# Order limits
MAX_LEVERAGE = 5.0
MIN_ORDER_SIZE = 10.0
MAX_POSITIONS = 10

# Execution
MAX_SLIPPAGE = 0.001  # 0.1% worst-case fill deviation


# ==================== Funding ====================

FUNDING_PERIOD = timedelta(hours=1)
INITIAL_FUNDING_RATE = 0.0001  # 0.01% per period
MAX_FUNDING_RATE = 0.0005  # rate is clamped to [-0.05%, +0.05%]
FUNDING_DRIFT_BAND = 0.00005  # drift sample is uniform in +/- band / 2


# ==================== Reference Price ====================

INITIAL_PRICE = 100.0
JITTER_AMPLITUDE = 0.06
MEAN_REVERSION = 0.05
MAX_PRICE_AGE = timedelta(seconds=120)

# Jitter never pushes the reference price to or below zero
MIN_JITTER_PRICE = 1e-6


# ==================== History Caps ====================

TRADE_HISTORY_CAP = 100
LIQUIDATION_LOG_CAP = 20
FUNDING_HISTORY_CAP = 200


# ==================== Scheduler ====================

DEFAULT_TICK_INTERVAL_SECONDS = 2.0


# ==================== Reject Labels ====================

REJECT_LABELS = {
    "ZERO_PRICE": "Oracle price not available",
    "NO_DEPOSIT": "Deposit collateral before trading",
    "MIN_ORDER_SIZE": "Collateral below minimum order size",
    "MAX_LEVERAGE": "Leverage outside allowed range",
    "MAX_POSITIONS": "Too many open positions",
    "INSUFFICIENT_MARGIN": "Insufficient margin",
    "EXCEEDS_FREE_MARGIN": "Amount exceeds free margin",
    "INVALID_AMOUNT": "Amount must be positive",
}
