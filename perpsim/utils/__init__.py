"""
Utility modules.
"""

from .logger import (
    SimLogger,
    get_logger,
    setup_logger,
    format_trade_event,
    format_risk_event,
)

__all__ = [
    "SimLogger",
    "get_logger",
    "setup_logger",
    "format_trade_event",
    "format_risk_event",
]
