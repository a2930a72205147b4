"""
Configuration management.
"""

from .config import (
    Config,
    MarketConfig,
    SchedulerConfig,
    LogConfig,
)

__all__ = [
    "Config",
    "MarketConfig",
    "SchedulerConfig",
    "LogConfig",
]
