"""
Pricing models for the simulated exchange.

Consumes oracle quotes and falls back to mean-reverting jitter.
"""

from .price_model import (
    PRICE_SOURCE_JITTER,
    PRICE_SOURCE_NONE,
    PRICE_SOURCE_ORACLE,
    PriceModel,
    PriceModelConfig,
    PriceQuote,
    PriceSource,
    StaticPriceSource,
)

__all__ = [
    "PriceModel",
    "PriceModelConfig",
    "PriceQuote",
    "PriceSource",
    "StaticPriceSource",
    "PRICE_SOURCE_ORACLE",
    "PRICE_SOURCE_JITTER",
    "PRICE_SOURCE_NONE",
]
