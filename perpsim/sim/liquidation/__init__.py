"""
Liquidation model for margin-based position liquidation.

Checks liquidation conditions and handles forced position closure.
"""

from .liquidation_model import (
    LiquidationModel,
    LiquidationModelConfig,
    calculate_liquidation_price,
    format_liquidation_line,
)

__all__ = [
    "LiquidationModel",
    "LiquidationModelConfig",
    "calculate_liquidation_price",
    "format_liquidation_line",
]
