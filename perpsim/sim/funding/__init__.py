"""
Funding rate model.

Derives the periodic funding rate and settles it against open positions.
"""

from .funding_model import FundingModel, FundingModelConfig

__all__ = [
    "FundingModel",
    "FundingModelConfig",
]
