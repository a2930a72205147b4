"""
Execution models: fill price derivation.
"""

from .slippage_model import SlippageModel, SlippageConfig, RandomSource

__all__ = [
    "SlippageModel",
    "SlippageConfig",
    "RandomSource",
]
