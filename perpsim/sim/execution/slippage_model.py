"""
Slippage model for market fills.

Applies a random adverse price deviation in [0, max_slippage) of the
reference price:
    slippage = price x max_slippage x rng.random()

Slippage direction:
- Opening long (buy): pay more
- Opening short (sell): receive less
- Closing is the reverse of the position side (adverse to the closer)

Randomness is injected so tests can pin the deviation (e.g. to zero).
"""

from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np

from ..types import Side


class RandomSource(Protocol):
    """Anything exposing random() -> float in [0, 1) (numpy Generator, random.Random, ...)."""

    def random(self) -> float: ...


@dataclass
class SlippageConfig:
    """Configuration for slippage model."""
    max_slippage: float = 0.001  # 0.1% worst case


class SlippageModel:
    """Estimates execution slippage for market fills."""

    def __init__(
        self,
        config: Optional[SlippageConfig] = None,
        rng: Optional[RandomSource] = None,
    ):
        """
        Initialize slippage model.

        Args:
            config: Optional configuration
            rng: Random source (defaults to an unseeded numpy Generator)
        """
        self._config = config or SlippageConfig()
        self._rng = rng if rng is not None else np.random.default_rng()

    @property
    def max_slippage(self) -> float:
        return self._config.max_slippage

    def apply_entry_slippage(self, price: float, side: Side) -> float:
        """
        Apply slippage to an opening fill.

        Args:
            price: Reference price
            side: Side of the position being opened

        Returns:
            Fill price (higher for longs, lower for shorts)
        """
        return price + side.direction * self._slippage_amount(price)

    def apply_exit_slippage(self, price: float, position_side: Side) -> float:
        """
        Apply slippage to a closing fill.

        Exit slippage is opposite to entry slippage:
        - Exiting LONG (selling): receive less
        - Exiting SHORT (buying to cover): pay more

        Args:
            price: Reference price
            position_side: Side of the position being closed

        Returns:
            Fill price
        """
        return self.apply_entry_slippage(price, position_side.opposite)

    def _slippage_amount(self, price: float) -> float:
        """Slippage in price units for one fill."""
        return price * self._config.max_slippage * float(self._rng.random())
