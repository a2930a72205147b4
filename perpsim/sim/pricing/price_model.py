"""
Price model for the reference/mark price.

Chooses the mark price for each tick:
- Oracle: a usable quote from the PriceSource becomes the reference price
  and the jitter anchor
- Jitter: otherwise the reference price is nudged with mean-reverting noise

    price += (rng.random() - 0.5) x jitter_amplitude
             + mean_reversion x (anchor - price)

A direct price push counts as a quote stamped with the push time.
A quote is unusable when it is flagged stale, has a non-positive price, or
is older than max_price_age. A reference price of zero means no price has
ever been seen; jitter is skipped and opens are rejected with ZERO_PRICE.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

import numpy as np

from ...config.constants import MIN_JITTER_PRICE
from ..execution import RandomSource

PRICE_SOURCE_ORACLE = "oracle"
PRICE_SOURCE_JITTER = "jitter"
PRICE_SOURCE_NONE = "none"


@dataclass(frozen=True)
class PriceQuote:
    """Oracle price observation."""
    price: float
    timestamp: datetime
    confidence: float = 0.0
    stale: bool = False

    def __post_init__(self):
        if self.timestamp.tzinfo is None:
            raise ValueError(f"PriceQuote timestamp must be timezone-aware, got {self.timestamp!r}")


class PriceSource(Protocol):
    """External price oracle. Returns None when nothing has been published yet."""

    def latest(self) -> Optional[PriceQuote]: ...


class StaticPriceSource:
    """In-process price source whose quote is set by the caller."""

    def __init__(self, quote: Optional[PriceQuote] = None):
        self._quote = quote

    def set_quote(self, quote: Optional[PriceQuote]) -> None:
        self._quote = quote

    def set_price(
        self,
        price: float,
        timestamp: datetime,
        confidence: float = 0.0,
        stale: bool = False,
    ) -> None:
        self._quote = PriceQuote(price=price, timestamp=timestamp, confidence=confidence, stale=stale)

    def latest(self) -> Optional[PriceQuote]:
        return self._quote


@dataclass
class PriceModelConfig:
    """Configuration for price model."""
    initial_price: float = 100.0
    jitter_amplitude: float = 0.06
    mean_reversion: float = 0.05
    max_price_age: timedelta = timedelta(seconds=120)


class PriceModel:
    """Maintains the reference price from an oracle with a jitter fallback."""

    def __init__(
        self,
        config: Optional[PriceModelConfig] = None,
        rng: Optional[RandomSource] = None,
        source: Optional[PriceSource] = None,
    ):
        """
        Initialize price model.

        Args:
            config: Optional configuration
            rng: Random source for jitter
            source: Optional oracle; without one every tick jitters
        """
        self._config = config or PriceModelConfig()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._source = source
        self.reset()

    def reset(self) -> None:
        self._price = self._config.initial_price
        self._anchor = self._config.initial_price
        self._last_quote: Optional[PriceQuote] = None
        self._pushed_quote: Optional[PriceQuote] = None

    @property
    def price(self) -> float:
        """Current reference price (0 if none has been seen)."""
        return self._price

    @property
    def anchor(self) -> float:
        """Last externally supplied price; jitter reverts toward it."""
        return self._anchor

    @property
    def last_quote(self) -> Optional[PriceQuote]:
        return self._last_quote

    def is_usable(self, quote: Optional[PriceQuote], now: datetime) -> bool:
        """Check whether a quote may become the reference price."""
        if quote is None or quote.stale:
            return False
        if not math.isfinite(quote.price) or quote.price <= 0:
            return False
        return now - quote.timestamp <= self._config.max_price_age

    def refresh(self, now: datetime) -> str:
        """
        Refresh the reference price for a tick.

        Returns:
            Which source produced the price: "oracle", "jitter" or "none"
        """
        quote = self._freshest_quote(now)

        if quote is not None:
            self._last_quote = quote
            self._set_external(quote.price)
            return PRICE_SOURCE_ORACLE

        if self._price <= 0:
            return PRICE_SOURCE_NONE

        self._price = self._jitter(self._price)
        return PRICE_SOURCE_JITTER

    def update_price(self, price: float, timestamp: Optional[datetime] = None) -> None:
        """
        Push a reference price directly (last value wins).

        With a timestamp the push also counts as a quote: until it is older
        than max_price_age, refresh() keeps it as the price instead of
        jittering. A price of zero clears the reference price.

        Raises:
            ValueError: If price is negative or not finite
        """
        if not math.isfinite(price) or price < 0:
            raise ValueError(f"price must be a finite value >= 0, got {price}")
        self._set_external(price)
        if price > 0 and timestamp is not None:
            self._pushed_quote = PriceQuote(price=price, timestamp=timestamp)
        else:
            self._pushed_quote = None

    def _freshest_quote(self, now: datetime) -> Optional[PriceQuote]:
        """Newest usable quote from the source or the last direct push."""
        candidates = [self._pushed_quote]
        if self._source is not None:
            candidates.append(self._source.latest())
        usable = [q for q in candidates if self.is_usable(q, now)]
        if not usable:
            return None
        return max(usable, key=lambda q: q.timestamp)

    def _set_external(self, price: float) -> None:
        self._price = price
        self._anchor = price

    def _jitter(self, price: float) -> float:
        noise = (float(self._rng.random()) - 0.5) * self._config.jitter_amplitude
        reversion = self._config.mean_reversion * (self._anchor - price)
        return max(MIN_JITTER_PRICE, price + noise + reversion)
