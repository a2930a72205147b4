"""
Funding rate model.

Derives a new rate every funding period via a bounded random walk and
settles it against every open position:

  rate' = clamp(rate + drift, -max_rate, +max_rate)
  drift = (rng.random() - 0.5) x drift_band

  payment = notional x rate' x direction
  where direction = +1 for longs, -1 for shorts

Funding direction:
- Positive rate: longs pay, shorts receive
- Negative rate: shorts pay, longs receive

Payments are positive when paid. Each elapsed period is settled exactly
once: the schedule advances by one period per settlement, so ticking more
often never settles a period twice, and a late tick catches up every
period it missed.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import numpy as np

from ..book import PositionBook
from ..execution import RandomSource
from ..types import FundingResult, FundingTick


@dataclass
class FundingModelConfig:
    """Configuration for funding model."""
    period: timedelta = timedelta(hours=1)
    initial_rate: float = 0.0001  # 0.01% per period
    max_rate: float = 0.0005  # clamp bound (symmetric)
    drift_band: float = 0.00005  # drift sample width


class FundingModel:
    """
    Random-walk funding rate with a fixed settlement schedule.
    """

    def __init__(
        self,
        start_time: datetime,
        config: Optional[FundingModelConfig] = None,
        rng: Optional[RandomSource] = None,
    ):
        """
        Initialize funding model.

        Args:
            start_time: Session start; first settlement is one period later
            config: Optional configuration
            rng: Random source for the rate drift
        """
        self._config = config or FundingModelConfig()
        self._rng = rng if rng is not None else np.random.default_rng()
        self.reset(start_time)

    def reset(self, start_time: datetime) -> None:
        """Restart the schedule and the rate walk."""
        self._rate = self._config.initial_rate
        self._next_funding_time = start_time + self._config.period

    @property
    def rate(self) -> float:
        """Rate applied at the most recent settlement (or the initial rate)."""
        return self._rate

    @property
    def next_funding_time(self) -> datetime:
        return self._next_funding_time

    def is_due(self, now: datetime) -> bool:
        return now >= self._next_funding_time

    def step_rate(self) -> float:
        """Advance the random walk by one period and return the new rate."""
        max_rate = self._config.max_rate
        drift = (float(self._rng.random()) - 0.5) * self._config.drift_band
        self._rate = max(-max_rate, min(max_rate, self._rate + drift))
        return self._rate

    def settle(self, book: PositionBook, now: datetime) -> FundingResult:
        """
        Settle every funding period that has elapsed by now.

        Payments are added to each position's realized_funding; the caller
        applies result.total_payment to the account ledger.

        Args:
            book: Open positions (mutated)
            now: Current tick time

        Returns:
            FundingResult with one FundingTick per position per period
        """
        result = FundingResult(rate=self._rate)

        while self.is_due(now):
            settlement_time = self._next_funding_time
            rate = self.step_rate()
            self._next_funding_time = settlement_time + self._config.period

            for position in book:
                payment = position.notional * rate * position.side.direction
                position.realized_funding += payment
                result.total_payment += payment
                result.ticks.append(FundingTick(
                    timestamp=settlement_time,
                    rate=rate,
                    payment=payment,
                    position_id=position.position_id,
                ))

            result.periods_settled += 1
            result.rate = rate

        return result
