"""
Configuration management for the perpetual simulator.
Loads settings from environment variables (or a YAML market profile) with
sensible defaults.
"""

import math
import os
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from . import constants as C


@dataclass(frozen=True)
class MarketConfig:
    """
    Market parameters for one simulation session.

    All values are pure constants: they are fixed when the exchange is
    constructed and never reconfigured mid-session.

    Margin model (cross margin):
        initial margin     = notional x initial_margin_fraction
        maintenance margin = notional x maintenance_margin_fraction
    """
    symbol: str = C.DEFAULT_SYMBOL
    initial_margin_fraction: float = C.INITIAL_MARGIN_FRACTION
    maintenance_margin_fraction: float = C.MAINTENANCE_MARGIN_FRACTION
    taker_fee: float = C.TAKER_FEE
    liquidation_fee_rate: float = C.LIQUIDATION_FEE_RATE
    max_leverage: float = C.MAX_LEVERAGE
    min_order_size: float = C.MIN_ORDER_SIZE
    max_positions: int = C.MAX_POSITIONS
    funding_period: timedelta = C.FUNDING_PERIOD
    max_slippage: float = C.MAX_SLIPPAGE

    # Funding random walk
    initial_funding_rate: float = C.INITIAL_FUNDING_RATE
    max_funding_rate: float = C.MAX_FUNDING_RATE
    funding_drift_band: float = C.FUNDING_DRIFT_BAND

    # Reference price fallback
    initial_price: float = C.INITIAL_PRICE
    jitter_amplitude: float = C.JITTER_AMPLITUDE
    mean_reversion: float = C.MEAN_REVERSION
    max_price_age: timedelta = C.MAX_PRICE_AGE

    # History caps
    trade_history_cap: int = C.TRADE_HISTORY_CAP
    liquidation_log_cap: int = C.LIQUIDATION_LOG_CAP
    funding_history_cap: int = C.FUNDING_HISTORY_CAP

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValueError("Invalid MarketConfig: " + "; ".join(errors))

    def validate(self) -> List[str]:
        """
        Check parameter ranges.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not 0 < self.initial_margin_fraction <= 1:
            errors.append(f"initial_margin_fraction must be in (0, 1], got {self.initial_margin_fraction}")
        if not 0 < self.maintenance_margin_fraction < 1:
            errors.append(f"maintenance_margin_fraction must be in (0, 1), got {self.maintenance_margin_fraction}")
        if self.maintenance_margin_fraction > self.initial_margin_fraction:
            errors.append("maintenance_margin_fraction must not exceed initial_margin_fraction")
        if self.taker_fee < 0:
            errors.append(f"taker_fee must be >= 0, got {self.taker_fee}")
        if self.liquidation_fee_rate < 0:
            errors.append(f"liquidation_fee_rate must be >= 0, got {self.liquidation_fee_rate}")
        if self.max_leverage < 1:
            errors.append(f"max_leverage must be >= 1, got {self.max_leverage}")
        if self.min_order_size <= 0:
            errors.append(f"min_order_size must be > 0, got {self.min_order_size}")
        if self.max_positions < 1:
            errors.append(f"max_positions must be >= 1, got {self.max_positions}")
        if self.funding_period <= timedelta(0):
            errors.append("funding_period must be positive")
        if not 0 <= self.max_slippage < 1:
            errors.append(f"max_slippage must be in [0, 1), got {self.max_slippage}")
        if self.max_funding_rate < 0:
            errors.append(f"max_funding_rate must be >= 0, got {self.max_funding_rate}")
        if abs(self.initial_funding_rate) > self.max_funding_rate:
            errors.append("initial_funding_rate must lie within +/- max_funding_rate")
        if self.funding_drift_band < 0:
            errors.append(f"funding_drift_band must be >= 0, got {self.funding_drift_band}")
        if self.initial_price < 0 or not math.isfinite(self.initial_price):
            errors.append(f"initial_price must be a finite value >= 0, got {self.initial_price}")
        if self.jitter_amplitude < 0:
            errors.append(f"jitter_amplitude must be >= 0, got {self.jitter_amplitude}")
        if not 0 <= self.mean_reversion <= 1:
            errors.append(f"mean_reversion must be in [0, 1], got {self.mean_reversion}")
        for cap_name in ("trade_history_cap", "liquidation_log_cap", "funding_history_cap"):
            if getattr(self, cap_name) < 1:
                errors.append(f"{cap_name} must be >= 1")

        return errors

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketConfig":
        """
        Build a MarketConfig from a plain mapping (YAML profile, JSON, ...).

        Durations may be given as `<name>_seconds` numbers.

        Raises:
            ValueError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}

        for key, value in data.items():
            if key == "funding_period_seconds":
                kwargs["funding_period"] = timedelta(seconds=float(value))
            elif key == "max_price_age_seconds":
                kwargs["max_price_age"] = timedelta(seconds=float(value))
            elif key in known:
                kwargs[key] = value
            else:
                raise ValueError(f"Unknown market config key: '{key}'")

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "initial_margin_fraction": self.initial_margin_fraction,
            "maintenance_margin_fraction": self.maintenance_margin_fraction,
            "taker_fee": self.taker_fee,
            "liquidation_fee_rate": self.liquidation_fee_rate,
            "max_leverage": self.max_leverage,
            "min_order_size": self.min_order_size,
            "max_positions": self.max_positions,
            "funding_period_seconds": self.funding_period.total_seconds(),
            "max_slippage": self.max_slippage,
            "initial_funding_rate": self.initial_funding_rate,
            "max_funding_rate": self.max_funding_rate,
            "funding_drift_band": self.funding_drift_band,
            "initial_price": self.initial_price,
            "jitter_amplitude": self.jitter_amplitude,
            "mean_reversion": self.mean_reversion,
            "max_price_age_seconds": self.max_price_age.total_seconds(),
            "trade_history_cap": self.trade_history_cap,
            "liquidation_log_cap": self.liquidation_log_cap,
            "funding_history_cap": self.funding_history_cap,
        }


@dataclass
class SchedulerConfig:
    """Tick scheduler configuration."""
    tick_interval_seconds: float = C.DEFAULT_TICK_INTERVAL_SECONDS
    seed: Optional[int] = None  # RNG seed for slippage/funding/jitter (None = entropy)


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_dir: Optional[str] = "logs"  # None = console only


@dataclass
class Config:
    """
    Aggregated configuration.

    Unlike session state, configuration may be loaded once and shared: it is
    immutable once the exchange has been built from it.
    """
    market: MarketConfig = field(default_factory=MarketConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = ".env") -> "Config":
        """
        Load configuration from environment variables.

        If env_file exists it is loaded first (values in the file override
        the process environment, matching the CLI's expectations).

        Args:
            env_file: Path to a .env file, or None to skip loading one
        """
        if env_file:
            env_path = Path(env_file)
            if env_path.exists():
                load_dotenv(env_path, override=True)

        return cls(
            market=cls._load_market_config(),
            scheduler=cls._load_scheduler_config(),
            log=cls._load_log_config(),
        )

    @classmethod
    def from_yaml(cls, path: str, env_file: Optional[str] = ".env") -> "Config":
        """
        Load a YAML market profile on top of environment configuration.

        The YAML file may contain `market`, `scheduler` and `log` sections.

        Raises:
            FileNotFoundError: If path does not exist
            ValueError: On unknown keys or invalid values
        """
        base = cls.from_env(env_file)

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        unknown = set(data) - {"market", "scheduler", "log"}
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        market = base.market
        if data.get("market"):
            merged = market.to_dict()
            merged.update(data["market"])
            market = MarketConfig.from_dict(merged)

        try:
            scheduler = replace(base.scheduler, **(data.get("scheduler") or {}))
            log = replace(base.log, **(data.get("log") or {}))
        except TypeError as e:
            raise ValueError(f"Invalid config section in {path}: {e}") from e

        return cls(market=market, scheduler=scheduler, log=log)

    @staticmethod
    def _load_market_config() -> MarketConfig:
        """Load market parameters from PERP_* environment variables."""
        return MarketConfig(
            symbol=os.getenv("PERP_SYMBOL", C.DEFAULT_SYMBOL),
            initial_margin_fraction=float(os.getenv("PERP_INITIAL_MARGIN_FRACTION", str(C.INITIAL_MARGIN_FRACTION))),
            maintenance_margin_fraction=float(os.getenv("PERP_MAINTENANCE_MARGIN_FRACTION", str(C.MAINTENANCE_MARGIN_FRACTION))),
            taker_fee=float(os.getenv("PERP_TAKER_FEE", str(C.TAKER_FEE))),
            liquidation_fee_rate=float(os.getenv("PERP_LIQUIDATION_FEE_RATE", str(C.LIQUIDATION_FEE_RATE))),
            max_leverage=float(os.getenv("PERP_MAX_LEVERAGE", str(C.MAX_LEVERAGE))),
            min_order_size=float(os.getenv("PERP_MIN_ORDER_SIZE", str(C.MIN_ORDER_SIZE))),
            max_positions=int(os.getenv("PERP_MAX_POSITIONS", str(C.MAX_POSITIONS))),
            funding_period=timedelta(seconds=float(os.getenv(
                "PERP_FUNDING_PERIOD_SECONDS", str(C.FUNDING_PERIOD.total_seconds())
            ))),
            max_slippage=float(os.getenv("PERP_MAX_SLIPPAGE", str(C.MAX_SLIPPAGE))),
            initial_price=float(os.getenv("PERP_INITIAL_PRICE", str(C.INITIAL_PRICE))),
        )

    @staticmethod
    def _load_scheduler_config() -> SchedulerConfig:
        seed = os.getenv("PERP_SEED", "")
        return SchedulerConfig(
            tick_interval_seconds=float(os.getenv("PERP_TICK_INTERVAL_SECONDS", str(C.DEFAULT_TICK_INTERVAL_SECONDS))),
            seed=int(seed) if seed else None,
        )

    @staticmethod
    def _load_log_config() -> LogConfig:
        log_dir = os.getenv("LOG_DIR", "logs")
        return LogConfig(
            level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=log_dir or None,
        )

    def summary(self) -> str:
        """Human-readable one-block summary of the active configuration."""
        m = self.market
        lines = [
            f"Market:        {m.symbol}",
            f"Margin:        IMF {m.initial_margin_fraction:.2%} | MMF {m.maintenance_margin_fraction:.2%}",
            f"Fees:          taker {m.taker_fee:.4%} | liquidation {m.liquidation_fee_rate:.2%}",
            f"Limits:        max {m.max_leverage:g}x | min ${m.min_order_size:,.2f} | {m.max_positions} positions",
            f"Funding:       every {m.funding_period.total_seconds():g}s | start {m.initial_funding_rate:.4%}",
            f"Tick interval: {self.scheduler.tick_interval_seconds:g}s",
        ]
        return "\n".join(lines)
