"""
Tests for configuration loading.

Validates that:
1. MarketConfig defaults match the PKMN-INDEX profile
2. Invalid parameters raise ValueError at construction
3. Environment (.env) and YAML profiles are applied on top of defaults
"""

from datetime import timedelta

import pytest

from perpsim.config import Config, LogConfig, MarketConfig, SchedulerConfig

ENV_VARS = [
    "PERP_SYMBOL",
    "PERP_MAX_LEVERAGE",
    "PERP_FUNDING_PERIOD_SECONDS",
    "PERP_SEED",
    "PERP_TICK_INTERVAL_SECONDS",
    "LOG_LEVEL",
    "LOG_DIR",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Register every variable with monkeypatch so values loaded from .env are undone."""
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


class TestMarketConfig:
    """Market parameter validation."""

    def test_defaults(self):
        m = MarketConfig()
        assert m.symbol == "PKMN-INDEX"
        assert m.initial_margin_fraction == 0.20
        assert m.maintenance_margin_fraction == 0.10
        assert m.taker_fee == 0.0008
        assert m.liquidation_fee_rate == 0.005
        assert m.max_leverage == 5
        assert m.min_order_size == 10
        assert m.max_positions == 10
        assert m.funding_period == timedelta(hours=1)
        assert m.max_slippage == 0.001
        assert m.initial_price == 100.0
        assert m.max_price_age == timedelta(seconds=120)
        assert (m.trade_history_cap, m.liquidation_log_cap, m.funding_history_cap) == (100, 20, 200)

    @pytest.mark.parametrize("kwargs", [
        {"maintenance_margin_fraction": 0.3},
        {"initial_margin_fraction": 0.0},
        {"max_leverage": 0.5},
        {"max_positions": 0},
        {"funding_period": timedelta(0)},
        {"max_slippage": 1.5},
        {"initial_funding_rate": 0.01},
        {"trade_history_cap": 0},
    ])
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(ValueError, match="Invalid MarketConfig"):
            MarketConfig(**kwargs)

    def test_is_frozen(self):
        with pytest.raises(AttributeError):
            MarketConfig().max_leverage = 10

    def test_from_dict_with_seconds(self):
        m = MarketConfig.from_dict({"funding_period_seconds": 60, "max_price_age_seconds": 30, "max_leverage": 10})
        assert m.funding_period == timedelta(seconds=60)
        assert m.max_price_age == timedelta(seconds=30)
        assert m.max_leverage == 10

    def test_from_dict_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown market config key"):
            MarketConfig.from_dict({"max_leverag": 10})

    def test_dict_round_trip(self):
        m = MarketConfig(symbol="TEST", funding_period=timedelta(minutes=5))
        assert MarketConfig.from_dict(m.to_dict()) == m


class TestEnvConfig:
    """Environment-driven configuration."""

    def test_defaults_without_env(self, clean_env):
        config = Config.from_env(env_file=None)
        assert config.market == MarketConfig()
        assert config.scheduler == SchedulerConfig()
        assert config.log == LogConfig()

    def test_env_variables(self, clean_env):
        clean_env.setenv("PERP_SYMBOL", "TEST-PERP")
        clean_env.setenv("PERP_MAX_LEVERAGE", "3")
        clean_env.setenv("PERP_SEED", "99")
        clean_env.setenv("LOG_DIR", "")

        config = Config.from_env(env_file=None)

        assert config.market.symbol == "TEST-PERP"
        assert config.market.max_leverage == 3.0
        assert config.scheduler.seed == 99
        assert config.log.log_dir is None

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PERP_FUNDING_PERIOD_SECONDS=600\nPERP_TICK_INTERVAL_SECONDS=0.5\nLOG_LEVEL=DEBUG\n")

        config = Config.from_env(env_file=str(env_file))

        assert config.market.funding_period == timedelta(minutes=10)
        assert config.scheduler.tick_interval_seconds == 0.5
        assert config.log.level == "DEBUG"

    def test_missing_env_file_is_ignored(self, clean_env, tmp_path):
        config = Config.from_env(env_file=str(tmp_path / "missing.env"))
        assert config.market.symbol == "PKMN-INDEX"


class TestYamlConfig:
    """YAML market profiles."""

    def test_profile_overrides(self, clean_env, tmp_path):
        profile = tmp_path / "market.yaml"
        profile.write_text(
            "market:\n"
            "  symbol: ALT-INDEX\n"
            "  max_leverage: 10\n"
            "  funding_period_seconds: 60\n"
            "scheduler:\n"
            "  seed: 7\n"
            "log:\n"
            "  level: WARNING\n"
        )

        config = Config.from_yaml(str(profile), env_file=None)

        assert config.market.symbol == "ALT-INDEX"
        assert config.market.max_leverage == 10
        assert config.market.funding_period == timedelta(minutes=1)
        assert config.market.taker_fee == 0.0008
        assert config.scheduler.seed == 7
        assert config.log.level == "WARNING"

    def test_empty_profile_keeps_env(self, clean_env, tmp_path):
        profile = tmp_path / "empty.yaml"
        profile.write_text("")
        assert Config.from_yaml(str(profile), env_file=None).market == MarketConfig()

    @pytest.mark.parametrize("content,match", [
        ("exchange:\n  name: x\n", "Unknown config sections"),
        ("scheduler:\n  tick: 1\n", "Invalid config section"),
        ("market:\n  max_leverage: 0\n", "Invalid MarketConfig"),
        ("- a\n- b\n", "must contain a mapping"),
    ])
    def test_invalid_profile(self, clean_env, tmp_path, content, match):
        profile = tmp_path / "bad.yaml"
        profile.write_text(content)
        with pytest.raises(ValueError, match=match):
            Config.from_yaml(str(profile), env_file=None)

    def test_missing_profile(self, clean_env, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(str(tmp_path / "nope.yaml"), env_file=None)


class TestSummary:

    def test_summary_mentions_market(self):
        summary = Config().summary()
        assert "PKMN-INDEX" in summary
        assert "max 5x" in summary
