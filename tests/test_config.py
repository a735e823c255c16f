"""Unit tests for core.config."""

import pytest
from spot_agent.core.config import Config, SymbolConfig, load_config

YAML = """
trading:
  symbols: [KRW-BTC, KRW-SOL]
  timeframe: 15m
  fee_rate: 0.001
risk:
  risk_per_trade_pct: 0.02
  max_total_exposure_pct: 0.5
guardrails:
  max_consecutive_sl: 3
backtest:
  be_trigger_r: 0.5
symbols:
  KRW-SOL:
    risk_scale: 0.45
    max_position_pct: 0.15
    stop_loss_pct: 0.03
    take_profit_pct: 0.06
    price_surge_pct: 0.012
    not_a_field: 1
"""

ENV_KEYS = [
    "ATR_MULTIPLIER", "BE_TRIGGER_R", "COOLDOWN_MINUTES", "DAILY_MAX_LOSS_PCT", "DAILY_MAX_LOSS_R",
    "FALLBACK_STOP_LOSS_PCT", "FEE_RATE", "LOG_LEVEL", "MAX_CONSECUTIVE_SL", "MAX_DAILY_LOSS_PCT",
    "MAX_DAILY_TRADES", "MAX_DRAWDOWN_PCT", "MAX_FEE_IN_R", "MAX_NOTIONAL", "MAX_POSITION_PCT",
    "MAX_SPREAD_PCT", "MAX_TOTAL_EXPOSURE_PCT", "MAX_TRADES_PER_DAY", "MIN_24H_VOLUME", "MIN_NOTIONAL",
    "MIN_STOP_PCT", "MIN_TOPBOOK", "PRICE_SURGE_PCT", "REQUIRE_MICROSTRUCTURE", "RISK_PER_TRADE_PCT",
    "STOP_LOSS_PCT", "SYMBOL", "SYMBOLS", "TAKE_PROFIT_PCT", "TIMEFRAME", "UTC_OFFSET_HOURS",
    "VOLUME_SPIKE_MULTIPLIER",
]


def _clear_env(monkeypatch):
    # setenv first so teardown also removes anything load_dotenv writes.
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


@pytest.fixture
def project(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    (tmp_path / "config.yaml").write_text(YAML, encoding="utf-8")
    return tmp_path


def test_defaults_without_files(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    cfg = load_config(project_root=tmp_path)
    assert cfg.symbols == ["KRW-BTC"]
    assert cfg.fee_rate == pytest.approx(0.0005)
    assert cfg.min_notional == pytest.approx(5_000.0)
    assert cfg.guardrails.max_consecutive_sl == 4
    assert cfg.log_level == "INFO"


def test_yaml_sections(project):
    cfg = load_config(project_root=project)
    assert cfg.symbols == ["KRW-BTC", "KRW-SOL"]
    assert cfg.timeframe == "15m"
    assert cfg.fee_rate == pytest.approx(0.001)
    assert cfg.max_total_exposure_pct == pytest.approx(0.5)
    assert cfg.guardrail_settings().max_consecutive_sl == 3
    assert cfg.be_trigger_r == pytest.approx(0.5)


def test_env_overrides_yaml(project, monkeypatch):
    (project / ".env").write_text("FEE_RATE=0.0025\nSYMBOLS=KRW-ETH, KRW-XRP\n", encoding="utf-8")
    monkeypatch.setenv("MAX_CONSECUTIVE_SL", "6")
    cfg = load_config(project_root=project)
    assert cfg.fee_rate == pytest.approx(0.0025)
    assert cfg.symbols == ["KRW-ETH", "KRW-XRP"]
    assert cfg.guardrails.max_consecutive_sl == 6


def test_bad_numeric_env_falls_back(project, monkeypatch):
    monkeypatch.setenv("MAX_CONSECUTIVE_SL", "many")
    cfg = load_config(project_root=project)
    assert cfg.guardrails.max_consecutive_sl == 3


def test_symbol_overrides_and_policies(project):
    cfg = load_config(project_root=project)
    sol = cfg.symbol_config("KRW-SOL")
    assert sol.risk_scale == pytest.approx(0.45)
    assert sol.atr_multiplier == pytest.approx(1.5)  # inherited
    assert cfg.risk_scale("KRW-BTC") == pytest.approx(1.0)

    policy = cfg.risk_policy("KRW-SOL")
    assert policy.risk_per_trade_pct == pytest.approx(0.02)
    assert policy.max_position_pct_per_symbol == pytest.approx(0.15)
    assert policy.max_total_exposure_pct == pytest.approx(0.5)

    thresholds = cfg.volatility_thresholds("KRW-SOL")
    assert thresholds.price_surge_pct == pytest.approx(0.012)

    limits = cfg.risk_limits("KRW-SOL")
    assert limits.stop_loss_ratio == pytest.approx(0.03)
    assert limits.take_profit_ratio == pytest.approx(0.06)


def test_sl_tp_ratios_scale_with_volatility(project):
    cfg = load_config(project_root=project)
    base = cfg.sl_tp_ratios("KRW-SOL")
    assert (base.stop_loss_pct, base.take_profit_pct) == pytest.approx((0.03, 0.06))
    wide = cfg.sl_tp_ratios("KRW-SOL", atr_percent=0.07)
    assert wide.stop_loss_pct == pytest.approx(0.039)
    assert wide.take_profit_pct == pytest.approx(0.078)


def test_backtest_config(project):
    bt = load_config(project_root=project).backtest_config("KRW-SOL")
    assert bt.symbol == "KRW-SOL"
    assert bt.fee_rate == pytest.approx(0.001)
    assert bt.risk_scale == pytest.approx(0.45)
    assert bt.be_trigger_r == pytest.approx(0.5)
    assert bt.stop_loss_pct == pytest.approx(0.03)


def test_config_defaults_direct():
    cfg = Config()
    assert cfg.base_symbol == SymbolConfig()
    assert cfg.symbol_config("KRW-DOGE") == SymbolConfig()
