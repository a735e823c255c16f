"""
Load configuration from config.yaml and .env. Environment variables win over
YAML. Per-symbol overrides live under the `symbols` section.
"""

from __future__ import annotations
import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from spot_agent.backtesting.engine import BacktestConfig
from spot_agent.planner.order_planner import RiskPolicy, SlTpRatios
from spot_agent.risk.guardrails import GuardrailSettings
from spot_agent.risk.manager import RiskLimits
from spot_agent.signals.detector import VolatilityThresholds
from spot_agent.trading.core import volatility_based_sl_tp

logger = logging.getLogger("spot_agent.config")


@dataclass(frozen=True)
class SymbolConfig:
    """Per-symbol knobs. All ratios (0.01 = 1%)."""
    risk_scale: float = 1.0
    max_position_pct: float = 0.2
    stop_loss_pct: float = 0.02
    take_profit_pct: float = 0.04
    max_drawdown_pct: float = 0.05
    atr_multiplier: float = 1.5
    price_surge_pct: float = 0.015
    volume_spike_multiplier: float = 2.0
    base_risk_per_trade_pct: float = 0.01
    fallback_stop_loss_pct: float = 0.005


_SYMBOL_FIELDS = {f.name for f in dataclasses.fields(SymbolConfig)}


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    def env(key: str, default: str = "") -> str:
        return os.getenv(key, default).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            logger.warning("Ignoring non-integer %s=%r", key, os.getenv(key))
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", key, os.getenv(key))
            return default

    trading = data.get("trading", {}) or {}
    risk = data.get("risk", {}) or {}
    signals = data.get("signals", {}) or {}
    guard = data.get("guardrails", {}) or {}
    backtest = data.get("backtest", {}) or {}
    log = data.get("logging", {}) or {}
    symbols_section = data.get("symbols", {}) or {}

    raw_symbols = env("SYMBOLS") or env("SYMBOL")
    if raw_symbols:
        symbols = [s.strip() for s in raw_symbols.split(",") if s.strip()]
    else:
        symbols = list(trading.get("symbols", ["KRW-BTC"]))

    base = SymbolConfig(
        risk_scale=float(risk.get("risk_scale", 1.0)),
        max_position_pct=env_float("MAX_POSITION_PCT", risk.get("max_position_pct", 0.2)),
        stop_loss_pct=env_float("STOP_LOSS_PCT", risk.get("stop_loss_pct", 0.02)),
        take_profit_pct=env_float("TAKE_PROFIT_PCT", risk.get("take_profit_pct", 0.04)),
        max_drawdown_pct=env_float("MAX_DRAWDOWN_PCT", risk.get("max_drawdown_pct", 0.05)),
        atr_multiplier=env_float("ATR_MULTIPLIER", signals.get("atr_multiplier", 1.5)),
        price_surge_pct=env_float("PRICE_SURGE_PCT", signals.get("price_surge_pct", 0.015)),
        volume_spike_multiplier=env_float(
            "VOLUME_SPIKE_MULTIPLIER", signals.get("volume_spike_multiplier", 2.0)
        ),
        base_risk_per_trade_pct=env_float("RISK_PER_TRADE_PCT", risk.get("risk_per_trade_pct", 0.01)),
        fallback_stop_loss_pct=env_float(
            "FALLBACK_STOP_LOSS_PCT", risk.get("fallback_stop_loss_pct", 0.005)
        ),
    )

    guardrails = GuardrailSettings(
        daily_max_loss_r=env_float("DAILY_MAX_LOSS_R", guard.get("daily_max_loss_r", 3.0)),
        daily_max_loss_pct=env_float("DAILY_MAX_LOSS_PCT", guard.get("daily_max_loss_pct", 1.5)),
        max_consecutive_sl=env_int("MAX_CONSECUTIVE_SL", guard.get("max_consecutive_sl", 4)),
        cooldown_minutes=env_int("COOLDOWN_MINUTES", guard.get("cooldown_minutes", 120)),
        max_trades_per_day=env_int("MAX_TRADES_PER_DAY", guard.get("max_trades_per_day", 10)),
        max_fee_in_r=env_float("MAX_FEE_IN_R", guard.get("max_fee_in_r", 0.15)),
        min_stop_pct=env_float("MIN_STOP_PCT", guard.get("min_stop_pct", 0.5)),
        max_spread_pct=env_float("MAX_SPREAD_PCT", guard.get("max_spread_pct", 0.08)),
        min_top_book=env_float("MIN_TOPBOOK", guard.get("min_top_book", 20_000_000.0)),
        min_volume_24h=env_float("MIN_24H_VOLUME", guard.get("min_volume_24h", 30_000_000_000.0)),
        utc_offset_hours=env_float("UTC_OFFSET_HOURS", guard.get("utc_offset_hours", 9.0)),
        require_microstructure=env_bool(
            "REQUIRE_MICROSTRUCTURE", guard.get("require_microstructure", False)
        ),
    )

    return Config(
        symbols=symbols,
        timeframe=env("TIMEFRAME", str(trading.get("timeframe", "60m"))),
        fee_rate=env_float("FEE_RATE", trading.get("fee_rate", 0.0005)),
        max_total_exposure_pct=env_float(
            "MAX_TOTAL_EXPOSURE_PCT", risk.get("max_total_exposure_pct", 0.8)
        ),
        max_daily_loss_pct=env_float("MAX_DAILY_LOSS_PCT", risk.get("max_daily_loss_pct", 0.05)),
        max_daily_trades=env_int("MAX_DAILY_TRADES", risk.get("max_daily_trades", 10)),
        min_notional=env_float("MIN_NOTIONAL", risk.get("min_notional", 5_000.0)),
        max_notional=env_float("MAX_NOTIONAL", risk.get("max_notional", 2_000_000.0)),
        base_symbol=base,
        symbol_overrides=dict(symbols_section),
        guardrails=guardrails,
        backtest_initial_capital=float(backtest.get("initial_capital", 1_000_000.0)),
        backtest_window_size=int(backtest.get("window_size", 500)),
        backtest_gate_on_signal=bool(backtest.get("gate_on_signal", True)),
        be_trigger_r=env_float("BE_TRIGGER_R", backtest.get("be_trigger_r", 0.25)),
        min_hold_bars=int(backtest.get("min_hold_bars", 0)),
        fold_count=int(backtest.get("fold_count", 3)),
        top_n=int(backtest.get("top_n", 50)),
        slippage_pct=float(backtest.get("slippage_pct", 0.0)),
        bootstrap_iterations=int(backtest.get("bootstrap_iterations", 1000)),
        log_level=env("LOG_LEVEL", str(log.get("level", "INFO"))),
        log_dir=Path(log.get("log_dir", "logs")),
        log_file=log.get("log_file", "spot_agent.log"),
    )


class Config:
    """Unified configuration. Builds the typed policies the core consumes."""

    __slots__ = (
        "symbols", "timeframe", "fee_rate",
        "max_total_exposure_pct", "max_daily_loss_pct", "max_daily_trades",
        "min_notional", "max_notional",
        "base_symbol", "symbol_overrides", "guardrails",
        "backtest_initial_capital", "backtest_window_size", "backtest_gate_on_signal",
        "be_trigger_r", "min_hold_bars", "fold_count", "top_n", "slippage_pct",
        "bootstrap_iterations",
        "log_level", "log_dir", "log_file",
    )

    def __init__(
        self,
        symbols: Optional[List[str]] = None,
        timeframe: str = "60m",
        fee_rate: float = 0.0005,
        max_total_exposure_pct: float = 0.8,
        max_daily_loss_pct: float = 0.05,
        max_daily_trades: int = 10,
        min_notional: float = 5_000.0,
        max_notional: float = 2_000_000.0,
        base_symbol: Optional[SymbolConfig] = None,
        symbol_overrides: Optional[Dict[str, Dict[str, Any]]] = None,
        guardrails: Optional[GuardrailSettings] = None,
        backtest_initial_capital: float = 1_000_000.0,
        backtest_window_size: int = 500,
        backtest_gate_on_signal: bool = True,
        be_trigger_r: float = 0.25,
        min_hold_bars: int = 0,
        fold_count: int = 3,
        top_n: int = 50,
        slippage_pct: float = 0.0,
        bootstrap_iterations: int = 1000,
        log_level: str = "INFO",
        log_dir: Optional[Path] = None,
        log_file: str = "spot_agent.log",
    ):
        self.symbols = list(symbols) if symbols else ["KRW-BTC"]
        self.timeframe = timeframe
        self.fee_rate = fee_rate
        self.max_total_exposure_pct = max_total_exposure_pct
        self.max_daily_loss_pct = max_daily_loss_pct
        self.max_daily_trades = max_daily_trades
        self.min_notional = min_notional
        self.max_notional = max_notional
        self.base_symbol = base_symbol or SymbolConfig()
        self.symbol_overrides = symbol_overrides or {}
        self.guardrails = guardrails or GuardrailSettings()
        self.backtest_initial_capital = backtest_initial_capital
        self.backtest_window_size = backtest_window_size
        self.backtest_gate_on_signal = backtest_gate_on_signal
        self.be_trigger_r = be_trigger_r
        self.min_hold_bars = min_hold_bars
        self.fold_count = fold_count
        self.top_n = top_n
        self.slippage_pct = slippage_pct
        self.bootstrap_iterations = bootstrap_iterations
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file

    def symbol_config(self, symbol: str) -> SymbolConfig:
        """Base symbol settings with this symbol's overrides applied; unknown keys are ignored."""
        override = self.symbol_overrides.get(symbol) or {}
        unknown = set(override) - _SYMBOL_FIELDS
        if unknown:
            logger.warning("Unknown override keys for %s: %s", symbol, ", ".join(sorted(unknown)))
        known = {k: float(v) for k, v in override.items() if k in _SYMBOL_FIELDS}
        return dataclasses.replace(self.base_symbol, **known)

    def risk_scale(self, symbol: str) -> float:
        return self.symbol_config(symbol).risk_scale

    def risk_policy(self, symbol: str) -> RiskPolicy:
        """Unscaled; pass risk_scale(symbol) to the planner separately."""
        sc = self.symbol_config(symbol)
        return RiskPolicy(
            risk_per_trade_pct=sc.base_risk_per_trade_pct,
            max_position_pct_per_symbol=sc.max_position_pct,
            max_total_exposure_pct=self.max_total_exposure_pct,
            max_daily_loss_pct=self.max_daily_loss_pct,
            min_notional=self.min_notional,
            max_notional=self.max_notional,
            fallback_stop_loss_pct=sc.fallback_stop_loss_pct,
        )

    def volatility_thresholds(self, symbol: str) -> VolatilityThresholds:
        sc = self.symbol_config(symbol)
        return VolatilityThresholds(sc.atr_multiplier, sc.price_surge_pct, sc.volume_spike_multiplier)

    def guardrail_settings(self) -> GuardrailSettings:
        return self.guardrails

    def risk_limits(self, symbol: str) -> RiskLimits:
        sc = self.symbol_config(symbol)
        return RiskLimits(
            max_position_size_ratio=sc.max_position_pct,
            max_daily_loss_ratio=self.max_daily_loss_pct,
            max_daily_trades=self.max_daily_trades,
            stop_loss_ratio=sc.stop_loss_pct,
            take_profit_ratio=sc.take_profit_pct,
            max_drawdown_ratio=sc.max_drawdown_pct,
        )

    def sl_tp_ratios(self, symbol: str, atr_percent: Optional[float] = None) -> SlTpRatios:
        sc = self.symbol_config(symbol)
        sl, tp = volatility_based_sl_tp(sc.stop_loss_pct, sc.take_profit_pct, atr_percent)
        return SlTpRatios(sl, tp)

    def backtest_config(self, symbol: str) -> BacktestConfig:
        sc = self.symbol_config(symbol)
        return BacktestConfig(
            symbol=symbol,
            initial_capital=self.backtest_initial_capital,
            fee_rate=self.fee_rate,
            window_size=self.backtest_window_size,
            gate_on_signal=self.backtest_gate_on_signal,
            be_trigger_r=self.be_trigger_r,
            min_hold_bars=self.min_hold_bars,
            risk_scale=sc.risk_scale,
            stop_loss_pct=sc.stop_loss_pct,
            take_profit_pct=sc.take_profit_pct,
        )
