"""Indicators: SMA, EMA, RSI, ATR (Wilder) and KNN feature helpers."""

from spot_agent.indicators.series import (
    sma_series,
    ema_series,
    rsi_series,
    atr_series,
    atr_wilder_window,
    true_range,
    roc_series,
    cci_series,
    minimax_series,
    ribbon_series,
    ribbon_min_series,
)
from spot_agent.indicators.single import calculate_rsi, calculate_sma, calculate_ema, calculate_atr

__all__ = [
    "sma_series",
    "ema_series",
    "rsi_series",
    "atr_series",
    "atr_wilder_window",
    "true_range",
    "roc_series",
    "cci_series",
    "minimax_series",
    "ribbon_series",
    "ribbon_min_series",
    "calculate_rsi",
    "calculate_sma",
    "calculate_ema",
    "calculate_atr",
]
