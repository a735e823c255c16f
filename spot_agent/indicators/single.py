"""Last-value wrappers around the series indicators, for live decision paths."""

from __future__ import annotations
from typing import Sequence

from spot_agent.core.types import Candle
from spot_agent.indicators.series import atr_series, ema_series, rsi_series, sma_series


def calculate_rsi(candles: Sequence[Candle], period: int = 14) -> float:
    """RSI of the last bar; 50 when there is not enough history."""
    if len(candles) < period + 1:
        return 50.0
    return float(rsi_series([c.close for c in candles], period)[-1])


def calculate_sma(candles: Sequence[Candle], period: int) -> float:
    if len(candles) < period:
        return 0.0
    return float(sma_series([c.close for c in candles], period)[-1])


def calculate_ema(candles: Sequence[Candle], period: int) -> float:
    if len(candles) < period:
        return 0.0
    return float(ema_series([c.close for c in candles], period)[-1])


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> float:
    if len(candles) < period + 1:
        return 0.0
    return float(atr_series(candles, period)[-1])
