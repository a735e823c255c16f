"""
Full-series indicators. Each function returns a numpy array aligned with its
input; warm-up slots hold a neutral value (0 for averages, 50 for RSI).
ATR and RSI use Wilder smoothing.
"""

from __future__ import annotations
from typing import Sequence

import numpy as np

from spot_agent.core.types import Candle


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


def sma_series(values: Sequence[float], period: int) -> np.ndarray:
    arr = _as_array(values)
    out = np.zeros(len(arr))
    if period <= 0 or len(arr) < period:
        return out
    csum = np.cumsum(arr)
    out[period - 1] = csum[period - 1] / period
    out[period:] = (csum[period:] - csum[:-period]) / period
    return out


def ema_series(values: Sequence[float], period: int) -> np.ndarray:
    """EMA seeded with the first value, alpha = 2 / (period + 1)."""
    arr = _as_array(values)
    out = np.zeros(len(arr))
    if len(arr) == 0:
        return out
    k = 2.0 / (period + 1)
    ema = arr[0]
    out[0] = ema
    for i in range(1, len(arr)):
        ema = arr[i] * k + ema * (1 - k)
        out[i] = ema
    return out


def rsi_series(values: Sequence[float], period: int) -> np.ndarray:
    arr = _as_array(values)
    n = len(arr)
    out = np.full(n, 50.0)
    if period <= 0 or n <= period:
        return out
    diff = np.diff(arr)
    gains = np.where(diff > 0, diff, 0.0)
    losses = np.where(diff < 0, -diff, 0.0)
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = 100.0 if avg_loss == 0 else 100.0 - 100.0 / (1 + avg_gain / avg_loss)
    for i in range(period + 1, n):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        out[i] = 100.0 if avg_loss == 0 else 100.0 - 100.0 / (1 + avg_gain / avg_loss)
    return out


def true_range(candle: Candle, prev_close: float) -> float:
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


def true_range_series(candles: Sequence[Candle]) -> np.ndarray:
    """True range per bar; index 0 is 0 because it has no previous close."""
    n = len(candles)
    out = np.zeros(n)
    for i in range(1, n):
        out[i] = true_range(candles[i], candles[i - 1].close)
    return out


def atr_series(candles: Sequence[Candle], period: int) -> np.ndarray:
    """
    Wilder ATR. Bars before `period` ramp up as a running TR/period sum,
    bar `period` is the simple mean of the first `period` TRs.
    """
    n = len(candles)
    out = np.zeros(n)
    if period <= 0:
        return out
    tr = true_range_series(candles)
    for i in range(1, n):
        if i < period:
            out[i] = out[i - 1] + tr[i] / period
        elif i == period:
            out[i] = tr[1:period + 1].mean()
        else:
            out[i] = (out[i - 1] * (period - 1) + tr[i]) / period
    return out


def atr_wilder_window(candles: Sequence[Candle], end_index: int, period: int, window_len: int) -> float:
    """
    Wilder ATR ending at end_index using only the last window_len bars:
    seed with the mean of the first `period` TRs in the window, then smooth.
    """
    start = max(1, end_index - window_len + 1)
    init_end = min(end_index, start + period - 1)
    if init_end < start:
        return 0.0
    tr_sum = 0.0
    count = 0
    for k in range(start, init_end + 1):
        tr_sum += true_range(candles[k], candles[k - 1].close)
        count += 1
    atr = tr_sum / count
    for k in range(init_end + 1, end_index + 1):
        atr = (atr * (period - 1) + true_range(candles[k], candles[k - 1].close)) / period
    return atr


def roc_series(values: Sequence[float], period: int) -> np.ndarray:
    """Rate of change in percent."""
    arr = _as_array(values)
    out = np.zeros(len(arr))
    if period <= 0 or len(arr) <= period:
        return out
    prev = arr[:-period]
    with np.errstate(divide="ignore", invalid="ignore"):
        roc = np.where(prev != 0, (arr[period:] - prev) / prev * 100.0, 0.0)
    out[period:] = roc
    return out


def cci_series(candles: Sequence[Candle], period: int) -> np.ndarray:
    n = len(candles)
    out = np.zeros(n)
    if period <= 0 or n < period:
        return out
    tp = np.array([c.typical_price for c in candles])
    for i in range(period - 1, n):
        window = tp[i - period + 1:i + 1]
        mean = window.mean()
        mad = np.abs(window - mean).mean()
        out[i] = 0.0 if mad == 0 else (tp[i] - mean) / (0.015 * mad)
    return out


def minimax_series(values: Sequence[float], period: int, lo: float, hi: float) -> np.ndarray:
    """Rescale each value into [lo, hi] against its trailing window range."""
    arr = _as_array(values)
    n = len(arr)
    out = np.full(n, (lo + hi) / 2.0)
    if period <= 0 or n < period:
        return out
    windows = np.lib.stride_tricks.sliding_window_view(arr, period)
    w_max = windows.max(axis=1)
    w_min = windows.min(axis=1)
    rng = w_max - w_min
    cur = arr[period - 1:]
    with np.errstate(divide="ignore", invalid="ignore"):
        scaled = np.where(rng == 0, (lo + hi) / 2.0, (hi - lo) * (cur - w_min) / rng + lo)
    out[period - 1:] = scaled
    return out


def ribbon_series(values: Sequence[float], periods: Sequence[int]) -> np.ndarray:
    """Stack of EMAs, shape (len(periods), len(values))."""
    return np.vstack([ema_series(values, p) for p in periods])


def ribbon_min_series(ribbon: np.ndarray, closes: Sequence[float]) -> np.ndarray:
    """Per-bar minimum across ribbon EMAs; falls back to close when empty."""
    closes_arr = _as_array(closes)
    if ribbon.size == 0:
        return closes_arr.copy()
    return ribbon.min(axis=0)
