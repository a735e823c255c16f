"""
K-nearest-neighbour direction classifier over two averaged oscillator
features (long and short window). Computed once for the whole series;
callers index into the result per bar.

A training bar t only votes at bar i once its label is known at i
(t + label_horizon < i), so the series has no lookahead.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from spot_agent.core.types import Candle
from spot_agent.indicators.series import (
    atr_series,
    cci_series,
    minimax_series,
    roc_series,
    rsi_series,
)


@dataclass(frozen=True)
class KnnParams:
    short_window: int = 14
    long_window: int = 28
    base_k: int = 252
    train_window: int = 600
    volatility_filter: bool = True
    label_threshold: float = 0.001
    label_horizon: int = 30
    stop_buffer_pct: float = 0.002
    rr: float = 1.5
    swing_lookback: int = 8

    @property
    def k(self) -> int:
        return int(math.floor(math.sqrt(self.base_k)))

    @property
    def warmup(self) -> int:
        return max(self.long_window, self.train_window) + 10


@dataclass
class KnnResult:
    """Per-bar vote sum and filtered direction (-1, 0, 1)."""
    prediction: np.ndarray
    signal: np.ndarray

    def buy_flags(self) -> np.ndarray:
        return self.signal > 0


def _features(candles: Sequence[Candle], window: int) -> np.ndarray:
    closes = [c.close for c in candles]
    volumes = [c.volume for c in candles]
    return (
        rsi_series(closes, window)
        + cci_series(candles, window)
        + roc_series(closes, window)
        + minimax_series(volumes, window, 0, 99)
    ) / 4.0


def tp_sl_label(
    candles: Sequence[Candle],
    entry_index: int,
    horizon: int,
    stop_buffer_pct: float,
    rr: float,
    swing_lookback: int,
) -> int:
    """
    +1 if a long entered at entry_index would hit its rr target before the
    swing-low stop within `horizon` bars, -1 for the stop, 0 for neither.
    """
    n = len(candles)
    if entry_index + horizon >= n:
        return 0
    entry = candles[entry_index].close
    lo = max(0, entry_index - swing_lookback + 1)
    swing_low = min(c.low for c in candles[lo:entry_index + 1])
    stop = swing_low * (1 - stop_buffer_pct)
    risk = entry - stop
    if risk <= 0:
        return 0
    target = entry + rr * risk
    for j in range(entry_index + 1, entry_index + horizon + 1):
        if candles[j].high >= target:
            return 1
        if candles[j].low <= stop:
            return -1
    return 0


def _labels(candles: Sequence[Candle], params: KnnParams) -> np.ndarray:
    n = len(candles)
    if params.label_horizon > 1:
        return np.array(
            [
                tp_sl_label(candles, t, params.label_horizon, params.stop_buffer_pct, params.rr, params.swing_lookback)
                for t in range(n)
            ],
            dtype=float,
        )
    closes = np.array([c.close for c in candles], dtype=float)
    labels = np.zeros(n)
    if n > 1:
        with np.errstate(divide="ignore", invalid="ignore"):
            fwd = np.where(closes[:-1] != 0, (closes[1:] - closes[:-1]) / closes[:-1], 0.0)
        labels[:-1] = np.where(fwd > params.label_threshold, 1.0, np.where(fwd < -params.label_threshold, -1.0, 0.0))
    return labels


def knn_series(candles: Sequence[Candle], params: KnnParams = KnnParams()) -> KnnResult:
    n = len(candles)
    prediction = np.zeros(n)
    signal = np.zeros(n, dtype=int)
    if n == 0:
        return KnnResult(prediction, signal)

    f_long = _features(candles, params.long_window)
    f_short = _features(candles, params.short_window)
    labels = _labels(candles, params)
    horizon = max(1, params.label_horizon)
    if params.volatility_filter:
        vol_ok = atr_series(candles, 10) > atr_series(candles, 40)
    else:
        vol_ok = np.ones(n, dtype=bool)

    for i in range(params.warmup, n):
        start = max(0, i - params.train_window)
        stop = i - horizon
        if stop <= start:
            continue
        d = np.hypot(f_long[i] - f_long[start:stop], f_short[i] - f_short[start:stop])
        nearest = np.argsort(d, kind="stable")[: params.k]
        pred = float(labels[start:stop][nearest].sum())
        prediction[i] = pred
        if vol_ok[i]:
            signal[i] = 1 if pred > 0 else (-1 if pred < 0 else 0)
    return KnnResult(prediction, signal)


def knn_buy_series(candles: Sequence[Candle], params: KnnParams = KnnParams()) -> np.ndarray:
    """Boolean BUY flag per bar (positive vote and, if enabled, rising volatility)."""
    return knn_series(candles, params).buy_flags()
