"""
Volatility signal detection: ATR spike, price surge, volume spike.
Scores each candidate as observed / threshold and returns the strongest.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from spot_agent.core.types import Candle, Direction, SignalType, VolatilitySignal
from spot_agent.indicators.series import atr_wilder_window
from spot_agent.indicators.single import calculate_ema, calculate_rsi, calculate_sma

logger = logging.getLogger("spot_agent.signals")

WARMUP_BARS = 30
ATR_PERIOD = 14
AVG_ATR_WINDOW = 30
VOLUME_WINDOW = 30
MIN_VOLUME_SAMPLE = 10
TREND_BARS = 14


@dataclass(frozen=True)
class VolatilityThresholds:
    """
    atr_multiplier: ATR must exceed avg ATR by this fraction (0.6 = +60%).
    price_surge_pct: one-bar close change ratio (0.015 = 1.5%).
    volume_spike_multiplier: volume / trailing average volume.
    """
    atr_multiplier: float
    price_surge_pct: float
    volume_spike_multiplier: float


@dataclass(frozen=True)
class _Candidate:
    strength: float
    signal: VolatilitySignal


def _valid_candle(c: Candle) -> bool:
    values = (c.open, c.high, c.low, c.close, c.volume)
    return all(math.isfinite(v) for v in values) and c.close > 0


def _trend_direction(candles: Sequence[Candle], i: int) -> Direction:
    ref = candles[max(0, i - (TREND_BARS - 1))]
    if candles[i].close > ref.close:
        return Direction.UP
    if candles[i].close < ref.close:
        return Direction.DOWN
    return Direction.NEUTRAL


class SignalDetector:
    """Stateless per-bar detector; same code path for live and backtest."""

    def __init__(self, thresholds: VolatilityThresholds):
        self.thresholds = thresholds

    def detect(self, candles: Sequence[Candle]) -> Optional[VolatilitySignal]:
        """Evaluate the last bar of a trailing window."""
        if not candles:
            return None
        return self.detect_at(candles, len(candles) - 1)

    def detect_at(self, candles: Sequence[Candle], i: int) -> Optional[VolatilitySignal]:
        if i < WARMUP_BARS or i >= len(candles):
            return None
        last, prev = candles[i], candles[i - 1]
        if not (_valid_candle(last) and _valid_candle(prev)):
            logger.debug("Invalid candle data at index %d, no signal", i)
            return None

        atr = atr_wilder_window(candles, i, ATR_PERIOD, ATR_PERIOD + 1)
        avg_atr = atr_wilder_window(candles, i, ATR_PERIOD, AVG_ATR_WINDOW)
        atr_percent = atr / last.close

        candidates: List[_Candidate] = []
        for build in (self._atr_spike, self._price_surge, self._volume_spike):
            cand = build(candles, i, atr, avg_atr, atr_percent)
            if cand is not None:
                candidates.append(cand)
        if not candidates:
            return None

        # Strictly greater keeps the earliest candidate on ties (ATR -> price -> volume).
        best = candidates[0]
        for cand in candidates[1:]:
            if cand.strength > best.strength:
                best = cand
        return best.signal

    def _atr_spike(self, candles, i, atr, avg_atr, atr_percent) -> Optional[_Candidate]:
        if avg_atr <= 0:
            return None
        threshold = avg_atr * (1 + self.thresholds.atr_multiplier)
        if threshold <= 0 or atr <= threshold:
            return None
        return _Candidate(
            strength=atr / threshold,
            signal=VolatilitySignal(
                type=SignalType.ATR_SPIKE,
                value=atr,
                threshold=threshold,
                direction=_trend_direction(candles, i),
                timestamp=candles[i].timestamp,
                atr_percent=atr_percent,
            ),
        )

    def _price_surge(self, candles, i, atr, avg_atr, atr_percent) -> Optional[_Candidate]:
        last, prev = candles[i], candles[i - 1]
        threshold = self.thresholds.price_surge_pct
        if prev.close <= 0 or threshold <= 0:
            return None
        change = (last.close - prev.close) / prev.close
        if abs(change) <= threshold:
            return None
        return _Candidate(
            strength=abs(change) / threshold,
            signal=VolatilitySignal(
                type=SignalType.PRICE_SURGE,
                value=abs(change) * 100,
                threshold=threshold * 100,
                direction=Direction.UP if change > 0 else Direction.DOWN,
                timestamp=last.timestamp,
                atr_percent=atr_percent,
            ),
        )

    def _volume_spike(self, candles, i, atr, avg_atr, atr_percent) -> Optional[_Candidate]:
        sample = candles[max(0, i - VOLUME_WINDOW):i]
        if len(sample) < MIN_VOLUME_SAMPLE:
            return None
        avg_vol = sum(c.volume for c in sample) / len(sample)
        multiplier = self.thresholds.volume_spike_multiplier
        if avg_vol <= 0 or multiplier <= 0:
            return None
        ratio = candles[i].volume / avg_vol
        if ratio <= multiplier:
            return None
        return _Candidate(
            strength=ratio / multiplier,
            signal=VolatilitySignal(
                type=SignalType.VOLUME_SPIKE,
                value=ratio,
                threshold=multiplier,
                direction=_trend_direction(candles, i),
                timestamp=candles[i].timestamp,
                atr_percent=atr_percent,
            ),
        )


def detect_volatility_signal(
    candles: Sequence[Candle], thresholds: VolatilityThresholds
) -> Optional[VolatilitySignal]:
    """Functional shortcut for one-off checks."""
    return SignalDetector(thresholds).detect(candles)


def is_strong_signal(
    candles: Sequence[Candle],
    signal: VolatilitySignal,
    rsi_period: int = 14,
    sma_period: int = 20,
    ema_period: int = 9,
    rsi_lower: float = 35.0,
    rsi_upper: float = 65.0,
    ema_sma_spread_pct: float = 0.002,
    min_score: int = 2,
) -> bool:
    """
    Confluence filter: one point each for the signal clearing its threshold,
    RSI outside [rsi_lower, rsi_upper], and EMA/SMA spread above the minimum.
    """
    rsi = calculate_rsi(candles, rsi_period)
    sma = calculate_sma(candles, sma_period)
    ema = calculate_ema(candles, ema_period)
    score = 0
    if abs(signal.value) > signal.threshold:
        score += 1
    if rsi < rsi_lower or rsi > rsi_upper:
        score += 1
    if sma > 0 and abs(ema - sma) / sma > ema_sma_spread_pct:
        score += 1
    return score >= min_score
