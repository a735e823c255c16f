"""Unit tests for signals.detector."""

import math

import pytest
from spot_agent.core.types import Candle, Direction, SignalType
from spot_agent.signals.detector import (
    SignalDetector,
    VolatilityThresholds,
    detect_volatility_signal,
    is_strong_signal,
)

DEFAULTS = VolatilityThresholds(atr_multiplier=1.5, price_surge_pct=0.015, volume_spike_multiplier=2.0)


def _flat_with_jump(make_candles, n=40, jump_at=35, jump_to=103.0):
    closes = [100.0] * n
    closes[jump_at] = jump_to
    return make_candles(closes)


def test_price_surge_on_jump_bar(make_candles):
    candles = _flat_with_jump(make_candles)
    detector = SignalDetector(DEFAULTS)
    sig = detector.detect_at(candles, 35)
    assert sig is not None
    assert sig.type == SignalType.PRICE_SURGE
    assert sig.direction == Direction.UP
    assert sig.timestamp == candles[35].timestamp
    assert sig.value == pytest.approx(3.0)
    assert sig.threshold == pytest.approx(1.5)
    # Same answer from the trailing-window entry point.
    assert detector.detect(candles[:36]) == sig


def test_price_surge_down(make_candles):
    candles = _flat_with_jump(make_candles, jump_to=97.0)
    sig = detect_volatility_signal(candles[:36], DEFAULTS)
    assert sig.type == SignalType.PRICE_SURGE
    assert sig.direction == Direction.DOWN


def test_no_signal_on_flat_series(make_candles):
    candles = make_candles([100.0] * 40)
    assert SignalDetector(DEFAULTS).detect(candles) is None


def test_no_signal_during_warmup(make_candles):
    candles = _flat_with_jump(make_candles, jump_at=20)
    assert SignalDetector(DEFAULTS).detect_at(candles, 20) is None
    assert SignalDetector(DEFAULTS).detect([]) is None


def test_invalid_candle_gives_no_signal(make_candles):
    candles = _flat_with_jump(make_candles)
    c = candles[35]
    candles[35] = Candle(c.timestamp, c.open, c.high, c.low, math.nan, c.volume)
    assert SignalDetector(DEFAULTS).detect_at(candles, 35) is None
    candles[35] = Candle(c.timestamp, c.open, c.high, c.low, 0.0, c.volume)
    assert SignalDetector(DEFAULTS).detect_at(candles, 35) is None


def test_volume_spike_neutral_trend(make_candles):
    volumes = [1000.0] * 40
    volumes[35] = 5000.0
    candles = make_candles([100.0] * 40, volume=volumes)
    sig = SignalDetector(DEFAULTS).detect_at(candles, 35)
    assert sig.type == SignalType.VOLUME_SPIKE
    assert sig.value == pytest.approx(5.0)
    assert sig.threshold == pytest.approx(2.0)
    assert sig.direction == Direction.NEUTRAL


def test_atr_spike_when_recent_range_expands(make_candles):
    # Quiet bars (range 0.2) followed by wide bars (range 5) from bar 21 on:
    # the 15-bar ATR sees only wide bars, the 30-bar average still lags.
    candles = make_candles([100.0] * 40)
    widened = []
    for i, c in enumerate(candles):
        half = 2.5 if i >= 21 else 0.1
        widened.append(Candle(c.timestamp, 100.0, 100.0 + half, 100.0 - half, 100.0, c.volume))
    thresholds = VolatilityThresholds(atr_multiplier=0.2, price_surge_pct=0.015, volume_spike_multiplier=2.0)
    sig = SignalDetector(thresholds).detect_at(widened, 35)
    assert sig.type == SignalType.ATR_SPIKE
    assert sig.value == pytest.approx(5.0)
    assert sig.value > sig.threshold
    assert sig.atr_percent == pytest.approx(0.05)


def test_strongest_candidate_wins(make_candles):
    # 3% surge (strength 2) and a 10x volume spike (strength 5): volume wins.
    volumes = [1000.0] * 40
    volumes[35] = 10_000.0
    closes = [100.0] * 40
    closes[35] = 103.0
    candles = make_candles(closes, volume=volumes)
    sig = SignalDetector(DEFAULTS).detect_at(candles, 35)
    assert sig.type == SignalType.VOLUME_SPIKE


def test_is_strong_signal_counts_confluence(make_candles):
    surge = detect_volatility_signal(make_candles([100.0] * 35 + [103.0]), DEFAULTS)
    assert surge is not None

    # Steady climb: RSI pinned high and EMA well above SMA.
    trending = make_candles([100.0 + i for i in range(40)])
    assert is_strong_signal(trending, surge) is True

    # Choppy: RSI near 50, EMA on top of SMA -> only the signal itself scores.
    choppy = make_candles([100.0 if i % 2 == 0 else 101.0 for i in range(40)])
    assert is_strong_signal(choppy, surge) is False
    assert is_strong_signal(choppy, surge, min_score=1) is True
