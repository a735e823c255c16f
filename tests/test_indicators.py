"""Unit tests for indicators."""

import numpy as np
import pytest
from spot_agent.indicators.series import (
    sma_series,
    ema_series,
    rsi_series,
    atr_series,
    atr_wilder_window,
    roc_series,
    cci_series,
    minimax_series,
    ribbon_series,
    ribbon_min_series,
)
from spot_agent.indicators.single import calculate_rsi, calculate_sma, calculate_ema, calculate_atr


def test_sma_series():
    out = sma_series([1, 2, 3, 4, 5], 3)
    assert out[:2].tolist() == [0.0, 0.0]
    assert out[2:] == pytest.approx([2.0, 3.0, 4.0])


def test_ema_series_seeded_with_first_value():
    out = ema_series([10.0, 20.0], 3)  # alpha 0.5
    assert out == pytest.approx([10.0, 15.0])


def test_rsi_extremes_and_warmup():
    rising = rsi_series(list(range(1, 30)), 14)
    assert rising[:14].tolist() == [50.0] * 14
    assert rising[-1] == pytest.approx(100.0)
    falling = rsi_series(list(range(30, 1, -1)), 14)
    assert falling[-1] == pytest.approx(0.0)


def test_atr_constant_range(make_candles):
    candles = make_candles([100.0] * 30, spread=1.0)
    atr = atr_series(candles, 14)
    assert atr[14] == pytest.approx(2.0)
    assert atr[-1] == pytest.approx(2.0)
    assert atr_wilder_window(candles, 29, 14, 15) == pytest.approx(2.0)
    assert calculate_atr(candles, 14) == pytest.approx(2.0)


def test_roc_series():
    assert roc_series([100.0, 110.0, 121.0], 1)[1:] == pytest.approx([10.0, 10.0])
    assert roc_series([0.0, 5.0], 1)[1] == 0.0


def test_cci_flat_is_zero(make_candles):
    candles = make_candles([100.0] * 25)
    assert np.all(cci_series(candles, 20) == 0.0)


def test_minimax_scales_into_range():
    out = minimax_series([0.0, 5.0, 10.0], 3, 0.0, 99.0)
    assert out[-1] == pytest.approx(99.0)
    assert out[0] == pytest.approx(49.5)  # warm-up midpoint


def test_ribbon_shape_and_min():
    closes = [float(i) for i in range(1, 50)]
    ribbon = ribbon_series(closes, (5, 10, 20))
    assert ribbon.shape == (3, 49)
    rmin = ribbon_min_series(ribbon, closes)
    assert rmin[-1] == pytest.approx(ribbon[2, -1])  # slowest EMA lags most on a climb
    empty = ribbon_min_series(np.empty((0, 3)), [1.0, 2.0, 3.0])
    assert empty.tolist() == [1.0, 2.0, 3.0]


def test_single_value_wrappers_short_history(make_candles):
    candles = make_candles([100.0] * 5)
    assert calculate_rsi(candles, 14) == 50.0
    assert calculate_sma(candles, 20) == 0.0
    assert calculate_ema(candles, 20) == 0.0
    assert calculate_atr(candles, 14) == 0.0
    assert calculate_sma(candles, 5) == pytest.approx(100.0)
