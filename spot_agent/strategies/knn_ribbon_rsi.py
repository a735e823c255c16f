"""
KNN + EMA ribbon + RSI strategy (long only).

Entry: optional EMA200 / ribbon-over-EMA200 trend filters, a dip below the
ribbon reclaimed within dip_lookback bars, KNN BUY, and an RSI turn near
rsi_lower. Stop under the swing low, target rr x risk.
Exit: close under EMA200, or closes under the ribbon for ribbon_below_bars
while KNN has been off for knn_off_bars.
"""

from __future__ import annotations
from typing import Callable, Optional, Sequence

import numpy as np

from spot_agent.core.types import (
    Candle,
    ExitDecision,
    Position,
    TradeDecision,
    TradeSide,
    VolatilitySignal,
)
from spot_agent.indicators.series import ema_series, ribbon_min_series, ribbon_series, rsi_series
from spot_agent.ml.knn import KnnParams, knn_buy_series
from spot_agent.strategies.base import timestamp_index
from spot_agent.strategies.breakout import RIBBON_PERIODS


def _streak(pred: Callable[[int], bool], i: int, n: int) -> bool:
    """True when pred holds for bars i, i-1, ..., i-n+1."""
    for k in range(n):
        j = i - k
        if j < 0 or not pred(j):
            return False
    return True


class KnnRibbonRsiStrategy:
    """Decision and exit provider over precomputed series."""

    def __init__(
        self,
        candles: Sequence[Candle],
        fee_rate: float = 0.0005,
        rsi_lower: float = 40.0,
        swing_lookback: int = 12,
        rr: float = 2.0,
        stop_buffer_pct: float = 0.001,
        use_ema200_filter: bool = True,
        use_ribbon_ema200_filter: bool = True,
        dip_lookback: int = 3,
        use_dip_reclaim: bool = True,
        use_knn: bool = True,
        ribbon_below_bars: int = 2,
        knn_off_bars: int = 4,
        exit_on_ema200_break: bool = True,
        knn_params: Optional[KnnParams] = None,
        knn_buy: Optional[np.ndarray] = None,
    ):
        self.fee_rate = fee_rate
        self.rsi_lower = rsi_lower
        self.swing_lookback = swing_lookback
        self.rr = rr
        self.stop_buffer_pct = stop_buffer_pct
        self.use_ema200_filter = use_ema200_filter
        self.use_ribbon_ema200_filter = use_ribbon_ema200_filter
        self.dip_lookback = dip_lookback
        self.use_dip_reclaim = use_dip_reclaim
        self.use_knn = use_knn
        self.ribbon_below_bars = ribbon_below_bars
        self.knn_off_bars = knn_off_bars
        self.exit_on_ema200_break = exit_on_ema200_break

        closes = [c.close for c in candles]
        self.closes = np.asarray(closes, dtype=float)
        self.lows = np.array([c.low for c in candles], dtype=float)
        self.ema200 = ema_series(closes, 200)
        self.ribbon = ribbon_series(closes, RIBBON_PERIODS)
        self.ribbon_min = ribbon_min_series(self.ribbon, closes)
        self.ribbon_max = self.ribbon.max(axis=0)
        self.rsi = rsi_series(closes, 14)
        # Share one KNN series across grid points; it is the expensive part.
        if knn_buy is not None:
            self.knn_buy = np.asarray(knn_buy, dtype=bool)
        elif use_knn or knn_off_bars > 0:
            self.knn_buy = knn_buy_series(candles, knn_params or KnnParams())
        else:
            self.knn_buy = np.zeros(len(candles), dtype=bool)
        self._index = timestamp_index(candles)

    def _knn_at(self, i: int) -> bool:
        return bool(self.knn_buy[i]) if 0 <= i < len(self.knn_buy) else False

    def decide(
        self,
        candles: Sequence[Candle],
        signal: Optional[VolatilitySignal],
        position: Optional[Position],
    ) -> TradeDecision:
        if position is not None:
            return TradeDecision.skip("already in position")
        if not candles:
            return TradeDecision.skip("no candles")
        idx = self._index.get(candles[-1].timestamp)
        if idx is None:
            return TradeDecision.skip("index map miss")
        return self.evaluate_entry(idx)

    def check_exit(self, candles: Sequence[Candle], position: Position) -> ExitDecision:
        if not candles:
            return ExitDecision(False, reasoning="no candles")
        idx = self._index.get(candles[-1].timestamp)
        if idx is None:
            return ExitDecision(False, reasoning="index map miss")
        return self.evaluate_exit(idx)

    def evaluate_entry(self, i: int) -> TradeDecision:
        if i < 0 or i >= len(self.closes):
            return TradeDecision.skip("index out of range")
        price = float(self.closes[i])
        ema200 = float(self.ema200[i])
        if self.use_ema200_filter and not price > ema200:
            return TradeDecision.skip("close <= EMA200")

        r_min = float(self.ribbon_min[i])
        r_max = float(self.ribbon_max[i])
        if self.use_ribbon_ema200_filter and not r_min > ema200:
            return TradeDecision.skip("ribbon <= EMA200")

        if self.use_dip_reclaim:
            lo = max(0, i - self.dip_lookback + 1)
            dipped = bool(np.any(self.lows[lo:i + 1] < r_min))
            if not (dipped and r_min <= price <= r_max):
                return TradeDecision.skip("no dip-reclaim")

        if self.use_knn and not self._knn_at(i):
            return TradeDecision.skip("KNN not BUY")

        rsi = float(self.rsi[i])
        prev_rsi = float(self.rsi[i - 1]) if i >= 1 else rsi
        crossed = prev_rsi < self.rsi_lower <= rsi
        turning = rsi <= self.rsi_lower + 5 and rsi > prev_rsi
        if not (crossed or turning):
            return TradeDecision.skip(f"RSI not buy ({rsi:.1f})")

        lb = min(self.swing_lookback, i)
        swing_low = float(self.lows[i - lb + 1:i + 1].min()) if lb > 0 else float(self.lows[i])
        stop = swing_low * (1 - self.stop_buffer_pct)
        if not stop < price * 0.999:
            return TradeDecision.skip("stop too tight")

        risk = price - stop
        target = max(price + self.rr * risk, price * (1 + self.fee_rate * 4))

        confidence = 55.0
        if rsi <= self.rsi_lower + 2:
            confidence += 10
        if price - r_min < risk * 0.5:
            confidence += 5
        confidence = min(90.0, confidence)

        return TradeDecision(
            should_trade=True,
            side=TradeSide.LONG,
            confidence=confidence,
            entry_price=price,
            stop_loss=stop,
            target_price=target,
            reasoning="KNN + EMA ribbon + RSI",
        )

    def evaluate_exit(self, i: int) -> ExitDecision:
        close = float(self.closes[i])
        if self.exit_on_ema200_break and close < self.ema200[i]:
            return ExitDecision(True, reasoning="close < EMA200")
        below = _streak(lambda j: self.closes[j] < self.ribbon_min[j], i, self.ribbon_below_bars)
        knn_off = _streak(lambda j: not self._knn_at(j), i, self.knn_off_bars)
        if below and knn_off:
            return ExitDecision(
                True,
                reasoning=f"below ribbon ({self.ribbon_below_bars}) & KNN off ({self.knn_off_bars})",
            )
        return ExitDecision(False, reasoning="hold")
