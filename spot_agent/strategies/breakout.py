"""
EMA-ribbon breakout strategy. Long only: close above EMA200, ribbon stacked
and rising, RSI momentum, then an entry trigger by mode:
immediate (breakout bar), confirmed (bar after breakout), retest (pullback
to the ribbon within retest_lookback bars, then back above it).
Stop = close - ATR x atr_multiplier, target = rr x risk (at least covers fees).
"""

from __future__ import annotations
from typing import Optional, Sequence, Tuple

import numpy as np

from spot_agent.core.types import Candle, Position, TradeDecision, TradeSide, VolatilitySignal
from spot_agent.indicators.series import atr_series, ema_series, ribbon_series, rsi_series
from spot_agent.strategies.base import timestamp_index

RIBBON_PERIODS = (20, 25, 30, 35, 40, 45, 50, 60)
MODES = ("immediate", "confirmed", "retest")


class BreakoutStrategy:
    """Decision provider; indicator series are computed once for the full history."""

    def __init__(
        self,
        candles: Sequence[Candle],
        fee_rate: float = 0.0005,
        mode: str = "retest",
        rsi_min: float = 55.0,
        atr_multiplier: float = 1.5,
        rr: float = 3.0,
        retest_lookback: int = 10,
        ribbon_periods: Sequence[int] = RIBBON_PERIODS,
    ):
        if mode not in MODES:
            raise ValueError(f"Unknown breakout mode: {mode}")
        self.fee_rate = fee_rate
        self.mode = mode
        self.rsi_min = rsi_min
        self.atr_multiplier = atr_multiplier
        self.rr = rr
        self.retest_lookback = retest_lookback

        closes = [c.close for c in candles]
        self.closes = np.asarray(closes, dtype=float)
        self.lows = np.array([c.low for c in candles], dtype=float)
        self.ema200 = ema_series(closes, 200)
        self.ribbon = ribbon_series(closes, ribbon_periods)
        self.ribbon_max = self.ribbon.max(axis=0)
        self.rsi = rsi_series(closes, 14)
        self.atr = atr_series(candles, 14)
        self._index = timestamp_index(candles)

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
        return self.evaluate(idx)

    def _aligned(self, i: int, lookback: int = 3) -> bool:
        """Every ribbon EMA rising over `lookback` bars and stacked fast-over-slow."""
        if i < lookback:
            return False
        if np.any(self.ribbon[:, i] - self.ribbon[:, i - lookback] <= 0):
            return False
        vals = self.ribbon[:, i]
        return bool(np.all(vals[:-1] >= vals[1:]))

    def _breakout_bar(self, i: int) -> int:
        """Most recent bar in (i-10 .. i) whose close crossed above the ribbon top, or -1."""
        for j in range(i, max(1, i - 10) - 1, -1):
            if self.closes[j - 1] <= self.ribbon_max[j] < self.closes[j]:
                return j
        return -1

    def _trigger(self, i: int, price: float) -> Tuple[bool, str]:
        if self.mode == "immediate":
            if not self.closes[i - 1] <= self.ribbon_max[i] < price:
                return False, "no ribbon breakout"
            return True, "Breakout"
        bar = self._breakout_bar(i - 1)
        if self.mode == "confirmed":
            if bar != i - 1:
                return False, "no breakout on previous bar"
            if not price > self.ribbon_max[i - 1]:
                return False, "confirm bar below ribbon"
            return True, "Confirmed"
        if bar == -1:
            return False, "no prior breakout"
        since = i - bar
        if since < 1 or since > self.retest_lookback:
            return False, "retest window miss"
        touched = any(self.lows[j] <= self.ribbon_max[j] * 1.002 for j in range(bar + 1, i))
        if not touched:
            return False, "no retest touch"
        if not price > self.ribbon_max[i]:
            return False, "retest bar not above ribbon"
        return True, "Retest"

    def evaluate(self, i: int) -> TradeDecision:
        if i < 5 or i >= len(self.closes):
            return TradeDecision.skip("index out of range")
        price = float(self.closes[i])
        if not price > self.ema200[i]:
            return TradeDecision.skip("close <= EMA200")
        if not self._aligned(i):
            return TradeDecision.skip("ribbon not aligned")
        rsi = float(self.rsi[i])
        if rsi < self.rsi_min:
            return TradeDecision.skip(f"RSI < {self.rsi_min:g} ({rsi:.1f})")
        atr = float(self.atr[i])
        if not atr > 0:
            return TradeDecision.skip("ATR invalid")

        ok, label = self._trigger(i, price)
        if not ok:
            return TradeDecision.skip(label)

        stop = price - self.atr_multiplier * atr
        risk = price - stop
        if risk <= 0 or risk < price * 0.002:
            return TradeDecision.skip("risk too small")
        target = max(price + self.rr * risk, price * (1 + self.fee_rate * 4))
        return TradeDecision(
            should_trade=True,
            side=TradeSide.LONG,
            confidence=100.0,
            entry_price=price,
            stop_loss=stop,
            target_price=target,
            reasoning=f"{label} + RSI momentum",
        )
