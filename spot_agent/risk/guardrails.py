"""
Guardrail engine: day-scoped pre-trade veto, independent of position sizing.
Daily loss caps (R and %), trade-count cap, consecutive stop-loss cooldown,
and market-quality checks (stale candles, fee-in-R, stop width, spread,
book depth, 24h volume).
"""

from __future__ import annotations
import logging
import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from spot_agent.core.clock import Clock, SystemClock
from spot_agent.core.types import ExitReason

logger = logging.getLogger("spot_agent.guardrails")


@dataclass(frozen=True)
class GuardrailSettings:
    """Percent fields are in percent units (0.5 = 0.5%)."""
    daily_max_loss_r: float = 3.0
    daily_max_loss_pct: float = 1.5
    max_consecutive_sl: int = 4
    cooldown_minutes: int = 120
    max_trades_per_day: int = 10
    max_fee_in_r: float = 0.15
    min_stop_pct: float = 0.5
    max_spread_pct: float = 0.08
    min_top_book: float = 20_000_000.0
    min_volume_24h: float = 30_000_000_000.0
    utc_offset_hours: float = 9.0
    require_microstructure: bool = False


@dataclass(frozen=True)
class PreTradeContext:
    """
    Market snapshot for one candidate entry. spread/book/volume may be
    unknown (None); they are skipped unless require_microstructure is set.
    """
    symbol: str
    stop_pct: float
    fee_in_r: float
    last_candle_ts: int
    timeframe_minutes: int
    spread_pct: Optional[float] = None
    top_book: Optional[float] = None
    volume_24h: Optional[float] = None


@dataclass(frozen=True)
class ClosedTrade:
    r: float
    pnl_pct: float
    exit_reason: ExitReason


@dataclass(frozen=True)
class GuardrailDecision:
    allow: bool
    reason: str = ""


@dataclass(frozen=True)
class GuardrailState:
    day_key: str
    daily_realized_r: float = 0.0
    daily_realized_pct: float = 0.0
    trades_today: int = 0
    consecutive_sl: int = 0
    cooldown_until_ms: int = 0
    # Streak length that armed the last cooldown; re-arming needs a longer streak.
    cooldown_streak: int = 0


def _bad(value: float) -> bool:
    return not math.isfinite(value)


class GuardrailEngine:
    """
    Stateful ledger; one instance per account (or symbol group), owned by
    the caller. All public methods take the same lock, so a single instance
    can be shared by concurrent symbol workers.
    """

    def __init__(self, settings: Optional[GuardrailSettings] = None, clock: Optional[Clock] = None):
        self.settings = settings or GuardrailSettings()
        self.clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._state = GuardrailState(day_key=self._today_key())

    def _today_key(self) -> str:
        tz = timezone(timedelta(hours=self.settings.utc_offset_hours))
        now = datetime.fromtimestamp(self.clock.now_ms() / 1000, tz=tz)
        return now.strftime("%Y-%m-%d")

    def _ensure_day(self) -> None:
        today = self._today_key()
        if self._state.day_key != today:
            logger.info("Guardrail day rollover %s -> %s", self._state.day_key, today)
            self._state = GuardrailState(day_key=today)

    def check(self, ctx: PreTradeContext) -> GuardrailDecision:
        """First failing check wins; order is fixed."""
        with self._lock:
            self._ensure_day()
            s = self.settings
            st = self._state
            now_ms = self.clock.now_ms()

            if st.cooldown_until_ms > now_ms:
                until = datetime.fromtimestamp(st.cooldown_until_ms / 1000, tz=timezone.utc)
                return self._deny(ctx, f"cooldown until {until.isoformat()}")
            if st.daily_realized_r <= -s.daily_max_loss_r:
                return self._deny(ctx, f"daily loss hit: {st.daily_realized_r:.2f}R")
            if st.daily_realized_pct <= -s.daily_max_loss_pct:
                return self._deny(ctx, f"daily loss hit: {st.daily_realized_pct:.2f}%")
            if st.trades_today >= s.max_trades_per_day:
                return self._deny(ctx, f"max trades/day hit: {st.trades_today}")

            if _bad(ctx.last_candle_ts) or _bad(ctx.timeframe_minutes) or ctx.timeframe_minutes <= 0:
                return self._deny(ctx, "stale candles")
            max_stale_ms = ctx.timeframe_minutes * 2 * 60_000
            if now_ms - ctx.last_candle_ts > max_stale_ms:
                return self._deny(ctx, "stale candles")

            if _bad(ctx.fee_in_r) or ctx.fee_in_r > s.max_fee_in_r:
                return self._deny(ctx, f"fee-in-R too high: {ctx.fee_in_r:.2f}R")
            if _bad(ctx.stop_pct) or ctx.stop_pct < s.min_stop_pct:
                return self._deny(ctx, f"stop too tight: {ctx.stop_pct:.2f}%")

            missing = self._check_microstructure(ctx)
            if missing is not None:
                return self._deny(ctx, missing)

            if st.consecutive_sl >= s.max_consecutive_sl and st.consecutive_sl > st.cooldown_streak:
                until_ms = now_ms + s.cooldown_minutes * 60_000
                self._state = replace(st, cooldown_until_ms=until_ms, cooldown_streak=st.consecutive_sl)
                logger.warning(
                    "%s: %d consecutive stop-losses, cooling down %d min",
                    ctx.symbol, st.consecutive_sl, s.cooldown_minutes,
                )
                return GuardrailDecision(False, "consecutive SL hit -> cooldown")

            return GuardrailDecision(True)

    def _check_microstructure(self, ctx: PreTradeContext) -> Optional[str]:
        s = self.settings
        if s.require_microstructure and None in (ctx.spread_pct, ctx.top_book, ctx.volume_24h):
            return "missing market data"
        if ctx.spread_pct is not None and (_bad(ctx.spread_pct) or ctx.spread_pct > s.max_spread_pct):
            return f"spread too wide: {ctx.spread_pct:.3f}%"
        if ctx.top_book is not None and (_bad(ctx.top_book) or ctx.top_book < s.min_top_book):
            return f"shallow orderbook: {ctx.top_book:,.0f}"
        if ctx.volume_24h is not None and (_bad(ctx.volume_24h) or ctx.volume_24h < s.min_volume_24h):
            return "low 24h volume"
        return None

    def _deny(self, ctx: PreTradeContext, reason: str) -> GuardrailDecision:
        logger.info("%s blocked by guardrail: %s", ctx.symbol, reason)
        return GuardrailDecision(False, reason)

    def on_trade_closed(self, trade: ClosedTrade) -> None:
        with self._lock:
            self._ensure_day()
            st = self._state
            consecutive = st.consecutive_sl
            armed = st.cooldown_streak
            if trade.exit_reason == ExitReason.STOP_LOSS:
                consecutive += 1
            elif trade.exit_reason == ExitReason.TAKE_PROFIT:
                consecutive = 0
                armed = 0
            self._state = replace(
                st,
                daily_realized_r=st.daily_realized_r + trade.r,
                daily_realized_pct=st.daily_realized_pct + trade.pnl_pct,
                trades_today=st.trades_today + 1,
                consecutive_sl=consecutive,
                cooldown_streak=armed,
            )

    def state(self) -> GuardrailState:
        """Snapshot of the current day's ledger."""
        with self._lock:
            self._ensure_day()
            return self._state

    def reset(self) -> None:
        with self._lock:
            self._state = GuardrailState(day_key=self._today_key())

    def stats(self) -> str:
        st = self.state()
        parts = [
            f"Day: {st.day_key}",
            f"Realized: {st.daily_realized_r:.2f}R / {st.daily_realized_pct:.2f}%",
            f"Trades: {st.trades_today}",
            f"Consecutive SL: {st.consecutive_sl}",
        ]
        if st.cooldown_until_ms > self.clock.now_ms():
            until = datetime.fromtimestamp(st.cooldown_until_ms / 1000, tz=timezone.utc)
            parts.append(f"Cooldown: {until.isoformat()}")
        return " | ".join(parts)
