"""
Risk manager: equity/drawdown layer. Fixed-ratio stop/target, daily loss
and trade-count caps, confidence floor, portfolio drawdown halt.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from spot_agent.core.clock import Clock, SystemClock
from spot_agent.core.types import Position, TradeDecision, TradeSide

logger = logging.getLogger("spot_agent.risk")

MIN_CONFIDENCE = 60.0


@dataclass(frozen=True)
class RiskLimits:
    """All ratios (0.02 = 2%)."""
    max_position_size_ratio: float = 0.2
    max_daily_loss_ratio: float = 0.03
    max_daily_trades: int = 10
    stop_loss_ratio: float = 0.02
    take_profit_ratio: float = 0.04
    max_drawdown_ratio: float = 0.1


@dataclass
class RiskResult:
    """Result of risk check: allowed or rejected + reason."""
    allowed: bool
    reason: str = ""


@dataclass(frozen=True)
class PositionRiskAction:
    action: str  # HOLD | CLOSE
    reason: str = ""

    @property
    def should_close(self) -> bool:
        return self.action == "CLOSE"


HOLD = PositionRiskAction("HOLD")


@dataclass(frozen=True)
class DailyStats:
    date: str
    trades: int = 0
    wins: int = 0
    losses: int = 0
    total_pnl: float = 0.0


@dataclass(frozen=True)
class TradeRecord:
    symbol: str
    pnl: float
    timestamp: int = 0


class RiskManager:
    """
    Tracks initial and peak equity. Daily stats roll over on the first call
    of a new calendar day (read from the injected clock).
    """

    def __init__(
        self,
        limits: RiskLimits,
        clock: Optional[Clock] = None,
        utc_offset_hours: float = 9.0,
    ):
        self.limits = limits
        self.clock = clock or SystemClock()
        self.utc_offset_hours = utc_offset_hours
        self._initial_equity = 0.0
        self._peak_equity = 0.0
        self._current_equity = 0.0
        self._history: List[TradeRecord] = []
        self._daily = DailyStats(date=self._today())

    def _today(self) -> str:
        tz = timezone(timedelta(hours=self.utc_offset_hours))
        return datetime.fromtimestamp(self.clock.now_ms() / 1000, tz=tz).strftime("%Y-%m-%d")

    def _ensure_day(self) -> None:
        today = self._today()
        if self._daily.date != today:
            self.reset_daily_stats()

    def set_initial_equity(self, equity: float) -> None:
        self._initial_equity = equity
        self._peak_equity = equity
        self._current_equity = equity

    def update_equity(self, equity: float) -> None:
        """Update current equity for drawdown check."""
        if not math.isfinite(equity):
            return
        self._current_equity = equity
        if equity > self._peak_equity:
            self._peak_equity = equity

    @property
    def drawdown_ratio(self) -> float:
        if self._peak_equity <= 0:
            return 0.0
        return max(0.0, (self._peak_equity - self._current_equity) / self._peak_equity)

    def can_open_position(self, decision: TradeDecision, balance: float) -> RiskResult:
        self._ensure_day()
        if self._daily_loss_reached(balance):
            logger.warning("Daily loss limit reached (balance %.2f)", balance)
            return RiskResult(False, "daily loss limit reached")
        if self._daily.trades >= self.limits.max_daily_trades:
            return RiskResult(False, "daily trade limit reached")
        if not decision.confidence >= MIN_CONFIDENCE:
            return RiskResult(False, f"low confidence: {decision.confidence:.0f}%")
        if not balance * self.limits.max_position_size_ratio > 0:
            return RiskResult(False, "insufficient balance")
        return RiskResult(True)

    def check_position_risk(self, position: Position, price: float) -> PositionRiskAction:
        """HOLD on invalid price; otherwise stop, target, then drawdown."""
        if not (math.isfinite(price) and price > 0) or position.entry_price <= 0:
            return HOLD
        direction = 1 if position.side == TradeSide.LONG else -1
        pnl_ratio = (price - position.entry_price) / position.entry_price * direction
        if pnl_ratio <= -self.limits.stop_loss_ratio:
            return PositionRiskAction("CLOSE", "STOP_LOSS")
        if pnl_ratio >= self.limits.take_profit_ratio:
            return PositionRiskAction("CLOSE", "TAKE_PROFIT")
        if self.drawdown_ratio >= self.limits.max_drawdown_ratio:
            logger.warning("Max drawdown exceeded: %.2f%%", self.drawdown_ratio * 100)
            return PositionRiskAction("CLOSE", "DRAWDOWN_LIMIT")
        return HOLD

    def calculate_position_size(self, balance: float, price: float) -> float:
        if price <= 0:
            return 0.0
        return balance * self.limits.max_position_size_ratio / price

    def calculate_stop_loss(self, entry_price: float, side: TradeSide = TradeSide.LONG) -> float:
        if side == TradeSide.LONG:
            return entry_price * (1 - self.limits.stop_loss_ratio)
        return entry_price * (1 + self.limits.stop_loss_ratio)

    def calculate_take_profit(self, entry_price: float, side: TradeSide = TradeSide.LONG) -> float:
        if side == TradeSide.LONG:
            return entry_price * (1 + self.limits.take_profit_ratio)
        return entry_price * (1 - self.limits.take_profit_ratio)

    def record_trade(self, symbol: str, pnl: Optional[float]) -> None:
        """Record a closed trade. pnl None counts the trade but not the result."""
        self._ensure_day()
        d = self._daily
        if pnl is None:
            self._daily = replace(d, trades=d.trades + 1)
            return
        self._history.append(TradeRecord(symbol, pnl, self.clock.now_ms()))
        self._daily = replace(
            d,
            trades=d.trades + 1,
            wins=d.wins + (1 if pnl > 0 else 0),
            losses=d.losses + (0 if pnl > 0 else 1),
            total_pnl=d.total_pnl + pnl,
        )

    def daily_stats(self) -> DailyStats:
        self._ensure_day()
        return self._daily

    @property
    def trade_history(self) -> List[TradeRecord]:
        return list(self._history)

    def reset_daily_stats(self) -> None:
        """New day: zero the counters, restart drawdown from the current equity."""
        self._daily = DailyStats(date=self._today())
        if self._current_equity > 0:
            self._initial_equity = self._current_equity
            self._peak_equity = self._current_equity

    def max_daily_loss(self) -> float:
        return self._initial_equity * self.limits.max_daily_loss_ratio

    def _daily_loss_reached(self, equity: float) -> bool:
        if self._initial_equity <= 0:
            return False
        loss_ratio = (self._initial_equity - equity) / self._initial_equity
        return loss_ratio >= self.limits.max_daily_loss_ratio
