"""
Core data types: candles, volatility signals, positions, plans, and trades.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class TradeSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class SignalType(str, Enum):
    ATR_SPIKE = "ATR_SPIKE"
    PRICE_SURGE = "PRICE_SURGE"
    VOLUME_SPIKE = "VOLUME_SPIKE"


class Direction(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"


class ExitReason(str, Enum):
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    SIGNAL = "SIGNAL"
    END = "END"


@dataclass(frozen=True)
class Candle:
    """OHLCV candle. timestamp is epoch milliseconds."""
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0


@dataclass(frozen=True)
class VolatilitySignal:
    """Strongest volatility event detected on a bar."""
    type: SignalType
    value: float
    threshold: float
    direction: Direction
    timestamp: int
    atr_percent: float = 0.0


@dataclass
class Position:
    """
    Open long position. stop_loss only ever moves up; initial_stop_loss keeps
    the stop at entry time so the initial risk stays known after break-even.
    """
    symbol: str
    side: TradeSide
    entry_price: float
    quantity: float
    stop_loss: float
    target_price: float
    initial_stop_loss: float
    entry_index: int = 0
    timestamp: int = 0
    break_even_armed: bool = False

    @property
    def initial_risk(self) -> float:
        """Per-unit price distance between entry and the original stop."""
        return self.entry_price - self.initial_stop_loss

    @property
    def notional(self) -> float:
        return self.entry_price * self.quantity

    def raise_stop(self, new_stop: float) -> bool:
        """Ratchet the stop upward. Returns True if it moved."""
        if new_stop > self.stop_loss:
            self.stop_loss = new_stop
            return True
        return False

    def arm_break_even(self, price: float, trigger_r: float) -> bool:
        """
        Move the stop to entry once price has moved trigger_r x initial risk
        in our favour. Once armed it stays armed.
        """
        if self.break_even_armed or trigger_r <= 0 or self.initial_risk <= 0:
            return False
        if price - self.entry_price >= trigger_r * self.initial_risk:
            self.raise_stop(self.entry_price)
            self.break_even_armed = True
            return True
        return False


@dataclass(frozen=True)
class PortfolioState:
    """Account snapshot handed to the planner."""
    total_equity: float
    cash: float
    positions: Tuple[Position, ...] = ()
    realized_pnl_pct_today: float = 0.0

    def position_for(self, symbol: str) -> Optional[Position]:
        for pos in self.positions:
            if pos.symbol == symbol:
                return pos
        return None


@dataclass(frozen=True)
class TradeDecision:
    """Output of a decision provider. confidence is 0..100."""
    should_trade: bool
    side: Optional[TradeSide] = None
    confidence: float = 0.0
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    target_price: Optional[float] = None
    reasoning: str = ""

    @classmethod
    def skip(cls, reasoning: str) -> "TradeDecision":
        return cls(should_trade=False, confidence=0.0, reasoning=reasoning)


@dataclass(frozen=True)
class ExitDecision:
    """Output of an exit provider."""
    should_exit: bool
    exit_price: Optional[float] = None
    reasoning: str = ""


@dataclass(frozen=True)
class RiskSummary:
    applied_risk_pct: float
    risk_amount: float
    symbol_exposure_before: float
    symbol_exposure_after: float
    total_exposure_before: float
    total_exposure_after: float
    risk_scale: float = 1.0


@dataclass(frozen=True)
class OrderPlan:
    """Executable order or a rejection with reason. Never mutated."""
    should_execute: bool
    symbol: str
    reason: str
    side: Optional[TradeSide] = None
    quantity: Optional[float] = None
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    target_price: Optional[float] = None
    notional: Optional[float] = None
    risk_summary: Optional[RiskSummary] = None

    @classmethod
    def reject(cls, symbol: str, reason: str) -> "OrderPlan":
        return cls(should_execute=False, symbol=symbol, reason=reason)


@dataclass(frozen=True)
class BacktestTrade:
    """Closed simulated trade. pnl and pnl_percent include both fees."""
    entry_index: int
    exit_index: int
    side: TradeSide
    entry_price: float
    exit_price: float
    quantity: float
    pnl: float
    pnl_percent: float
    exit_reason: ExitReason
    initial_stop_loss: float = 0.0
    fees: float = 0.0
    metadata: dict = field(default_factory=dict)
