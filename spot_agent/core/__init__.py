"""Core: types, clock, logging. Config lives in spot_agent.core.config."""

from spot_agent.core.types import (
    Candle,
    VolatilitySignal,
    Position,
    PortfolioState,
    TradeDecision,
    ExitDecision,
    OrderPlan,
    RiskSummary,
    BacktestTrade,
    TradeSide,
    SignalType,
    Direction,
    ExitReason,
)
from spot_agent.core.clock import Clock, SystemClock, ManualClock
from spot_agent.core.logger import setup_logging

__all__ = [
    "Candle",
    "VolatilitySignal",
    "Position",
    "PortfolioState",
    "TradeDecision",
    "ExitDecision",
    "OrderPlan",
    "RiskSummary",
    "BacktestTrade",
    "TradeSide",
    "SignalType",
    "Direction",
    "ExitReason",
    "Clock",
    "SystemClock",
    "ManualClock",
    "setup_logging",
]
