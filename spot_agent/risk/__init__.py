"""Risk management: equity/drawdown limits and the pre-trade guardrail gate."""

from spot_agent.risk.manager import RiskManager, RiskLimits, RiskResult, PositionRiskAction, DailyStats
from spot_agent.risk.guardrails import (
    GuardrailEngine,
    GuardrailSettings,
    GuardrailDecision,
    GuardrailState,
    PreTradeContext,
    ClosedTrade,
)

__all__ = [
    "RiskManager",
    "RiskLimits",
    "RiskResult",
    "PositionRiskAction",
    "DailyStats",
    "GuardrailEngine",
    "GuardrailSettings",
    "GuardrailDecision",
    "GuardrailState",
    "PreTradeContext",
    "ClosedTrade",
]
