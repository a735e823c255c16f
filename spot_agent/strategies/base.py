"""Provider contracts the engine calls, plus helpers shared by implementations."""

from __future__ import annotations
from typing import Dict, Optional, Protocol, Sequence

from spot_agent.core.types import Candle, ExitDecision, Position, TradeDecision, VolatilitySignal


class DecisionProvider(Protocol):
    """Entry rule set. Called with the trailing window ending at the current bar."""

    def decide(
        self,
        candles: Sequence[Candle],
        signal: Optional[VolatilitySignal],
        position: Optional[Position],
    ) -> TradeDecision:
        ...


class ExitProvider(Protocol):
    """Discretionary exit rule, checked after the hard stop and target."""

    def check_exit(self, candles: Sequence[Candle], position: Position) -> ExitDecision:
        ...


def timestamp_index(candles: Sequence[Candle]) -> Dict[int, int]:
    """Map candle timestamp -> position in the full series."""
    return {c.timestamp: i for i, c in enumerate(candles)}
