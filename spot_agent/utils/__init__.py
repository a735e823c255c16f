"""Utils: timeframes, rounding, DataFrame conversion."""

from spot_agent.utils.timeframes import timeframe_minutes, timeframe_ms
from spot_agent.utils.rounding import round_quantity, positive_or_none
from spot_agent.utils.frames import candles_from_frame, candles_to_frame

__all__ = [
    "timeframe_minutes",
    "timeframe_ms",
    "round_quantity",
    "positive_or_none",
    "candles_from_frame",
    "candles_to_frame",
]
