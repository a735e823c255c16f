"""Shared fixtures: candle builders and a controllable clock."""

from datetime import datetime, timezone

import pytest
from spot_agent.core.clock import ManualClock
from spot_agent.core.types import Candle

HOUR_MS = 3_600_000


def build_candles(closes, volume=1000.0, spread=0.0, start_ts=0, step_ms=HOUR_MS):
    """Candles with open = previous close, high/low = max/min +- spread."""
    out = []
    prev = closes[0]
    for i, close in enumerate(closes):
        vol = volume[i] if isinstance(volume, (list, tuple)) else volume
        out.append(Candle(
            timestamp=start_ts + i * step_ms,
            open=prev,
            high=max(prev, close) + spread,
            low=min(prev, close) - spread,
            close=close,
            volume=vol,
        ))
        prev = close
    return out


@pytest.fixture
def make_candles():
    return build_candles


@pytest.fixture
def clock():
    # 2024-03-01 12:00 KST
    return ManualClock.at(datetime(2024, 3, 1, 3, 0, tzinfo=timezone.utc))
