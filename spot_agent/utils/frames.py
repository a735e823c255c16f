"""
Conversion between OHLCV DataFrames and Candle sequences.
Accepts a 'timestamp' column (epoch ms) or a 'time' column (datetime-like).
"""

from __future__ import annotations
from typing import List, Sequence

import pandas as pd

from spot_agent.core.types import Candle

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


def candles_from_frame(df: pd.DataFrame) -> List[Candle]:
    """Build time-ordered candles from an OHLCV DataFrame."""
    missing = [c for c in OHLCV_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"DataFrame missing columns: {missing}")
    if "timestamp" in df.columns:
        ts = df["timestamp"].astype("int64")
    elif "time" in df.columns:
        times = pd.to_datetime(df["time"], utc=True)
        ts = (times - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)
    else:
        raise ValueError("DataFrame needs a 'timestamp' or 'time' column")
    frame = df[OHLCV_COLUMNS].astype(float).assign(timestamp=ts.values)
    frame = frame.sort_values("timestamp", kind="stable")
    return [
        Candle(int(r.timestamp), r.open, r.high, r.low, r.close, r.volume)
        for r in frame.itertuples(index=False)
    ]


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """Candles -> DataFrame with timestamp, time (UTC) and OHLCV columns."""
    df = pd.DataFrame(
        [(c.timestamp, c.open, c.high, c.low, c.close, c.volume) for c in candles],
        columns=["timestamp"] + OHLCV_COLUMNS,
    )
    df["time"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df
