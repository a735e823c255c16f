"""Timeframe string to minutes / milliseconds conversion."""

from __future__ import annotations
from typing import Union


def timeframe_minutes(tf: Union[str, int]) -> int:
    """
    Convert a timeframe ('1m', '15m', '1h', '4h', '1d', or a bare minute
    count such as 60 or '240') to minutes.
    """
    if isinstance(tf, int):
        if tf <= 0:
            raise ValueError(f"Unsupported timeframe: {tf}")
        return tf
    tf = tf.strip().lower()
    if tf.isdigit() and int(tf) > 0:
        return int(tf)
    if tf.endswith("m") and tf[:-1].isdigit():
        return int(tf[:-1])
    if tf.endswith("h") and tf[:-1].isdigit():
        return int(tf[:-1]) * 60
    if tf.endswith("d") and tf[:-1].isdigit():
        return int(tf[:-1]) * 60 * 24
    raise ValueError(f"Unsupported timeframe: {tf}")


def timeframe_ms(tf: Union[str, int]) -> int:
    """Timeframe length in milliseconds."""
    return timeframe_minutes(tf) * 60_000
