"""Quantity rounding and numeric validation helpers."""

from __future__ import annotations
import math
from typing import Any, Optional

QTY_DECIMALS = 8


def round_quantity(qty: float, decimals: int = QTY_DECIMALS, min_qty: float = 0.0) -> float:
    """Round down to a fixed number of decimals; return 0 if below min_qty."""
    if not math.isfinite(qty) or qty <= 0:
        return 0.0
    step = 10 ** decimals
    rounded = math.floor(qty * step) / step
    if rounded <= 0 or rounded < min_qty:
        return 0.0
    return round(rounded, decimals)


def positive_or_none(value: Any) -> Optional[float]:
    """Return value as float if it is a finite positive number, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n) or n <= 0:
        return None
    return n


def is_finite(value: Any) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))
