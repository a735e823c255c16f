"""
Monte Carlo bootstrap: resample per-trade R-multiples with replacement to
estimate the distribution of expectancy.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

MIN_TRADES = 10
MIN_ITERATIONS = 1000


@dataclass(frozen=True)
class BootstrapCI:
    """
    Percentiles of bootstrapped mean R. computed=False is the "not enough
    trades" sentinel: percentiles are None and safe_for_live is False.
    """
    p5: Optional[float]
    p50: Optional[float]
    p95: Optional[float]
    safe_for_live: bool
    computed: bool
    iterations: int = 0
    sample_size: int = 0

    @classmethod
    def not_enough_trades(cls, sample_size: int) -> "BootstrapCI":
        return cls(None, None, None, safe_for_live=False, computed=False, sample_size=sample_size)


def bootstrap_expectancy_ci(
    r_multiples: Sequence[float],
    iterations: int = MIN_ITERATIONS,
    seed: Optional[int] = None,
) -> BootstrapCI:
    """
    Mean of each resample, sorted; percentile p is element floor(iterations * p).
    safe_for_live only when the 5th percentile is above zero.
    """
    if iterations < MIN_ITERATIONS:
        raise ValueError(f"iterations must be >= {MIN_ITERATIONS}, got {iterations}")
    arr = np.asarray(r_multiples, dtype=float)
    n = len(arr)
    if n < MIN_TRADES:
        return BootstrapCI.not_enough_trades(n)

    rng = np.random.default_rng(seed)
    idx = rng.integers(0, n, size=(iterations, n))
    means = np.sort(arr[idx].mean(axis=1))

    p5 = float(means[int(iterations * 0.05)])
    p50 = float(means[int(iterations * 0.50)])
    p95 = float(means[int(iterations * 0.95)])
    return BootstrapCI(
        p5=p5,
        p50=p50,
        p95=p95,
        safe_for_live=p5 > 0,
        computed=True,
        iterations=iterations,
        sample_size=n,
    )
