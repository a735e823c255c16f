"""Strategies: provider contracts and the pluggable rule sets."""

from spot_agent.strategies.base import DecisionProvider, ExitProvider, timestamp_index
from spot_agent.strategies.breakout import BreakoutStrategy
from spot_agent.strategies.knn_ribbon_rsi import KnnRibbonRsiStrategy

__all__ = [
    "DecisionProvider",
    "ExitProvider",
    "timestamp_index",
    "BreakoutStrategy",
    "KnnRibbonRsiStrategy",
]
