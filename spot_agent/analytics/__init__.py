"""Analytics: performance metrics, R-multiples, bootstrap confidence intervals."""

from spot_agent.analytics.metrics import (
    PerformanceMetrics,
    RMultipleAnalysis,
    compute_metrics,
    sharpe_ratio,
    sortino_ratio,
    max_drawdown,
    equity_returns,
    win_rate,
    profit_factor,
    expectancy,
    trade_r_multiple,
    r_multiple_analysis,
)
from spot_agent.analytics.monte_carlo import BootstrapCI, bootstrap_expectancy_ci

__all__ = [
    "PerformanceMetrics",
    "RMultipleAnalysis",
    "compute_metrics",
    "sharpe_ratio",
    "sortino_ratio",
    "max_drawdown",
    "equity_returns",
    "win_rate",
    "profit_factor",
    "expectancy",
    "trade_r_multiple",
    "r_multiple_analysis",
    "BootstrapCI",
    "bootstrap_expectancy_ci",
]
