"""Backtesting: bar-by-bar simulation and walk-forward validation."""

from spot_agent.backtesting.engine import BacktestConfig, BacktestResult, DebugStats, SimulationEngine
from spot_agent.backtesting.walk_forward import (
    CandidateScore,
    Fold,
    FullRun,
    ParameterSet,
    SegmentReport,
    SignalFilteredProvider,
    ValidationReport,
    WalkForwardValidator,
    composite_score,
    parameter_grid,
    score_consistency,
    segment_report,
    split_folds,
    threshold_grid,
)

__all__ = [
    "BacktestConfig",
    "BacktestResult",
    "DebugStats",
    "SimulationEngine",
    "CandidateScore",
    "Fold",
    "FullRun",
    "ParameterSet",
    "SegmentReport",
    "SignalFilteredProvider",
    "ValidationReport",
    "WalkForwardValidator",
    "composite_score",
    "parameter_grid",
    "score_consistency",
    "segment_report",
    "split_folds",
    "threshold_grid",
]
