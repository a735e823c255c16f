"""Unit tests for backtesting.walk_forward."""

import numpy as np
import pytest
from spot_agent.backtesting.engine import BacktestConfig, BacktestResult
from spot_agent.backtesting.walk_forward import (
    Fold,
    ParameterSet,
    SignalFilteredProvider,
    WalkForwardValidator,
    composite_score,
    parameter_grid,
    rank_score,
    score_consistency,
    segment_report,
    split_folds,
    threshold_grid,
)
from spot_agent.core.types import (
    BacktestTrade,
    Direction,
    ExitReason,
    SignalType,
    TradeDecision,
    TradeSide,
    VolatilitySignal,
)
from spot_agent.indicators.series import atr_series
from spot_agent.planner.order_planner import RiskPolicy
from spot_agent.signals.detector import VolatilityThresholds


def _trade(pnl, entry_index=0):
    return BacktestTrade(
        entry_index=entry_index,
        exit_index=entry_index + 1,
        side=TradeSide.LONG,
        entry_price=100.0,
        exit_price=100.0 + pnl,
        quantity=1.0,
        pnl=pnl,
        pnl_percent=pnl,
        exit_reason=ExitReason.SIGNAL,
        initial_stop_loss=98.0,
    )


def _result(pnls, max_dd=0.0, capital=100.0):
    return BacktestResult(
        initial_capital=capital,
        final_equity=capital + sum(pnls),
        trades=[_trade(p) for p in pnls],
        max_drawdown_pct=max_dd,
    )


def test_split_folds_last_takes_remainder():
    folds = split_folds(10, 3)
    assert folds == [Fold(0, 3), Fold(3, 6), Fold(6, 10)]
    assert sum(len(f) for f in folds) == 10


def test_split_folds_invalid():
    with pytest.raises(ValueError):
        split_folds(10, 0)
    with pytest.raises(ValueError):
        split_folds(2, 3)


def test_composite_score():
    assert composite_score(_result([1.0])) == -5.0
    # +5% pnl, 2% dd, 4 trades
    score = composite_score(_result([2.0, 2.0, 0.5, 0.5], max_dd=2.0))
    assert score == pytest.approx(0.5 * 0.7 - 0.2 * 0.2 + 0.1 * 4 / 20)
    # pnl and drawdown are clipped at 10
    clipped = composite_score(_result([50.0, 50.0], max_dd=40.0))
    assert clipped == pytest.approx(0.7 - 0.2 + 0.1 * 2 / 20)


def test_score_consistency():
    mean, consistency = score_consistency([1.0, 1.0, 1.0])
    assert mean == pytest.approx(1.0)
    assert consistency == pytest.approx(1.0)
    mean, consistency = score_consistency([0.5, 1.5])
    assert consistency == pytest.approx(0.5)
    _, near_zero = score_consistency([0.0005, -0.0005])
    assert near_zero == 0.5
    assert rank_score(1.0, 0.5) == pytest.approx(0.9)


def test_grids():
    thresholds = threshold_grid([0.6, 0.8], [0.003], [1.2, 1.5])
    assert len(thresholds) == 4
    grid = parameter_grid(thresholds, {"rr": [2.0, 3.0], "be_trigger_r": [0.0, 0.25]}, cap=3)
    assert len(grid) == 12
    assert grid[0].params == {"rr": 2.0, "be_trigger_r": 0.0}
    assert "atr=0.6" in grid[0].label()
    assert len(parameter_grid(thresholds)) == 4


class _Recorder:
    def __init__(self):
        self.seen = []

    def decide(self, candles, signal, position):
        self.seen.append(signal)
        return TradeDecision.skip("recorded")


def _signal(kind):
    return VolatilitySignal(type=kind, value=3.0, threshold=1.5, direction=Direction.UP, timestamp=0)


def test_signal_filtered_provider_drops_disallowed_types():
    base = _Recorder()
    provider = SignalFilteredProvider(base, gate_on_signal=True, allowed_types=[SignalType.PRICE_SURGE])
    provider.decide([], _signal(SignalType.VOLUME_SPIKE), None)
    provider.decide([], _signal(SignalType.PRICE_SURGE), None)
    assert len(base.seen) == 1
    assert base.seen[0].type == SignalType.PRICE_SURGE
    assert provider.reason_counts["no volatility signal"] == 1
    assert provider.reason_counts["recorded"] == 1


class _EveryNth:
    """Enters every n-th bar with a tight target so trades close quickly."""

    def __init__(self, n):
        self.n = n

    def decide(self, candles, signal, position):
        last = candles[-1]
        if (last.timestamp // 3_600_000) % self.n:
            return TradeDecision.skip("off beat")
        return TradeDecision(
            should_trade=True,
            side=TradeSide.LONG,
            confidence=100.0,
            entry_price=last.close,
            stop_loss=last.close * 0.98,
            target_price=last.close * 1.01,
        )


def _zigzag(make_candles, n=300):
    closes = [100.0 + (3.0 if (i // 5) % 2 else 0.0) + i * 0.01 for i in range(n)]
    return make_candles(closes, spread=0.2)


def test_validator_ranks_and_reruns(make_candles):
    candles = _zigzag(make_candles)
    thresholds = VolatilityThresholds(1.5, 0.015, 2.0)
    grid = [ParameterSet(thresholds, {"n": n}) for n in (3, 7, 50)]
    cfg = BacktestConfig(gate_on_signal=False)
    validator = WalkForwardValidator(cfg, RiskPolicy(), fold_count=3, top_n=2, seed=7)
    report = validator.validate(candles, grid, lambda p: (_EveryNth(p.params["n"]), None))

    assert len(report.folds) == 3
    assert len(report.candidates) == 3
    ranks = [c.rank_score for c in report.candidates]
    assert ranks == sorted(ranks, reverse=True)
    assert all(len(c.fold_scores) == 3 for c in report.candidates)
    assert len(report.full_runs) == 2
    pnls = [r.result.total_pnl_percent for r in report.full_runs]
    assert pnls == sorted(pnls, reverse=True)
    for run in report.full_runs:
        assert run.r_analysis.total == run.result.total_trades
        if run.bootstrap.computed:
            assert run.bootstrap.p5 <= run.bootstrap.p50 <= run.bootstrap.p95


def test_validator_rejects_bad_arguments():
    with pytest.raises(ValueError):
        WalkForwardValidator(BacktestConfig(), RiskPolicy(), fold_count=0)
    with pytest.raises(ValueError):
        WalkForwardValidator(BacktestConfig(), RiskPolicy(), bootstrap_iterations=10)


def test_be_trigger_param_overrides_config():
    validator = WalkForwardValidator(BacktestConfig(be_trigger_r=0.0), RiskPolicy())
    engine = validator._engine(ParameterSet(VolatilityThresholds(1.5, 0.015, 2.0), {"be_trigger_r": 0.25}))
    assert engine.config.be_trigger_r == 0.25


def test_segment_report_buckets_trades_by_time(make_candles):
    candles = make_candles([100.0] * 90)
    trades = [_trade(4.0, 5), _trade(-2.0, 40), _trade(4.0, 80)]
    report = segment_report(trades, candles, fee_rate=0.0005, segments=3, seed=1)
    assert [s.trades for s in report.segments] == [1, 1, 1]
    assert report.combined.trades == 3
    assert report.combined.name == "ALL"
    assert report.bootstrap.computed is False
    assert report.segments[0].start_date == "1970-01-01"
    with pytest.raises(ValueError):
        segment_report(trades, candles, fee_rate=0.0005, segments=0)


def test_segment_vol_averages_only_bars_with_atr(make_candles):
    # First ten bars have zero range, so ATR is zero there
    candles = make_candles([100.0] * 10) + make_candles([100.0] * 30, spread=1.0, start_ts=10 * 3_600_000)
    atr = atr_series(candles, 14)
    expected = float(np.mean(atr[atr > 0] / 100.0)) * 100
    report = segment_report([], candles, fee_rate=0.0005, segments=1)
    assert expected > 0
    assert report.combined.vol_pct == pytest.approx(expected)
    assert report.segments[0].vol_pct == pytest.approx(expected)
