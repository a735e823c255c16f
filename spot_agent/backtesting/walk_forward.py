"""
Walk-forward validation: split history into contiguous folds, score every
point of a parameter grid on each fold independently, rank by mean score and
consistency, then re-run the leaders on the full series with R-multiple and
bootstrap analysis.
"""

from __future__ import annotations
import bisect
import itertools
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

import numpy as np

from spot_agent.analytics.metrics import RMultipleAnalysis, r_multiple_analysis
from spot_agent.analytics.monte_carlo import BootstrapCI, bootstrap_expectancy_ci
from spot_agent.backtesting.engine import BacktestConfig, BacktestResult, SimulationEngine
from spot_agent.core.types import (
    BacktestTrade,
    Candle,
    Position,
    SignalType,
    TradeDecision,
    VolatilitySignal,
)
from spot_agent.indicators.series import atr_series, ema_series
from spot_agent.planner.order_planner import RiskPolicy
from spot_agent.signals.detector import VolatilityThresholds
from spot_agent.strategies.base import DecisionProvider, ExitProvider

logger = logging.getLogger("spot_agent.validation")

MIN_SCORED_TRADES = 2
LOW_TRADE_SCORE = -5.0


@dataclass(frozen=True)
class Fold:
    """Contiguous index range [start, end)."""
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start


def split_folds(n_bars: int, fold_count: int) -> List[Fold]:
    """Equal-size contiguous folds; the last one absorbs the remainder."""
    if fold_count < 1:
        raise ValueError(f"fold_count must be >= 1, got {fold_count}")
    if n_bars < fold_count:
        raise ValueError(f"cannot split {n_bars} bars into {fold_count} folds")
    size = n_bars // fold_count
    return [
        Fold(i * size, n_bars if i == fold_count - 1 else (i + 1) * size)
        for i in range(fold_count)
    ]


def composite_score(result: BacktestResult) -> float:
    """0.7 x clipped PnL% - 0.2 x clipped drawdown + 0.1 x trade-count bonus."""
    if result.total_trades < MIN_SCORED_TRADES:
        return LOW_TRADE_SCORE
    pnl = max(min(result.total_pnl_percent, 10.0), -10.0) / 10.0
    dd = min(result.max_drawdown_pct, 10.0) / 10.0
    bonus = min(result.total_trades, 20) / 20.0
    return pnl * 0.7 - dd * 0.2 + bonus * 0.1


def score_consistency(scores: Sequence[float]) -> Tuple[float, float]:
    """(mean, consistency); consistency = 1 - min(std/|mean|, 1), 0.5 near zero mean."""
    arr = np.asarray(scores, dtype=float)
    if len(arr) == 0:
        return 0.0, 0.0
    mean = float(arr.mean())
    std = float(arr.std())
    if abs(mean) > 0.001:
        return mean, 1.0 - min(std / abs(mean), 1.0)
    return mean, 0.5


def rank_score(avg_score: float, consistency: float) -> float:
    return avg_score * 0.8 + consistency * 0.2


@dataclass
class ParameterSet:
    """One grid point: detector thresholds plus free-form strategy parameters."""
    thresholds: VolatilityThresholds
    params: Dict[str, Any] = field(default_factory=dict)

    def label(self) -> str:
        t = self.thresholds
        extra = ", ".join(f"{k}={v}" for k, v in sorted(self.params.items()))
        base = f"atr={t.atr_multiplier} surge={t.price_surge_pct} vol={t.volume_spike_multiplier}"
        return f"{base} {extra}".strip()


def threshold_grid(
    atr_multipliers: Iterable[float],
    price_surge_pcts: Iterable[float],
    volume_spike_multipliers: Iterable[float],
) -> List[VolatilityThresholds]:
    return [
        VolatilityThresholds(a, p, v)
        for a, p, v in itertools.product(atr_multipliers, price_surge_pcts, volume_spike_multipliers)
    ]


def parameter_grid(
    thresholds: Sequence[VolatilityThresholds],
    strategy_grid: Optional[Mapping[str, Sequence[Any]]] = None,
    cap: Optional[int] = None,
) -> List[ParameterSet]:
    """Cartesian product of thresholds and strategy values, truncated at `cap` strategy combos."""
    if not strategy_grid:
        combos: List[Dict[str, Any]] = [{}]
    else:
        keys = list(strategy_grid)
        combos = [dict(zip(keys, values)) for values in itertools.product(*(strategy_grid[k] for k in keys))]
        if cap is not None:
            combos = combos[:cap]
    return [ParameterSet(t, dict(c)) for t in thresholds for c in combos]


ProviderFactory = Callable[[ParameterSet], Tuple[DecisionProvider, Optional[ExitProvider]]]


class SignalFilteredProvider:
    """
    Wraps a decision provider for optimisation runs. Signals whose type is
    not in allowed_types are dropped; with gate_on_signal the wrapped provider
    is skipped entirely when no allowed signal is present. Skip reasons are
    counted.
    """

    def __init__(
        self,
        base: DecisionProvider,
        gate_on_signal: bool = False,
        allowed_types: Optional[Iterable[SignalType]] = None,
    ):
        self.base = base
        self.gate_on_signal = gate_on_signal
        self.allowed_types = frozenset(SignalType(t) for t in allowed_types) if allowed_types else None
        self.reason_counts: Counter = Counter()

    def decide(
        self,
        candles: Sequence[Candle],
        signal: Optional[VolatilitySignal],
        position: Optional[Position],
    ) -> TradeDecision:
        if signal is not None and self.allowed_types is not None and signal.type not in self.allowed_types:
            signal = None
        if self.gate_on_signal and signal is None:
            self.reason_counts["no volatility signal"] += 1
            return TradeDecision.skip("no volatility signal")
        decision = self.base.decide(candles, signal, position)
        if not decision.should_trade:
            self.reason_counts[decision.reasoning or "no trade"] += 1
        return decision


@dataclass
class CandidateScore:
    params: ParameterSet
    fold_scores: List[float]
    avg_score: float
    consistency: float

    @property
    def rank_score(self) -> float:
        return rank_score(self.avg_score, self.consistency)


@dataclass
class FullRun:
    params: ParameterSet
    result: BacktestResult
    r_analysis: RMultipleAnalysis
    bootstrap: BootstrapCI

    @property
    def viable(self) -> bool:
        return self.result.total_trades >= 5 and self.result.total_pnl_percent > 0


@dataclass
class ValidationReport:
    folds: List[Fold]
    candidates: List[CandidateScore]
    full_runs: List[FullRun]

    @property
    def best(self) -> Optional[FullRun]:
        """Highest-PnL full run with at least 5 trades and positive PnL."""
        for run in self.full_runs:
            if run.viable:
                return run
        return None


class WalkForwardValidator:
    """k-fold scoring of a parameter grid followed by full-series validation of the top N."""

    def __init__(
        self,
        config: BacktestConfig,
        policy: RiskPolicy,
        fold_count: int = 3,
        top_n: int = 50,
        slippage_pct: float = 0.0,
        fallback_stop_pct: float = 0.5,
        bootstrap_iterations: int = 1000,
        seed: Optional[int] = None,
    ):
        if fold_count < 1:
            raise ValueError(f"fold_count must be >= 1, got {fold_count}")
        if bootstrap_iterations < 1000:
            raise ValueError("bootstrap_iterations must be >= 1000")
        self.config = config
        self.policy = policy
        self.fold_count = fold_count
        self.top_n = top_n
        self.slippage_pct = slippage_pct
        self.fallback_stop_pct = fallback_stop_pct
        self.bootstrap_iterations = bootstrap_iterations
        self.seed = seed

    def _engine(self, params: ParameterSet) -> SimulationEngine:
        cfg = self.config
        if "be_trigger_r" in params.params:
            cfg = replace(cfg, be_trigger_r=float(params.params["be_trigger_r"]))
        return SimulationEngine(cfg, self.policy, params.thresholds)

    def score_candidate(
        self,
        candles: Sequence[Candle],
        folds: Sequence[Fold],
        params: ParameterSet,
        factory: ProviderFactory,
    ) -> CandidateScore:
        engine = self._engine(params)
        decision_provider, exit_provider = factory(params)
        scores = [
            composite_score(engine.run_range(candles, f.start, f.end, decision_provider, exit_provider))
            for f in folds
        ]
        avg, consistency = score_consistency(scores)
        return CandidateScore(params, scores, avg, consistency)

    def full_run(self, candles: Sequence[Candle], params: ParameterSet, factory: ProviderFactory) -> FullRun:
        decision_provider, exit_provider = factory(params)
        result = self._engine(params).run(candles, decision_provider, exit_provider)
        analysis = r_multiple_analysis(
            result.trades,
            fee_rate=self.config.fee_rate,
            slippage_pct=self.slippage_pct,
            fallback_stop_pct=self.fallback_stop_pct,
        )
        ci = bootstrap_expectancy_ci(analysis.r_multiples, self.bootstrap_iterations, seed=self.seed)
        return FullRun(params, result, analysis, ci)

    def validate(
        self,
        candles: Sequence[Candle],
        grid: Sequence[ParameterSet],
        factory: ProviderFactory,
    ) -> ValidationReport:
        folds = split_folds(len(candles), self.fold_count)
        logger.info(
            "Phase 1: %d candidates x %d folds over %d bars", len(grid), len(folds), len(candles)
        )
        candidates = [self.score_candidate(candles, folds, p, factory) for p in grid]
        # sorted() is stable, so equal rank scores keep grid order.
        candidates = sorted(candidates, key=lambda c: c.rank_score, reverse=True)

        top = candidates[: self.top_n]
        logger.info("Phase 2: full-series validation of top %d", len(top))
        runs = [self.full_run(candles, c.params, factory) for c in top]
        runs.sort(key=lambda r: r.result.total_pnl_percent, reverse=True)

        report = ValidationReport(folds=list(folds), candidates=candidates, full_runs=runs)
        best = report.best
        if best is None:
            logger.info("No viable configuration (need >= 5 trades and positive PnL)")
        else:
            logger.info(
                "Best: %s | trades=%d pnl=%.2f%% dd=%.2f%% safe_for_live=%s",
                best.params.label(), best.result.total_trades, best.result.total_pnl_percent,
                best.result.max_drawdown_pct, best.bootstrap.safe_for_live,
            )
        return report


@dataclass
class SegmentStats:
    name: str
    start_index: int
    end_index: int
    start_date: str
    end_date: str
    trades: int
    win_rate: float
    avg_win_r: float
    avg_loss_r: float
    be_rate: float
    expectancy: float
    trend_pct: float
    vol_pct: float
    range_ratio: float


@dataclass
class SegmentReport:
    segments: List[SegmentStats]
    combined: SegmentStats
    bootstrap: BootstrapCI


def _date(ts_ms: float) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def _regime(candles: Sequence[Candle], ema200: np.ndarray, atr: np.ndarray, start: int, end: int) -> Tuple[float, float, float]:
    """(trend %, vol %, range ratio %) for candles[start:end]."""
    if end <= start:
        return 0.0, 0.0, 0.0
    closes = np.array([c.close for c in candles[start:end]])
    ema = ema200[start:end]
    a = atr[start:end]
    has_ema = ema > 0
    count = int(has_ema.sum())
    trend = (float((closes[has_ema] / ema[has_ema]).sum()) / count - 1) * 100 if count else 0.0
    has_vol = (closes > 0) & (a > 0)
    vol_count = int(has_vol.sum())
    vol = float((a[has_vol] / closes[has_vol]).sum()) / vol_count * 100 if vol_count else 0.0
    highs = max(c.high for c in candles[start:end])
    lows = min(c.low for c in candles[start:end])
    avg_close = float(closes.mean())
    range_ratio = (highs - lows) / avg_close * 100 if avg_close > 0 else 0.0
    return trend, vol, range_ratio


def segment_report(
    trades: Sequence[BacktestTrade],
    candles: Sequence[Candle],
    fee_rate: float,
    segments: int = 3,
    slippage_pct: float = 0.0,
    fallback_stop_pct: float = 0.5,
    bootstrap_iterations: int = 1000,
    seed: Optional[int] = None,
) -> SegmentReport:
    """
    Split the candle span into equal time segments and analyse the trades
    entered in each, plus the combined set with its bootstrap CI.
    """
    if segments < 1:
        raise ValueError(f"segments must be >= 1, got {segments}")
    if not candles:
        raise ValueError("segment_report needs at least one candle")
    closes = [c.close for c in candles]
    ema200 = ema_series(closes, 200)
    atr = atr_series(candles, 14)
    stamps = [c.timestamp for c in candles]
    start_ts, end_ts = stamps[0], stamps[-1]
    span = (end_ts - start_ts) / segments

    def stats(name, seg_trades, s_idx, e_idx, s_ts, e_ts) -> Tuple[SegmentStats, RMultipleAnalysis]:
        a = r_multiple_analysis(seg_trades, fee_rate, slippage_pct, fallback_stop_pct)
        trend, vol, rng = _regime(candles, ema200, atr, s_idx, e_idx)
        n = len(seg_trades)
        return SegmentStats(
            name=name,
            start_index=s_idx,
            end_index=e_idx,
            start_date=_date(s_ts),
            end_date=_date(e_ts),
            trades=n,
            win_rate=a.win_count / n * 100 if n else 0.0,
            avg_win_r=a.avg_win_r,
            avg_loss_r=a.avg_loss_r,
            be_rate=a.be_rate,
            expectancy=a.expectancy,
            trend_pct=trend,
            vol_pct=vol,
            range_ratio=rng,
        ), a

    out: List[SegmentStats] = []
    for k in range(segments):
        seg_start = start_ts + k * span
        seg_end = end_ts + 1 if k == segments - 1 else start_ts + (k + 1) * span
        s_idx = bisect.bisect_left(stamps, seg_start)
        e_idx = bisect.bisect_left(stamps, seg_end)
        seg_trades = [t for t in trades if seg_start <= stamps[t.entry_index] < seg_end]
        out.append(stats(f"S{k + 1}", seg_trades, s_idx, e_idx, seg_start, seg_end)[0])

    combined, overall = stats("ALL", list(trades), 0, len(candles), start_ts, end_ts)
    ci = bootstrap_expectancy_ci(overall.r_multiples, bootstrap_iterations, seed=seed)
    return SegmentReport(segments=out, combined=combined, bootstrap=ci)
