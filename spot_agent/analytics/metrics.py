"""
Performance metrics: Sharpe, Sortino, max drawdown, win rate, profit factor,
expectancy, and R-multiple analysis of closed trades.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from spot_agent.core.types import BacktestTrade

BE_BAND_R = 0.15


@dataclass
class PerformanceMetrics:
    """Aggregate performance metrics."""
    total_return_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe over period returns (population std)."""
    if len(returns) == 0:
        return 0.0
    excess = np.asarray(returns, dtype=float) - risk_free_rate / periods_per_year
    std = excess.std()
    if std <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / std)


def sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sortino (downside deviation); falls back to Sharpe without losers."""
    if len(returns) == 0:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    downside = arr[arr < 0]
    if len(downside) == 0 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    return float(np.sqrt(periods_per_year) * excess.mean() / downside.std())


def equity_returns(equity_curve: Sequence[float]) -> List[float]:
    """Bar-to-bar simple returns of an equity curve."""
    arr = np.asarray(equity_curve, dtype=float)
    if len(arr) < 2:
        return []
    prev = arr[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        rets = np.where(prev != 0, np.diff(arr) / prev, 0.0)
    return rets.tolist()


def max_drawdown(equity_curve: Sequence[float]) -> float:
    """Max drawdown in percent, as a positive number (15.0 = 15%)."""
    if len(equity_curve) == 0:
        return 0.0
    arr = np.asarray(equity_curve, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (peak - arr) / np.where(peak != 0, peak, 1)
    return float(np.max(dd)) * 100.0


def win_rate(pnls: Sequence[float]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / gross loss. inf with no losses, 0 with no trades."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: Sequence[float]) -> float:
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def compute_metrics(
    pnls: Sequence[float],
    equity_curve: Optional[Sequence[float]] = None,
    initial_capital: float = 1.0,
    periods_per_year: float = 252.0,
) -> PerformanceMetrics:
    """
    Metrics from trade PnLs (currency). equity_curve drives return, Sharpe and
    drawdown when given; otherwise it is rebuilt from initial_capital + PnLs.
    """
    pnls = list(pnls)
    if not pnls:
        return PerformanceMetrics(
            total_return_pct=0.0, sharpe_ratio=0.0, sortino_ratio=0.0, max_drawdown_pct=0.0,
            win_rate=0.0, profit_factor=0.0, expectancy=0.0,
            total_trades=0, winning_trades=0, losing_trades=0, avg_win=0.0, avg_loss=0.0,
        )
    if equity_curve is None or len(equity_curve) == 0:
        equity_curve = list(np.cumsum([initial_capital] + pnls))
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p <= 0]
    rets = equity_returns(equity_curve)
    start = initial_capital if initial_capital else equity_curve[0]
    total_return_pct = (sum(pnls) / start) * 100.0 if start else 0.0
    return PerformanceMetrics(
        total_return_pct=total_return_pct,
        sharpe_ratio=sharpe_ratio(rets, periods_per_year=periods_per_year),
        sortino_ratio=sortino_ratio(rets, periods_per_year=periods_per_year),
        max_drawdown_pct=max_drawdown(equity_curve),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
    )


@dataclass
class RMultipleAnalysis:
    """
    Trades classified by R: |R| < be_band is break-even, otherwise win/loss.
    be_rate and theoretical_be are percentages.
    """
    avg_win_r: float
    avg_loss_r: float
    be_rate: float
    expectancy: float
    theoretical_be: float
    win_count: int
    loss_count: int
    be_count: int
    r_multiples: List[float] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.win_count + self.loss_count + self.be_count


def trade_r_multiple(
    trade: BacktestTrade,
    fee_rate: float,
    slippage_pct: float = 0.0,
    fallback_stop_pct: float = 0.5,
) -> float:
    """
    Net price move in units of the initial stop distance. Friction is both
    fees plus slippage on both legs; fallback_stop_pct (percent) is used when
    the trade carries no usable initial stop.
    """
    if trade.entry_price <= 0:
        return 0.0
    risk_pct = (trade.entry_price - trade.initial_stop_loss) / trade.entry_price * 100
    if not risk_pct > 0:
        risk_pct = fallback_stop_pct
    if risk_pct <= 0:
        return 0.0
    friction_pct = (fee_rate * 2 + slippage_pct / 100 * 2) * 100
    move_pct = (trade.exit_price - trade.entry_price) / trade.entry_price * 100
    return (move_pct - friction_pct) / risk_pct


def r_multiple_analysis(
    trades: Sequence[BacktestTrade],
    fee_rate: float,
    slippage_pct: float = 0.0,
    fallback_stop_pct: float = 0.5,
    be_band_r: float = BE_BAND_R,
) -> RMultipleAnalysis:
    r_multiples = [trade_r_multiple(t, fee_rate, slippage_pct, fallback_stop_pct) for t in trades]
    wins = [r for r in r_multiples if abs(r) >= be_band_r and r > 0]
    losses = [-r for r in r_multiples if abs(r) >= be_band_r and r < 0]
    be_count = len(r_multiples) - len(wins) - len(losses)
    total = len(r_multiples)

    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0
    win_frac = len(wins) / total if total else 0.0
    loss_frac = len(losses) / total if total else 0.0
    theoretical_be = avg_loss / (avg_win + avg_loss) if avg_win > 0 else 0.5

    return RMultipleAnalysis(
        avg_win_r=avg_win,
        avg_loss_r=avg_loss,
        be_rate=be_count / total * 100 if total else 0.0,
        expectancy=win_frac * avg_win - loss_frac * avg_loss,
        theoretical_be=theoretical_be * 100,
        win_count=len(wins),
        loss_count=len(losses),
        be_count=be_count,
        r_multiples=r_multiples,
    )
