"""
Simulation engine: deterministic single-pass replay of a candle series.
Same detector, planner, exit checks and fee model as the live path.
Fills happen at the bar close; no lookahead past the current bar.
"""

from __future__ import annotations
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from spot_agent.analytics.metrics import (
    PerformanceMetrics,
    compute_metrics,
    equity_returns,
    sharpe_ratio,
)
from spot_agent.core.types import (
    BacktestTrade,
    Candle,
    ExitReason,
    OrderPlan,
    PortfolioState,
    Position,
    TradeSide,
)
from spot_agent.planner.order_planner import OrderPlanner, RiskPolicy, SlTpRatios
from spot_agent.signals.detector import WARMUP_BARS, SignalDetector, VolatilityThresholds
from spot_agent.strategies.base import DecisionProvider, ExitProvider
from spot_agent.trading.core import (
    calculate_pnl,
    check_position_exit,
    round_trip_fees,
    volatility_based_sl_tp,
)
from spot_agent.utils.rounding import positive_or_none

logger = logging.getLogger("spot_agent.backtest")


@dataclass
class BacktestConfig:
    """
    be_trigger_r: favourable move, in initial-risk units, that moves the stop
    to entry (0 disables). stop_loss_pct / take_profit_pct, when both set,
    are scaled by the signal's ATR% and passed to the planner.
    """
    symbol: str = "KRW-BTC"
    initial_capital: float = 1_000_000.0
    fee_rate: float = 0.0005
    warmup_bars: int = WARMUP_BARS
    window_size: int = 500
    gate_on_signal: bool = True
    be_trigger_r: float = 0.0
    min_hold_bars: int = 0
    exit_only_after_break_even: bool = False
    risk_scale: float = 1.0
    stop_loss_pct: Optional[float] = None
    take_profit_pct: Optional[float] = None


@dataclass
class DebugStats:
    no_signal: int = 0
    provider_skip: int = 0
    planner_reject: int = 0
    executed: int = 0


@dataclass
class BacktestResult:
    """Backtest output: trades, equity curve and diagnostics."""
    initial_capital: float
    final_equity: float
    trades: List[BacktestTrade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    max_drawdown_pct: float = 0.0
    signals_detected: int = 0
    debug: DebugStats = field(default_factory=DebugStats)
    decision_reasons: Counter = field(default_factory=Counter)
    planner_reasons: Counter = field(default_factory=Counter)

    @property
    def total_trades(self) -> int:
        return len(self.trades)

    @property
    def winning_trades(self) -> int:
        return sum(1 for t in self.trades if t.pnl > 0)

    @property
    def losing_trades(self) -> int:
        return sum(1 for t in self.trades if t.pnl <= 0)

    @property
    def win_rate(self) -> float:
        """Percent of trades with positive PnL."""
        if not self.trades:
            return 0.0
        return self.winning_trades / len(self.trades) * 100

    @property
    def total_pnl(self) -> float:
        return sum(t.pnl for t in self.trades)

    @property
    def total_pnl_percent(self) -> float:
        if self.initial_capital <= 0:
            return 0.0
        return self.total_pnl / self.initial_capital * 100

    @property
    def sharpe_ratio(self) -> float:
        return sharpe_ratio(equity_returns(self.equity_curve))

    @property
    def metrics(self) -> PerformanceMetrics:
        return compute_metrics(
            [t.pnl for t in self.trades],
            equity_curve=self.equity_curve,
            initial_capital=self.initial_capital,
        )

    def exit_reason_counts(self) -> Dict[ExitReason, int]:
        counts = {reason: 0 for reason in ExitReason}
        for t in self.trades:
            counts[t.exit_reason] += 1
        return counts

    def top_reasons(self, limit: int = 8) -> List[Tuple[str, int]]:
        return self.decision_reasons.most_common(limit)

    def trades_frame(self) -> pd.DataFrame:
        """Closed trades as a DataFrame, one row per trade."""
        columns = [
            "entry_index", "exit_index", "side", "entry_price", "exit_price", "quantity",
            "pnl", "pnl_percent", "exit_reason", "initial_stop_loss", "fees",
        ]
        rows = [
            {
                "entry_index": t.entry_index,
                "exit_index": t.exit_index,
                "side": t.side.value,
                "entry_price": t.entry_price,
                "exit_price": t.exit_price,
                "quantity": t.quantity,
                "pnl": t.pnl,
                "pnl_percent": t.pnl_percent,
                "exit_reason": t.exit_reason.value,
                "initial_stop_loss": t.initial_stop_loss,
                "fees": t.fees,
            }
            for t in self.trades
        ]
        return pd.DataFrame(rows, columns=columns)


class SimulationEngine:
    """
    Replays candles bar by bar. Ledger state (cash, position, trades) lives
    only for the duration of one run, so an instance can be reused.
    """

    def __init__(
        self,
        config: BacktestConfig,
        policy: RiskPolicy,
        thresholds: VolatilityThresholds,
    ):
        self.config = config
        self.planner = OrderPlanner(policy, fee_rate=config.fee_rate)
        self.detector = SignalDetector(thresholds)
        self._reset()

    def _reset(self) -> None:
        self._cash = self.config.initial_capital
        self._position: Optional[Position] = None
        self._trades: List[BacktestTrade] = []
        self._equity_curve: List[float] = []
        self._peak = self.config.initial_capital
        self._max_dd = 0.0
        self._realized_pct = 0.0
        self._signals = 0
        self._debug = DebugStats()
        self._decision_reasons: Counter = Counter()
        self._planner_reasons: Counter = Counter()

    def run(
        self,
        candles: Sequence[Candle],
        decision_provider: DecisionProvider,
        exit_provider: Optional[ExitProvider] = None,
    ) -> BacktestResult:
        return self.run_range(candles, 0, len(candles), decision_provider, exit_provider)

    def run_range(
        self,
        candles: Sequence[Candle],
        start: int,
        end: int,
        decision_provider: DecisionProvider,
        exit_provider: Optional[ExitProvider] = None,
    ) -> BacktestResult:
        """Replay candles[start:end]; nothing before `start` is visible."""
        self._reset()
        start = max(0, start)
        end = min(len(candles), end)
        cfg = self.config

        for i in range(start + cfg.warmup_bars, end):
            window = candles[max(start, i - cfg.window_size + 1):i + 1]
            price = candles[i].close

            self._mark_to_market(price)
            if self._position is not None:
                self._manage_position(i, price, window, exit_provider)
            if self._position is not None:
                continue
            self._try_entry(i, candles[i], window, decision_provider)

        if self._position is not None and end > start:
            self._close(end - 1, candles[end - 1].close, ExitReason.END)

        return BacktestResult(
            initial_capital=cfg.initial_capital,
            final_equity=self._cash,
            trades=list(self._trades),
            equity_curve=list(self._equity_curve),
            max_drawdown_pct=self._max_dd * 100,
            signals_detected=self._signals,
            debug=self._debug,
            decision_reasons=self._decision_reasons,
            planner_reasons=self._planner_reasons,
        )

    def _mark_to_market(self, price: float) -> None:
        held = self._position.quantity * price if self._position else 0.0
        equity = self._cash + held
        self._equity_curve.append(equity)
        if equity > self._peak:
            self._peak = equity
        if self._peak > 0:
            self._max_dd = max(self._max_dd, (self._peak - equity) / self._peak)

    def _manage_position(self, i, price, window, exit_provider) -> None:
        pos = self._position
        reason = check_position_exit(pos, price)
        if reason is not None:
            self._close(i, price, reason)
            return

        if self.config.be_trigger_r > 0 and pos.arm_break_even(price, self.config.be_trigger_r):
            logger.debug("Break-even armed at bar %d (stop -> %.4f)", i, pos.stop_loss)

        if exit_provider is None:
            return
        if i - pos.entry_index < self.config.min_hold_bars:
            return
        if self.config.exit_only_after_break_even and not pos.break_even_armed:
            return
        decision = exit_provider.check_exit(window, pos)
        if decision.should_exit:
            exit_price = positive_or_none(decision.exit_price) or price
            self._close(i, exit_price, ExitReason.SIGNAL)

    def _try_entry(self, i, candle, window, decision_provider) -> None:
        cfg = self.config
        signal = self.detector.detect(window)
        if signal is None:
            self._debug.no_signal += 1
            if cfg.gate_on_signal:
                return
        else:
            self._signals += 1

        decision = decision_provider.decide(window, signal, None)
        if not decision.should_trade or decision.side is None:
            self._debug.provider_skip += 1
            self._decision_reasons[(decision.reasoning or "no trade").strip() or "no trade"] += 1
            return

        sl_tp = None
        if cfg.stop_loss_pct is not None and cfg.take_profit_pct is not None:
            atr_pct = signal.atr_percent if signal is not None else None
            sl, tp = volatility_based_sl_tp(cfg.stop_loss_pct, cfg.take_profit_pct, atr_pct)
            sl_tp = SlTpRatios(sl, tp)

        plan = self.planner.plan_order(
            decision,
            cfg.symbol,
            candle.close,
            self._snapshot(),
            risk_scale=cfg.risk_scale,
            sl_tp=sl_tp,
        )
        if not plan.should_execute:
            self._debug.planner_reject += 1
            self._planner_reasons[plan.reason] += 1
            return
        self._open(i, candle, plan)
        self._debug.executed += 1

    def _snapshot(self) -> PortfolioState:
        # Flat when called; spendable cash leaves room for the entry fee.
        return PortfolioState(
            total_equity=self._cash,
            cash=self._cash / (1 + self.config.fee_rate),
            positions=(),
            realized_pnl_pct_today=self._realized_pct,
        )

    def _open(self, i: int, candle: Candle, plan: OrderPlan) -> None:
        notional = plan.quantity * plan.entry_price
        self._cash -= notional * (1 + self.config.fee_rate)
        self._position = Position(
            symbol=plan.symbol,
            side=TradeSide.LONG,
            entry_price=plan.entry_price,
            quantity=plan.quantity,
            stop_loss=plan.stop_loss,
            target_price=plan.target_price,
            initial_stop_loss=plan.stop_loss,
            entry_index=i,
            timestamp=candle.timestamp,
        )

    def _close(self, i: int, exit_price: float, reason: ExitReason) -> None:
        pos = self._position
        if pos is None:
            return
        fee_rate = self.config.fee_rate
        self._cash += pos.quantity * exit_price * (1 - fee_rate)
        pnl, pnl_pct = calculate_pnl(pos, exit_price, fee_rate)
        self._realized_pct += pnl_pct / 100
        self._trades.append(BacktestTrade(
            entry_index=pos.entry_index,
            exit_index=i,
            side=pos.side,
            entry_price=pos.entry_price,
            exit_price=exit_price,
            quantity=pos.quantity,
            pnl=pnl,
            pnl_percent=pnl_pct,
            exit_reason=reason,
            initial_stop_loss=pos.initial_stop_loss,
            fees=round_trip_fees(pos, exit_price, fee_rate),
            metadata={"break_even_armed": pos.break_even_armed},
        ))
        self._position = None
