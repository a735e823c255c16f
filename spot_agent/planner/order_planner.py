"""
Order planner: turn a trade decision and a portfolio snapshot into an
exposure-capped, fee-aware order plan, or a rejection with a reason.
Size = risk amount / per-unit loss at the stop including both fees.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from spot_agent.core.types import (
    OrderPlan,
    PortfolioState,
    Position,
    RiskSummary,
    TradeDecision,
    TradeSide,
)
from spot_agent.utils.rounding import clamp, positive_or_none, round_quantity

logger = logging.getLogger("spot_agent.planner")


@dataclass(frozen=True)
class RiskPolicy:
    """Per-symbol sizing limits. Percent fields are ratios (0.01 = 1%)."""
    risk_per_trade_pct: float = 0.01
    max_position_pct_per_symbol: float = 0.2
    max_total_exposure_pct: float = 0.8
    max_daily_loss_pct: float = 0.03
    min_notional: float = 5000.0
    max_notional: float = 2_000_000.0
    fallback_stop_loss_pct: float = 0.005


@dataclass(frozen=True)
class SlTpRatios:
    """Explicit stop / target distances as ratios of entry."""
    stop_loss_pct: float
    take_profit_pct: float


class OrderPlanner:
    """
    Long-only spot planner. Rejections are returned, never raised:
    a bad price, low confidence or exhausted exposure all yield
    OrderPlan(should_execute=False, reason=...).
    """

    def __init__(self, policy: RiskPolicy, fee_rate: float = 0.0005):
        self.policy = policy
        self.fee_rate = fee_rate

    def plan_order(
        self,
        decision: TradeDecision,
        symbol: str,
        current_price: float,
        portfolio: PortfolioState,
        risk_scale: float = 1.0,
        sl_tp: Optional[SlTpRatios] = None,
    ) -> OrderPlan:
        if not decision.should_trade or decision.side is None:
            return self._reject(symbol, "decision declined to trade")
        if decision.side != TradeSide.LONG:
            return self._reject(symbol, "short selling not supported on spot")

        equity = positive_or_none(portfolio.total_equity)
        if equity is None:
            return self._reject(symbol, "invalid portfolio equity")
        cash = portfolio.cash if portfolio.cash > 0 else 0.0

        confidence = clamp((decision.confidence or 0.0) / 100.0, 0.0, 1.0)
        if confidence <= 0:
            return self._reject(symbol, "confidence too low")

        entry = positive_or_none(decision.entry_price) or positive_or_none(current_price)
        if entry is None:
            return self._reject(symbol, "invalid entry price")

        symbol_exposure = self._symbol_exposure(portfolio.position_for(symbol), entry)
        total_exposure = max(0.0, equity - cash)

        applied_risk_pct = self.policy.risk_per_trade_pct * confidence * risk_scale
        # Small accounts are floored to min_notional instead of rejected.
        risk_amount = max(equity * applied_risk_pct, self.policy.min_notional)

        sl_ratio = sl_tp.stop_loss_pct if sl_tp else self.policy.fallback_stop_loss_pct
        stop_loss = self._stop_loss(decision, entry, sl_ratio)
        if not 0 < stop_loss < entry:
            return self._reject(symbol, "invalid stop loss")

        per_unit_risk = entry * (1 + self.fee_rate) - stop_loss * (1 - self.fee_rate)
        if not per_unit_risk > 0:
            return self._reject(symbol, "non-positive risk per unit after fees")

        qty_by_risk = risk_amount / per_unit_risk
        if not (qty_by_risk > 0 and qty_by_risk != float("inf")):
            return self._reject(symbol, "computed quantity is invalid")
        desired_notional = qty_by_risk * entry

        remaining_symbol = max(0.0, equity * self.policy.max_position_pct_per_symbol - symbol_exposure)
        remaining_total = max(0.0, equity * self.policy.max_total_exposure_pct - total_exposure)
        max_allowed = min(remaining_symbol, remaining_total, self.policy.max_notional, cash)
        if max_allowed <= 0:
            return self._reject(symbol, "exposure exhausted")

        capped_notional = min(desired_notional, max_allowed)
        if capped_notional < self.policy.min_notional:
            return self._reject(
                symbol,
                f"notional {capped_notional:.2f} below minimum {self.policy.min_notional:.2f}",
            )

        quantity = round_quantity(capped_notional / entry)
        if quantity <= 0:
            return self._reject(symbol, "quantity rounded to zero")
        notional = quantity * entry
        if notional < self.policy.min_notional:
            return self._reject(
                symbol,
                f"notional {notional:.2f} below minimum {self.policy.min_notional:.2f} after rounding",
            )

        tp_ratio = sl_tp.take_profit_pct if sl_tp else self.policy.fallback_stop_loss_pct * 2
        target = positive_or_none(decision.target_price) or entry * (1 + tp_ratio)
        per_unit_reward = target * (1 - self.fee_rate) - entry * (1 + self.fee_rate)
        if per_unit_reward <= 0:
            return self._reject(symbol, "reward after fees is non-positive")

        summary = RiskSummary(
            applied_risk_pct=applied_risk_pct,
            risk_amount=risk_amount,
            symbol_exposure_before=symbol_exposure,
            symbol_exposure_after=symbol_exposure + notional,
            total_exposure_before=total_exposure,
            total_exposure_after=total_exposure + notional,
            risk_scale=risk_scale,
        )
        logger.debug(
            "%s plan: qty=%.8f entry=%.4f stop=%.4f target=%.4f notional=%.2f",
            symbol, quantity, entry, stop_loss, target, notional,
        )
        return OrderPlan(
            should_execute=True,
            symbol=symbol,
            reason=decision.reasoning or "planned",
            side=TradeSide.LONG,
            quantity=quantity,
            entry_price=entry,
            stop_loss=stop_loss,
            target_price=target,
            notional=notional,
            risk_summary=summary,
        )

    def _reject(self, symbol: str, reason: str) -> OrderPlan:
        logger.debug("%s plan rejected: %s", symbol, reason)
        return OrderPlan.reject(symbol, reason)

    @staticmethod
    def _symbol_exposure(position: Optional[Position], price: float) -> float:
        if position is None:
            return 0.0
        return max(0.0, position.quantity) * price

    @staticmethod
    def _stop_loss(decision: TradeDecision, entry: float, sl_ratio: float) -> float:
        """Explicit stop when it sits below entry, else entry x (1 - ratio)."""
        explicit = positive_or_none(decision.stop_loss)
        if explicit is not None and explicit < entry:
            return explicit
        return entry * (1 - sl_ratio)
