"""Unit tests for planner.order_planner."""

import math

import pytest
from spot_agent.core.types import PortfolioState, Position, TradeDecision, TradeSide
from spot_agent.planner.order_planner import OrderPlanner, RiskPolicy, SlTpRatios

SYMBOL = "KRW-BTC"


def _decision(entry=100.0, stop=98.0, target=104.0, confidence=100.0, side=TradeSide.LONG):
    return TradeDecision(
        should_trade=True,
        side=side,
        confidence=confidence,
        entry_price=entry,
        stop_loss=stop,
        target_price=target,
        reasoning="test entry",
    )


def _flat(equity=1_000_000.0, cash=None):
    return PortfolioState(total_equity=equity, cash=equity if cash is None else cash)


def test_reference_sizing_scenario():
    policy = RiskPolicy(risk_per_trade_pct=0.01)
    plan = OrderPlanner(policy, fee_rate=0.0005).plan_order(_decision(), SYMBOL, 100.0, _flat())
    assert plan.should_execute
    assert plan.risk_summary.risk_amount == pytest.approx(10_000.0)
    assert plan.stop_loss < plan.entry_price < plan.target_price
    cap = min(
        policy.max_position_pct_per_symbol * 1_000_000,
        policy.max_total_exposure_pct * 1_000_000,
        policy.max_notional,
        1_000_000,
    )
    assert plan.notional <= cap + 1e-6
    # Risk sizing wants ~476k; the 20% per-symbol cap binds.
    assert plan.notional == pytest.approx(200_000.0)
    assert plan.quantity == pytest.approx(2_000.0)


def test_risk_sized_when_caps_do_not_bind():
    policy = RiskPolicy(risk_per_trade_pct=0.001, max_position_pct_per_symbol=1.0, max_total_exposure_pct=1.0)
    plan = OrderPlanner(policy, fee_rate=0.0005).plan_order(_decision(), SYMBOL, 100.0, _flat())
    per_unit = 100.0 * 1.0005 - 98.0 * 0.9995
    assert plan.quantity == pytest.approx(5_000.0 / per_unit, abs=1e-6)  # floored to min_notional 5000
    assert plan.risk_summary.risk_amount == pytest.approx(5_000.0)


def test_confidence_and_risk_scale_reduce_applied_risk():
    policy = RiskPolicy(risk_per_trade_pct=0.02)
    plan = OrderPlanner(policy).plan_order(_decision(confidence=50.0), SYMBOL, 100.0, _flat(), risk_scale=0.5)
    assert plan.risk_summary.applied_risk_pct == pytest.approx(0.005)
    assert plan.risk_summary.risk_scale == 0.5


def test_quantity_floored_to_eight_decimals():
    plan = OrderPlanner(RiskPolicy()).plan_order(
        _decision(entry=30_000_001.0, stop=29_000_000.0, target=32_000_000.0), SYMBOL, 30_000_001.0, _flat()
    )
    assert plan.should_execute
    assert plan.quantity == pytest.approx(round(plan.quantity, 8))
    assert plan.notional == pytest.approx(plan.quantity * 30_000_001.0)
    assert plan.notional <= 200_000.0


def test_existing_position_limits_symbol_headroom():
    pos = Position(
        symbol=SYMBOL,
        side=TradeSide.LONG,
        entry_price=100.0,
        quantity=1_500.0,
        stop_loss=98.0,
        target_price=104.0,
        initial_stop_loss=98.0,
    )
    portfolio = PortfolioState(total_equity=1_000_000.0, cash=850_000.0, positions=(pos,))
    plan = OrderPlanner(RiskPolicy()).plan_order(_decision(), SYMBOL, 100.0, portfolio)
    assert plan.should_execute
    assert plan.notional == pytest.approx(50_000.0)
    assert plan.risk_summary.symbol_exposure_before == pytest.approx(150_000.0)
    assert plan.risk_summary.symbol_exposure_after == pytest.approx(200_000.0)


def test_missing_stop_uses_ratio():
    d = TradeDecision(should_trade=True, side=TradeSide.LONG, confidence=100.0, entry_price=100.0)
    plan = OrderPlanner(RiskPolicy()).plan_order(d, SYMBOL, 100.0, _flat(), sl_tp=SlTpRatios(0.02, 0.04))
    assert plan.stop_loss == pytest.approx(98.0)
    assert plan.target_price == pytest.approx(104.0)


def test_stop_above_entry_is_replaced():
    d = _decision(stop=101.0)
    plan = OrderPlanner(RiskPolicy(fallback_stop_loss_pct=0.005)).plan_order(d, SYMBOL, 100.0, _flat())
    assert plan.stop_loss == pytest.approx(99.5)


@pytest.mark.parametrize(
    "decision, price, portfolio, sl_tp, fragment",
    [
        (TradeDecision.skip("nothing"), 100.0, _flat(), None, "declined"),
        (_decision(side=TradeSide.SHORT), 100.0, _flat(), None, "short"),
        (_decision(confidence=0.0), 100.0, _flat(), None, "confidence"),
        (_decision(entry=None), math.nan, _flat(), None, "entry price"),
        (_decision(entry=None), -1.0, _flat(), None, "entry price"),
        (_decision(), 100.0, _flat(equity=math.nan), None, "equity"),
        (_decision(), 100.0, _flat(cash=0.0), None, "exhausted"),
        (_decision(), 100.0, _flat(equity=20_000.0), None, "below minimum"),
        (_decision(target=100.05), 100.0, _flat(), None, "reward"),
        (_decision(stop=None), 100.0, _flat(), SlTpRatios(0.0, 0.04), "invalid stop loss"),
        (_decision(stop=None), 100.0, _flat(), SlTpRatios(-0.01, 0.04), "invalid stop loss"),
        (_decision(stop=None), 100.0, _flat(), SlTpRatios(1.0, 0.04), "invalid stop loss"),
    ],
)
def test_rejections_carry_reason(decision, price, portfolio, sl_tp, fragment):
    plan = OrderPlanner(RiskPolicy()).plan_order(decision, SYMBOL, price, portfolio, sl_tp=sl_tp)
    assert plan.should_execute is False
    assert fragment in plan.reason
    assert plan.quantity is None


@pytest.mark.parametrize("equity, cash", [(1_000_000.0, 1_000_000.0), (1_000_000.0, 300_000.0), (50_000_000.0, 20_000_000.0)])
@pytest.mark.parametrize("stop_pct", [0.005, 0.02, 0.08])
def test_accepted_plans_respect_caps(equity, cash, stop_pct):
    policy = RiskPolicy()
    d = _decision(stop=100.0 * (1 - stop_pct), target=120.0)
    plan = OrderPlanner(policy).plan_order(d, SYMBOL, 100.0, _flat(equity, cash))
    assert plan.should_execute
    total_exposure = equity - cash
    assert plan.notional <= equity * policy.max_position_pct_per_symbol + 1e-6
    assert plan.notional <= equity * policy.max_total_exposure_pct - total_exposure + 1e-6
    assert plan.notional <= policy.max_notional + 1e-6
    assert plan.notional <= cash + 1e-6
    assert plan.stop_loss < plan.entry_price < plan.target_price


def test_min_notional_rechecked_after_quantity_floor():
    # 5000 / 3 floors to 1666.66666666, leaving the notional a hair under the minimum
    policy = RiskPolicy(max_notional=5000.0)
    d = _decision(entry=3.0, stop=2.94, target=3.2)
    plan = OrderPlanner(policy).plan_order(d, SYMBOL, 3.0, _flat())
    assert plan.should_execute is False
    assert "after rounding" in plan.reason
