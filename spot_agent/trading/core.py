"""
Trade math shared by the live path and the simulator: exit checks,
fee-inclusive PnL, fee-in-R and volatility-scaled stop/target ratios.
"""

from __future__ import annotations
from typing import Optional, Tuple

from spot_agent.core.types import ExitReason, Position, TradeSide


def check_position_exit(position: Position, price: float) -> Optional[ExitReason]:
    """Stop first, then target. None while neither is touched."""
    if position.side == TradeSide.LONG:
        if price <= position.stop_loss:
            return ExitReason.STOP_LOSS
        if price >= position.target_price:
            return ExitReason.TAKE_PROFIT
    else:
        if price >= position.stop_loss:
            return ExitReason.STOP_LOSS
        if price <= position.target_price:
            return ExitReason.TAKE_PROFIT
    return None


def calculate_pnl(position: Position, exit_price: float, fee_rate: float) -> Tuple[float, float]:
    """
    Realized (pnl, pnl_percent) with the fee charged on both legs.
    pnl_percent is relative to the entry notional.
    """
    gross_entry = position.entry_price * position.quantity
    gross_exit = exit_price * position.quantity
    if position.side == TradeSide.LONG:
        pnl = gross_exit * (1 - fee_rate) - gross_entry * (1 + fee_rate)
    else:
        pnl = gross_entry * (1 - fee_rate) - gross_exit * (1 + fee_rate)
    pnl_pct = pnl / gross_entry * 100 if gross_entry > 0 else 0.0
    return pnl, pnl_pct


def round_trip_fees(position: Position, exit_price: float, fee_rate: float) -> float:
    return (position.entry_price + exit_price) * position.quantity * fee_rate


def position_value(position: Optional[Position], price: float) -> float:
    if position is None:
        return 0.0
    return position.quantity * price


def unrealized_pnl_pct(position: Position, price: float, fee_rate: float) -> float:
    """Percent PnL if the position were closed at `price` now."""
    return calculate_pnl(position, price, fee_rate)[1]


def fee_in_r(stop_pct: float, fee_rate: float) -> float:
    """Round-trip fee expressed in units of the stop distance (both in percent)."""
    if stop_pct <= 0:
        return float("inf")
    return (fee_rate * 2 * 100) / stop_pct


def volatility_based_sl_tp(
    stop_loss_pct: float,
    take_profit_pct: float,
    atr_percent: Optional[float] = None,
) -> Tuple[float, float]:
    """
    Scale stop/target ratios by volatility regime (atr_percent is a ratio,
    0.03 = 3%). Below 2% tighten to 0.8x, 6% and above widen to 1.3x,
    each with an absolute floor.
    """
    if atr_percent is None:
        return stop_loss_pct, take_profit_pct
    vol = atr_percent * 100
    if vol < 2:
        return max(stop_loss_pct * 0.8, 0.012), max(take_profit_pct * 0.8, 0.024)
    if vol < 6:
        return stop_loss_pct, take_profit_pct
    return max(stop_loss_pct * 1.3, 0.035), max(take_profit_pct * 1.3, 0.07)
