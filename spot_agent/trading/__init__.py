"""Trading: shared exit, PnL and fee math."""

from spot_agent.trading.core import (
    check_position_exit,
    calculate_pnl,
    round_trip_fees,
    position_value,
    unrealized_pnl_pct,
    fee_in_r,
    volatility_based_sl_tp,
)

__all__ = [
    "check_position_exit",
    "calculate_pnl",
    "round_trip_fees",
    "position_value",
    "unrealized_pnl_pct",
    "fee_in_r",
    "volatility_based_sl_tp",
]
