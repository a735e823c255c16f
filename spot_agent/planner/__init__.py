"""Planner: risk-budgeted order sizing."""

from spot_agent.planner.order_planner import OrderPlanner, RiskPolicy, SlTpRatios

__all__ = ["OrderPlanner", "RiskPolicy", "SlTpRatios"]
