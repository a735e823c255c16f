"""Spot volatility agent: signals, order planning, guardrails, backtesting."""

__version__ = "0.1.0"
