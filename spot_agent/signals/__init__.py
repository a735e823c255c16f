"""Signals: volatility event detection."""

from spot_agent.signals.detector import (
    SignalDetector,
    VolatilityThresholds,
    detect_volatility_signal,
    is_strong_signal,
)

__all__ = ["SignalDetector", "VolatilityThresholds", "detect_volatility_signal", "is_strong_signal"]
