"""Unit tests for analytics.monte_carlo."""

import pytest
from spot_agent.analytics.monte_carlo import BootstrapCI, bootstrap_expectancy_ci


def test_too_few_trades_is_sentinel():
    ci = bootstrap_expectancy_ci([1.0] * 9)
    assert ci.computed is False
    assert ci.safe_for_live is False
    assert ci.p5 is None and ci.p50 is None and ci.p95 is None
    assert ci.sample_size == 9
    assert ci == BootstrapCI.not_enough_trades(9)


def test_percentiles_are_ordered():
    r = [2.0, -1.0, 1.5, -1.0, 0.2, 3.0, -0.5, -1.0, 2.5, 0.1, -1.0, 1.2]
    ci = bootstrap_expectancy_ci(r, iterations=2000, seed=42)
    assert ci.computed
    assert ci.p5 <= ci.p50 <= ci.p95
    assert ci.iterations == 2000
    assert ci.sample_size == len(r)


def test_seeded_runs_repeat():
    r = [1.0, -1.0, 0.5, 2.0, -0.5, 1.5, -1.0, 0.3, 0.7, -0.2]
    assert bootstrap_expectancy_ci(r, seed=3) == bootstrap_expectancy_ci(r, seed=3)


def test_safe_for_live_needs_positive_p5():
    winners = bootstrap_expectancy_ci([1.0, 1.2, 0.8, 1.5, 0.9, 1.1, 1.3, 0.7, 1.0, 1.4], seed=0)
    assert winners.safe_for_live
    losers = bootstrap_expectancy_ci([-1.0, 0.2, -1.0, -0.8, 0.1, -1.0, -1.0, 0.3, -1.0, -0.5], seed=0)
    assert not losers.safe_for_live


def test_iterations_floor():
    with pytest.raises(ValueError):
        bootstrap_expectancy_ci([1.0] * 20, iterations=999)
