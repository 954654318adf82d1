from __future__ import annotations

import math

import numpy as np
import pytest

from risk_engine import stats


def test_empty_inputs_are_neutral():
    assert stats.mean([]) == 0.0
    assert stats.robust_mean([]) == 0.0
    assert stats.trend([]) == 0.0
    assert stats.volatility([]) == 0.0
    assert stats.seasonality([]) == 0.0
    assert stats.extreme_ratio([]) == 0.0


@pytest.mark.parametrize("value,count", [(5.0, 1), (-3.25, 7), (42.0, 30)])
def test_robust_mean_of_constant_series_is_the_constant(value, count):
    assert stats.robust_mean([value] * count) == pytest.approx(value)


def test_robust_mean_drops_iqr_outliers():
    # sorted index quartiles: q1=2, q3=4 -> fence [-1, 7]
    assert stats.robust_mean([1, 2, 3, 4, 100]) == pytest.approx(2.5)


def test_trend_is_least_squares_slope():
    assert stats.trend([0, 1, 2, 3]) == pytest.approx(1.0)
    assert stats.trend([10, 8, 6, 4, 2]) == pytest.approx(-2.0)
    assert stats.trend([5.0]) == 0.0


def test_volatility_is_population_std():
    assert stats.volatility([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
    assert stats.volatility([3.0]) == 0.0


def test_seasonality_spread_of_monthly_bucket_means():
    xs = [float(i % 12) for i in range(24)]
    assert stats.seasonality(xs) == pytest.approx(11.0)
    assert stats.seasonality(xs[:11]) == 0.0


def test_extreme_ratio_counts_values_beyond_two_sigma():
    xs = [0.0] * 19 + [100.0]
    assert stats.extreme_ratio(xs) == pytest.approx(0.05)
    assert stats.extreme_ratio([1.0] * 10) == 0.0


def test_non_finite_results_collapse_to_zero():
    assert stats.mean([1.0, float("nan")]) == 0.0
    assert stats.volatility(np.array([1.0, np.inf])) == 0.0
    assert all(math.isfinite(f([float("nan")] * 3)) for f in (stats.robust_mean, stats.trend))
