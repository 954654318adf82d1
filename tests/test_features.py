from __future__ import annotations

import numpy as np
import pytest

from risk_engine.features import (
    BASIC_FEATURE_NAMES,
    FEATURE_GROUPS,
    FEATURE_NAMES,
    N_ENHANCED_FEATURES,
    basic_features,
    build_features,
    group_of,
)


def test_layout_names_and_groups_cover_every_slot():
    assert len(FEATURE_NAMES) == N_ENHANCED_FEATURES == 25
    assert len(set(FEATURE_NAMES)) == 25
    assert BASIC_FEATURE_NAMES == FEATURE_NAMES[:5]
    covered = sorted(i for sl in FEATURE_GROUPS.values() for i in range(sl.start, sl.stop))
    assert covered == list(range(25))
    assert group_of(0) == "level"
    assert group_of(15) == "interaction"
    assert group_of(24) == "extreme"
    with pytest.raises(IndexError):
        group_of(25)


def test_empty_series_yield_zero_vector():
    vec = build_features([], [], [], [], [])
    assert vec.shape == (25,)
    assert np.all(vec == 0.0)


def test_constant_series_slot_values():
    n = 12
    vec = build_features([10.0] * n, [20.0] * n, [30.0] * n, [0.5] * n, [2.0] * n)
    assert list(vec[:5]) == pytest.approx([10.0, 20.0, 30.0, 0.5, 2.0])
    assert np.allclose(vec[5:15], 0.0)  # trend + volatility
    assert list(vec[15:19]) == pytest.approx([200.0, 600.0, 5.0, 1.0])
    assert np.allclose(vec[19:25], 0.0)  # seasonality + extremes


def test_trend_slots_follow_signal_order():
    ramp = [float(i) for i in range(24)]
    flat = [1.0] * 24
    vec = build_features(flat, ramp, flat, flat, flat)
    assert vec[5] == pytest.approx(0.0)
    assert vec[6] == pytest.approx(1.0)


def test_basic_features_are_robust_means():
    vec = basic_features([[1, 2, 3, 4, 100], [5.0], [], [0.2, 0.2], [3.0, 3.0, 3.0]])
    assert list(vec) == pytest.approx([2.5, 5.0, 0.0, 0.2, 3.0])
    with pytest.raises(ValueError):
        basic_features([[1.0]] * 4)
