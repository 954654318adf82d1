from __future__ import annotations

import numpy as np
import pytest

from risk_engine.preprocess import LEVEL_RANGES
from risk_engine.utils.geospatial import (
    NORMALIZED_POLICY,
    RAW_POLICY,
    adjust_levels,
    classify,
    to_physical_policy,
    valid_coordinates,
)


@pytest.mark.parametrize(
    "lat,lon,expected",
    [
        (20.0, 10.0, ["desert", "tropical"]),   # southern Sahara
        (27.0, 10.0, ["desert"]),
        (45.0, 110.0, ["desert"]),               # Gobi
        (80.0, 0.0, ["polar"]),
        (-70.0, 45.0, ["polar"]),
        (40.0, -125.0, ["coastal"]),
        (30.0, 80.0, ["mountainous"]),           # Himalaya
        (0.0, -75.0, ["tropical", "mountainous"]),  # Andes
        (45.0, -100.0, []),
    ],
)
def test_classify(lat, lon, expected):
    assert classify(lat, lon) == expected


def test_valid_coordinates():
    assert valid_coordinates(0.0, 0.0)
    assert valid_coordinates(-90.0, 180.0)
    assert not valid_coordinates(90.5, 0.0)
    assert not valid_coordinates(0.0, -181.0)
    assert not valid_coordinates(None, 0.0)
    assert not valid_coordinates("north", 0.0)


def test_desert_clamp_on_normalized_levels_returns_copy():
    levels = np.array([0.9, 0.1, 0.1, 0.5, 0.5])
    out, applied = adjust_levels(levels, 27.0, 10.0, NORMALIZED_POLICY)
    assert applied == ["desert"]
    assert list(out) == pytest.approx([0.15, 0.25, 0.6, 0.0, 0.0])
    assert list(levels) == [0.9, 0.1, 0.1, 0.5, 0.5]


def test_clamps_leave_values_already_inside_bounds():
    levels = np.array([0.05, 0.9, 0.95, 0.0, 0.0])
    out, _ = adjust_levels(levels, 27.0, 10.0, NORMALIZED_POLICY)
    assert list(out) == pytest.approx([0.05, 0.9, 0.95, 0.0, 0.0])


def test_later_regions_win_when_clamps_conflict():
    # desert caps soil at 0.15, tropical then floors it at 0.6
    out, applied = adjust_levels(np.array([0.1, 0.5, 0.5, 0.0, 0.0]), 20.0, 10.0, NORMALIZED_POLICY)
    assert applied == ["desert", "tropical"]
    assert out[0] == pytest.approx(0.6)


def test_raw_policy_only_covers_desert_polar_coastal():
    assert set(RAW_POLICY) == {"desert", "polar", "coastal"}
    out, applied = adjust_levels(np.array([50.0, 10.0, 20.0, 0.5, 3.0]), 20.0, 10.0, RAW_POLICY)
    assert applied == ["desert"]
    assert list(out) == pytest.approx([15.0, 25.0, 60.0, 0.0, 0.0])


def test_physical_policy_translates_thresholds_through_ranges():
    phys = to_physical_policy(NORMALIZED_POLICY, LEVEL_RANGES)
    temp_floor = [c for c in phys["desert"] if c.slot == 1][0]
    assert temp_floor.ge == pytest.approx(-50.0 + 0.25 * 110.0)
    glacier_min = [c for c in phys["polar"] if c.slot == 4][0]
    assert glacier_min.ge == pytest.approx(1.0)
