# FILE: risk_engine/features.py
# ======================================================================================
# Climate Risk Engine
# Feature Engineer — fixed-order feature vectors from per-signal time series
# --------------------------------------------------------------------------------------
# Layout (enhanced, 25 slots). Slot order is load-bearing: normalization ranges and
# model input shapes are keyed to position.
#
#    0..4   level        mean of soil, temp, fire, sea, glacier
#    5..9   trend        OLS slope per signal
#   10..14  volatility   population std per signal
#   15..18  interaction  soil*temp, temp*fire, soil*sea, glacier*sea (level means)
#   19..21  seasonality  soil, temp, fire
#   22..24  extreme      fraction above mean+2std for soil, temp, fire
#
# The basic layout is 5 slots: one robust (IQR-trimmed) mean per signal.
#
# License
#   MIT (c) 2025 Climate Risk Engine contributors
# ======================================================================================

from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np

from . import stats

N_BASIC_FEATURES = 5
N_ENHANCED_FEATURES = 25

_LEVEL_NAMES = ["soilMoisture", "temperature", "fireIndex", "seaLevel", "glacierMelting"]

BASIC_FEATURE_NAMES: List[str] = list(_LEVEL_NAMES)

FEATURE_NAMES: List[str] = (
    _LEVEL_NAMES
    + [f"{n}Trend" for n in _LEVEL_NAMES]
    + [f"{n}Volatility" for n in _LEVEL_NAMES]
    + [
        "moistureTempInteraction",
        "tempFireInteraction",
        "moistureSeaInteraction",
        "glacierSeaInteraction",
    ]
    + [f"{n}Seasonality" for n in _LEVEL_NAMES[:3]]
    + [f"{n}Extreme" for n in _LEVEL_NAMES[:3]]
)

FEATURE_GROUPS: Dict[str, slice] = {
    "level": slice(0, 5),
    "trend": slice(5, 10),
    "volatility": slice(10, 15),
    "interaction": slice(15, 19),
    "seasonality": slice(19, 22),
    "extreme": slice(22, 25),
}


def group_of(slot: int) -> str:
    for name, sl in FEATURE_GROUPS.items():
        if sl.start <= slot < sl.stop:
            return name
    raise IndexError(f"Feature slot {slot} out of range (0..{N_ENHANCED_FEATURES - 1})")


def build_features(
    soil: Sequence[float],
    temp: Sequence[float],
    fire: Sequence[float],
    sea: Sequence[float],
    glacier: Sequence[float],
) -> np.ndarray:
    """
    Assemble the 25-slot enhanced feature vector from five raw series.

    Empty series contribute 0 to every slot that depends on them.
    """
    series = [soil, temp, fire, sea, glacier]
    levels = [stats.mean(s) for s in series]
    trends = [stats.trend(s) for s in series]
    vols = [stats.volatility(s) for s in series]
    m_soil, m_temp, m_fire, m_sea, m_glacier = levels
    interactions = [
        m_soil * m_temp,
        m_temp * m_fire,
        m_soil * m_sea,
        m_glacier * m_sea,
    ]
    seasonal = [stats.seasonality(s) for s in series[:3]]
    extremes = [stats.extreme_ratio(s) for s in series[:3]]
    vec = np.array(levels + trends + vols + interactions + seasonal + extremes, dtype=np.float64)
    return vec


def basic_features(series: Sequence[Sequence[float]]) -> np.ndarray:
    """Five robust means, one per signal in slot order."""
    if len(series) != N_BASIC_FEATURES:
        raise ValueError(f"Expected {N_BASIC_FEATURES} series, got {len(series)}")
    return np.array([stats.robust_mean(s) for s in series], dtype=np.float64)
