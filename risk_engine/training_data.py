# FILE: risk_engine/training_data.py
# ======================================================================================
# Climate Risk Engine
# Synthetic Training Data — labeled examples per geographic archetype
# --------------------------------------------------------------------------------------
# Purpose
#   Models are trained from scratch at cold start on synthetic data shaped by five
#   archetypes (desert, coastal, tropical, polar, river_basin):
#     • Enhanced: 24-point persistence series per signal -> 25-slot features.
#     • Basic   : level values drawn uniformly from archetype ranges (5 slots).
#
#   Labels = archetype base rate + uniform noise + a small feature-driven adjustment,
#   so the set correlates with (but is not identical to) the base rates.
#
#   Features are returned in physical units; `normalize_examples` maps them through
#   the same range tables the preprocessors use, so train and predict scales match.
#
# License
#   MIT (c) 2025 Climate Risk Engine contributors
# ======================================================================================

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .features import build_features
from .preprocess import BASIC_RANGES, ENHANCED_RANGES, clamp01, normalize
from .schema import TrainingExample
from .utils.logging_utils import get_logger, log_stage

Range = Tuple[float, float]

SEASONS = ("spring", "summer", "autumn", "winter")


@dataclass(frozen=True)
class Archetype:
    """
    Risk base rates and per-signal physical ranges for one archetype.

    drought/flood : (base, variation); label noise is U(-variation/2, variation/2)
    ranges        : soil %, temperature degC, fire index, sea level m, glacier mm/yr
    """
    name: str
    drought: Tuple[float, float]
    flood: Tuple[float, float]
    ranges: Tuple[Range, Range, Range, Range, Range]


ENHANCED_ARCHETYPES: Tuple[Archetype, ...] = (
    Archetype("desert", (0.75, 0.2), (0.05, 0.1), ((5, 20), (25, 45), (60, 95), (0, 0), (0, 0))),
    Archetype("coastal", (0.3, 0.3), (0.6, 0.3), ((40, 80), (15, 35), (20, 70), (0.05, 0.3), (0, 0))),
    Archetype("tropical", (0.2, 0.2), (0.7, 0.2), ((60, 95), (20, 35), (30, 60), (0, 0.1), (0, 0))),
    Archetype("polar", (0.1, 0.2), (0.4, 0.3), ((15, 50), (-20, 15), (5, 40), (0, 0), (3, 15))),
    Archetype("river_basin", (0.15, 0.25), (0.65, 0.25), ((50, 90), (15, 35), (20, 60), (0, 0.05), (0, 0))),
)


@dataclass(frozen=True)
class BasicArchetype:
    """Uniform label ranges plus per-signal physical ranges (5-feature path)."""
    name: str
    drought: Range
    flood: Range
    ranges: Tuple[Range, Range, Range, Range, Range]


BASIC_ARCHETYPES: Tuple[BasicArchetype, ...] = (
    BasicArchetype("desert", (0.8, 0.95), (0.05, 0.15), ((5, 15), (30, 45), (70, 90), (0, 0), (0, 0))),
    BasicArchetype("coastal", (0.2, 0.6), (0.3, 0.7), ((40, 70), (15, 35), (30, 70), (0.05, 0.2), (0, 0))),
    BasicArchetype("tropical", (0.1, 0.4), (0.4, 0.8), ((70, 90), (25, 35), (40, 70), (0, 0), (0, 0))),
    BasicArchetype("polar", (0.1, 0.3), (0.2, 0.5), ((20, 40), (-10, 10), (10, 30), (0, 0), (5, 15))),
    BasicArchetype("river_basin", (0.1, 0.4), (0.4, 0.8), ((60, 90), (20, 35), (30, 70), (0, 0), (0, 0))),
)


def _rng(rng: Optional[np.random.Generator], seed: Optional[int]) -> np.random.Generator:
    if rng is not None:
        return rng
    return np.random.default_rng(seed)


def persistence_series(base: float, length: int, rng: np.random.Generator) -> np.ndarray:
    """
    ``next = max(0, prev + trend + seasonal + noise)`` with
    trend ~ U(-0.05, 0.05), seasonal = 0.2·sin(i·pi/6), noise ~ U(-0.15, 0.15).
    """
    out = np.empty(length, dtype=np.float64)
    cur = float(base)
    for i in range(length):
        drift = rng.uniform(-0.05, 0.05)
        seasonal = 0.2 * math.sin(i * math.pi / 6.0)
        noise = rng.uniform(-0.15, 0.15)
        cur = max(0.0, cur + drift + seasonal + noise)
        out[i] = cur
    return out


def risk_adjustment(features: Sequence[float], kind: str) -> float:
    """
    Feature-driven label shift over the level slots.

    drought: 0.1·(0.3·temperature + 0.2·fire)
    flood  : 0.1·(0.3·soil + 0.4·sea)
    """
    if kind == "drought":
        return (features[1] * 0.3 + features[2] * 0.2) * 0.1
    if kind == "flood":
        return (features[0] * 0.3 + features[3] * 0.4) * 0.1
    raise ValueError(f"Unknown risk kind '{kind}' (expected 'drought' or 'flood')")


def generate_enhanced_training_data(
    per_archetype: int = 200,
    series_length: int = 24,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
) -> List[TrainingExample]:
    """
    Synthetic 25-feature examples, ``per_archetype`` for each of the five archetypes.

    The risk adjustment is computed on the normalized level slots, keeping it on the
    same [0,1] scale as the base rates.
    """
    g = _rng(rng, seed)
    log = get_logger("risk.training_data")
    examples: List[TrainingExample] = []
    for arch in ENHANCED_ARCHETYPES:
        for _ in range(per_archetype):
            base = [g.uniform(lo, hi) for lo, hi in arch.ranges]
            series = [persistence_series(b, series_length, g) for b in base]
            feats = build_features(*series)
            scaled = normalize(feats, ENHANCED_RANGES)
            d_base, d_var = arch.drought
            f_base, f_var = arch.flood
            drought = clamp01(d_base + g.uniform(-0.5, 0.5) * d_var + risk_adjustment(scaled, "drought"))
            flood = clamp01(f_base + g.uniform(-0.5, 0.5) * f_var + risk_adjustment(scaled, "flood"))
            examples.append(
                TrainingExample(
                    features=feats,
                    drought_risk=drought,
                    flood_risk=flood,
                    region=arch.name,
                    season=SEASONS[int(g.integers(0, len(SEASONS)))],
                    historical_events=int(g.integers(0, 5)),
                )
            )
    log_stage(log, "generate", pipeline="enhanced", examples=len(examples), per_archetype=per_archetype)
    return examples


def generate_basic_training_data(
    per_archetype: int = 100,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
) -> List[TrainingExample]:
    """Synthetic 5-feature examples with uniform labels per archetype."""
    g = _rng(rng, seed)
    log = get_logger("risk.training_data")
    examples: List[TrainingExample] = []
    for arch in BASIC_ARCHETYPES:
        for _ in range(per_archetype):
            feats = np.array([g.uniform(lo, hi) for lo, hi in arch.ranges], dtype=np.float64)
            examples.append(
                TrainingExample(
                    features=feats,
                    drought_risk=float(g.uniform(*arch.drought)),
                    flood_risk=float(g.uniform(*arch.flood)),
                    region=arch.name,
                )
            )
    log_stage(log, "generate", pipeline="basic", examples=len(examples), per_archetype=per_archetype)
    return examples


def normalize_examples(examples: Sequence[TrainingExample]) -> List[TrainingExample]:
    """Map physical-unit features to [0,1] with the range table matching their width."""
    out: List[TrainingExample] = []
    for ex in examples:
        width = len(ex.features)
        ranges = ENHANCED_RANGES if width == len(ENHANCED_RANGES) else BASIC_RANGES
        out.append(replace(ex, features=normalize(ex.features, ranges)))
    return out


def to_arrays(examples: Sequence[TrainingExample]) -> Tuple[np.ndarray, np.ndarray]:
    """Stack examples into X [N, D] and y [N, 2] (drought, flood) float32 arrays."""
    if not examples:
        raise ValueError("No training examples supplied.")
    X = np.stack([np.asarray(e.features, dtype=np.float32) for e in examples])
    y = np.array([[e.drought_risk, e.flood_risk] for e in examples], dtype=np.float32)
    return X, y


def region_counts(examples: Sequence[TrainingExample]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for e in examples:
        counts[e.region] = counts.get(e.region, 0) + 1
    return counts
