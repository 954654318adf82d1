"""
Data Preprocessor: raw per-signal samples -> NormalizedFeatures

Two variants share one fixed stage order (clean -> aggregate -> quality ->
geo-adjust -> normalize):

- BasicPreprocessor    : one IQR-trimmed mean per signal (5 slots), raw-unit
                         desert/polar/coastal clamps.
- EnhancedPreprocessor : 25-slot temporal feature vector, stale-sample filter,
                         normalized-scale clamps for all five regions, plus a
                         data-richness score.

An empty (or fully rejected) signal is not an error: it contributes a neutral 0
feature and lowers quality/completeness instead.
"""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from . import stats
from .features import BASIC_FEATURE_NAMES, FEATURE_GROUPS, FEATURE_NAMES, basic_features, build_features, group_of
from .schema import SIGNAL_ORDER, FeatureStatistics, NormalizedFeatures, RawSample, Signal
from .utils.config_loader import section
from .utils.geospatial import NORMALIZED_POLICY, RAW_POLICY, adjust_levels, to_physical_policy, valid_coordinates
from .utils.logging_utils import get_logger, log_stage

Range = Tuple[float, float]

# Physical-unit ranges: soil %, temperature degC, fire index, sea level m, glacier melt mm/yr
LEVEL_RANGES: List[Range] = [(0.0, 100.0), (-50.0, 60.0), (0.0, 100.0), (0.0, 1.0), (0.0, 20.0)]
BASIC_RANGES: List[Range] = list(LEVEL_RANGES)
ENHANCED_RANGES: List[Range] = (
    LEVEL_RANGES
    + [(-10.0, 10.0), (-5.0, 5.0), (-20.0, 20.0), (-0.1, 0.1), (-2.0, 2.0)]  # trend
    + [(0.0, 30.0), (0.0, 15.0), (0.0, 25.0), (0.0, 0.2), (0.0, 5.0)]  # volatility
    + [(0.0, 6000.0), (0.0, 6000.0), (0.0, 100.0), (0.0, 20.0)]  # interaction
    + [(0.0, 50.0), (0.0, 30.0), (0.0, 40.0)]  # seasonality
    + [(0.0, 1.0), (0.0, 1.0), (0.0, 1.0)]  # extreme
)

SampleInput = Union[RawSample, Mapping[str, Any]]


def clamp01(v: float) -> float:
    v = float(v)
    if not math.isfinite(v):
        return 0.0
    return min(1.0, max(0.0, v))


def normalize(features: np.ndarray, ranges: Sequence[Range]) -> np.ndarray:
    """Min-max scale each slot by its fixed range and clamp to [0, 1]."""
    x = np.asarray(features, dtype=np.float64)
    if x.shape[-1] != len(ranges):
        raise ValueError(f"Feature width {x.shape[-1]} does not match {len(ranges)} ranges")
    lo = np.array([r[0] for r in ranges])
    hi = np.array([r[1] for r in ranges])
    out = (x - lo) / (hi - lo)
    out = np.nan_to_num(out, nan=0.0, posinf=1.0, neginf=0.0)
    return np.clip(out, 0.0, 1.0)


def parse_timestamp(ts: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string / datetime / date / epoch seconds; None if unusable."""
    if ts is None or ts == "":
        return None
    if isinstance(ts, datetime):
        return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    if isinstance(ts, date):
        return datetime(ts.year, ts.month, ts.day, tzinfo=timezone.utc)
    if isinstance(ts, (int, float)) and not isinstance(ts, bool):
        try:
            return datetime.fromtimestamp(float(ts), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(ts, str):
        text = ts.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return None


def _coerce(signal: Signal, items: Optional[Sequence[SampleInput]]) -> List[RawSample]:
    out: List[RawSample] = []
    for it in items or []:
        out.append(it if isinstance(it, RawSample) else RawSample.from_record(signal, it))
    return out


def clean_samples(
    samples: Sequence[RawSample],
    max_age_years: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[List[RawSample], float]:
    """
    Drop malformed samples; return (kept, retained_ratio).

    A sample is dropped when timestamp/latitude/longitude/value is missing, the
    value is not a finite number, coordinates are out of range, the timestamp does
    not parse, or (when ``max_age_years`` is set) its year is more than that many
    years away from ``now``.
    """
    total = len(samples)
    if total == 0:
        return [], 0.0
    ref_year = (now or datetime.now(timezone.utc)).year
    kept: List[RawSample] = []
    for s in samples:
        if s.timestamp in (None, "") or s.latitude is None or s.longitude is None or s.value is None:
            continue
        if not valid_coordinates(s.latitude, s.longitude):
            continue
        try:
            value = float(s.value)
        except (TypeError, ValueError):
            continue
        if not math.isfinite(value):
            continue
        ts = parse_timestamp(s.timestamp)
        if ts is None:
            continue
        if max_age_years is not None and abs(ref_year - ts.year) > max_age_years:
            continue
        kept.append(s)
    return kept, len(kept) / total


def _values(samples: Sequence[RawSample]) -> List[float]:
    return [float(s.value) for s in samples]


def _slot_stats(v: float) -> FeatureStatistics:
    return FeatureStatistics(mean=v, median=v, std=0.0, min=v, max=v, count=1, outliers=[])


# ======================================================================================
# Preprocessors
# ======================================================================================

class BasicPreprocessor:
    """
    5-feature path.

    quality      = 0.6·consistency + 0.4·min(1, total/50)
    completeness = mean over signals of min(1, count/10)
    """

    pipeline = "basic"
    feature_names = BASIC_FEATURE_NAMES
    ranges = BASIC_RANGES

    def __init__(self, cfg: Optional[Dict] = None) -> None:
        pp = section(cfg, "preprocess")
        self.expected_min_points = int(pp["expected_min_points"])
        self.richness_points = int(pp["basic_richness_points"])
        self.max_age_years: Optional[int] = None
        self.log = get_logger(f"risk.preprocess.{self.pipeline}")

    # ---- stages ---------------------------------------------------------------------

    def clean(self, samples_by_signal: Mapping[Any, Sequence[SampleInput]], now: Optional[datetime] = None) -> Tuple[Dict[Signal, List[RawSample]], Dict[str, float]]:
        by_key = {Signal.parse(k): v for k, v in (samples_by_signal or {}).items()}
        cleaned: Dict[Signal, List[RawSample]] = {}
        ratios: Dict[str, float] = {}
        for sig in SIGNAL_ORDER:
            raw = _coerce(sig, by_key.get(sig))
            kept, ratio = clean_samples(raw, self.max_age_years, now)
            cleaned[sig] = kept
            ratios[sig.value] = ratio
        log_stage(
            self.log,
            "clean",
            retained={k.value: len(v) for k, v in cleaned.items()},
            signal_quality=ratios,
        )
        return cleaned, ratios

    def aggregate(self, cleaned: Dict[Signal, List[RawSample]]) -> np.ndarray:
        vec = basic_features([_values(cleaned[s]) for s in SIGNAL_ORDER])
        log_stage(self.log, "aggregate", features=vec)
        return vec

    def _consistency(self, counts: List[int]) -> float:
        hi = max(counts) if counts else 0
        return (min(counts) / hi) if hi > 0 else 0.0

    def _completeness(self, counts: List[int]) -> float:
        if not counts:
            return 0.0
        return float(np.mean([min(1.0, c / self.expected_min_points) for c in counts]))

    def scores(self, cleaned: Dict[Signal, List[RawSample]]) -> Dict[str, Optional[float]]:
        counts = [len(cleaned[s]) for s in SIGNAL_ORDER]
        richness = min(1.0, sum(counts) / self.richness_points)
        quality = clamp01(0.6 * self._consistency(counts) + 0.4 * richness)
        completeness = clamp01(self._completeness(counts))
        out = {"quality": quality, "completeness": completeness, "data_richness": None}
        log_stage(self.log, "quality", counts=counts, **out)
        return out

    def adjust(self, features: np.ndarray, lat: float, lon: float) -> Tuple[np.ndarray, List[str]]:
        out = np.array(features, dtype=np.float64, copy=True)
        out[:5], regions = adjust_levels(out[:5], lat, lon, RAW_POLICY)
        log_stage(self.log, "adjust", regions=regions, levels=out[:5])
        return out, regions

    def normalize(self, features: np.ndarray) -> np.ndarray:
        out = normalize(features, self.ranges)
        log_stage(self.log, "normalize", features=out)
        return out

    def statistics(self, features: np.ndarray) -> List[FeatureStatistics]:
        return [_slot_stats(float(v)) for v in features]

    # ---- entry point ----------------------------------------------------------------

    def process(
        self,
        samples_by_signal: Mapping[Any, Sequence[SampleInput]],
        latitude: float,
        longitude: float,
        now: Optional[datetime] = None,
    ) -> NormalizedFeatures:
        cleaned, ratios = self.clean(samples_by_signal, now=now)
        raw = self.aggregate(cleaned)
        sc = self.scores(cleaned)
        adjusted, regions = self.adjust(raw, latitude, longitude)
        norm = self.normalize(adjusted)
        return NormalizedFeatures(
            features=norm,
            raw_features=adjusted,
            quality=float(sc["quality"]),
            completeness=float(sc["completeness"]),
            data_richness=sc["data_richness"],
            statistics=self.statistics(norm),
            signal_quality=ratios,
            feature_names=list(self.feature_names),
            regions=regions,
        )


class EnhancedPreprocessor(BasicPreprocessor):
    """
    25-feature path.

    quality      = 0.6·consistency + 0.4·completeness
    completeness = mean over signals of min(1, count/10)
    data_richness= min(1, total/250)

    Samples dated more than ``max_age_years`` from the current year are dropped.
    Region clamps are defined on the normalized scale and translated to physical
    units, so after normalization the level slots honor them.
    """

    pipeline = "enhanced"
    feature_names = FEATURE_NAMES
    ranges = ENHANCED_RANGES

    def __init__(self, cfg: Optional[Dict] = None) -> None:
        super().__init__(cfg)
        pp = section(cfg, "preprocess")
        self.max_age_years = int(pp["max_age_years"])
        self.richness_points = int(pp["enhanced_richness_points"])
        self._policy = to_physical_policy(NORMALIZED_POLICY, LEVEL_RANGES)

    def aggregate(self, cleaned: Dict[Signal, List[RawSample]]) -> np.ndarray:
        vec = build_features(*[_values(cleaned[s]) for s in SIGNAL_ORDER])
        log_stage(self.log, "aggregate", features=vec)
        return vec

    def scores(self, cleaned: Dict[Signal, List[RawSample]]) -> Dict[str, Optional[float]]:
        counts = [len(cleaned[s]) for s in SIGNAL_ORDER]
        completeness = clamp01(self._completeness(counts))
        quality = clamp01(0.6 * self._consistency(counts) + 0.4 * completeness)
        richness = clamp01(sum(counts) / self.richness_points)
        out = {"quality": quality, "completeness": completeness, "data_richness": richness}
        log_stage(self.log, "quality", counts=counts, **out)
        return out

    def adjust(self, features: np.ndarray, lat: float, lon: float) -> Tuple[np.ndarray, List[str]]:
        out = np.array(features, dtype=np.float64, copy=True)
        out[:5], regions = adjust_levels(out[:5], lat, lon, self._policy)
        log_stage(self.log, "adjust", regions=regions, levels=out[:5])
        return out, regions

    def statistics(self, features: np.ndarray) -> List[FeatureStatistics]:
        out: List[FeatureStatistics] = []
        for i, v in enumerate(features):
            st = _slot_stats(float(v))
            grp = group_of(i)
            if grp == "trend":
                st.trend = float(v)
            elif grp == "volatility":
                st.volatility = float(v)
            elif grp == "seasonality":
                st.seasonality = float(v)
            elif grp == "extreme":
                st.extreme_values = float(v)
            out.append(st)
        return out


def create_preprocessor(enhanced: bool, cfg: Optional[Dict] = None) -> BasicPreprocessor:
    return EnhancedPreprocessor(cfg) if enhanced else BasicPreprocessor(cfg)


def series_mean(samples: Sequence[SampleInput], signal: Signal) -> Optional[float]:
    """Mean of the usable raw values (display data points); None when nothing is usable."""
    kept, _ = clean_samples(_coerce(signal, samples))
    if not kept:
        return None
    return stats.mean(_values(kept))


__all__ = [
    "BASIC_RANGES",
    "ENHANCED_RANGES",
    "LEVEL_RANGES",
    "FEATURE_GROUPS",
    "BasicPreprocessor",
    "EnhancedPreprocessor",
    "clamp01",
    "clean_samples",
    "create_preprocessor",
    "normalize",
    "parse_timestamp",
    "series_mean",
]
