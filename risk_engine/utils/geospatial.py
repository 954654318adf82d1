"""
Lightweight geospatial helpers: region predicates and level-feature clamp policies.

Regions are fixed bounding boxes in degrees (no GDAL/PROJ required). A point can
belong to several regions; clamp policies are applied in REGION_ORDER and later
clamps win where they conflict.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

# (min_lat, max_lat, min_lon, max_lon)
Box = Tuple[float, float, float, float]

DESERT_BOXES: Dict[str, Box] = {
    "sahara": (15.0, 30.0, -15.0, 40.0),
    "gobi": (40.0, 50.0, 100.0, 120.0),
    "atacama": (-30.0, -20.0, -80.0, -70.0),
    "kalahari": (-30.0, -20.0, 15.0, 25.0),
    "australian": (-30.0, -20.0, 120.0, 140.0),
}

COASTAL_BOXES: Dict[str, Box] = {
    "north_america_west": (30.0, 60.0, -130.0, -120.0),
    "north_america_east": (25.0, 50.0, -80.0, -70.0),
    "europe": (35.0, 70.0, -10.0, 20.0),
    "east_asia": (20.0, 50.0, 120.0, 140.0),
    "australia": (-40.0, -10.0, 110.0, 155.0),
}

MOUNTAIN_BOXES: Dict[str, Box] = {
    "himalaya": (25.0, 35.0, 70.0, 100.0),
    "andes": (-20.0, 10.0, -80.0, -70.0),
    "rockies": (35.0, 60.0, -120.0, -105.0),
    "alps": (43.0, 48.0, 5.0, 15.0),
}

POLAR_LATITUDE = 66.5
TROPIC_LATITUDE = 23.5

REGION_ORDER: Tuple[str, ...] = ("desert", "polar", "coastal", "tropical", "mountainous")


def in_box(lat: float, lon: float, box: Box) -> bool:
    min_lat, max_lat, min_lon, max_lon = box
    return min_lat <= lat <= max_lat and min_lon <= lon <= max_lon


def valid_coordinates(lat: Optional[float], lon: Optional[float]) -> bool:
    if lat is None or lon is None:
        return False
    try:
        lat_f, lon_f = float(lat), float(lon)
    except (TypeError, ValueError):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0


def is_desert(lat: float, lon: float) -> bool:
    return any(in_box(lat, lon, b) for b in DESERT_BOXES.values())


def is_polar(lat: float, lon: float) -> bool:
    return lat > POLAR_LATITUDE or lat < -POLAR_LATITUDE


def is_coastal(lat: float, lon: float) -> bool:
    return any(in_box(lat, lon, b) for b in COASTAL_BOXES.values())


def is_tropical(lat: float, lon: float) -> bool:
    return -TROPIC_LATITUDE <= lat <= TROPIC_LATITUDE


def is_mountainous(lat: float, lon: float) -> bool:
    return any(in_box(lat, lon, b) for b in MOUNTAIN_BOXES.values())


_PREDICATES = {
    "desert": is_desert,
    "polar": is_polar,
    "coastal": is_coastal,
    "tropical": is_tropical,
    "mountainous": is_mountainous,
}


def classify(lat: float, lon: float) -> List[str]:
    """All regions containing the point, in REGION_ORDER."""
    return [name for name in REGION_ORDER if _PREDICATES[name](lat, lon)]


# ======================================================================================
# Clamp policies (level slots: soil, temp, fire, sea, glacier)
# ======================================================================================

@dataclass(frozen=True)
class Clamp:
    """Bounds for one level slot; ``eq`` pins the value."""
    slot: int
    le: Optional[float] = None
    ge: Optional[float] = None
    eq: Optional[float] = None

    def apply(self, v: float) -> float:
        if self.eq is not None:
            return self.eq
        if self.le is not None:
            v = min(v, self.le)
        if self.ge is not None:
            v = max(v, self.ge)
        return v


SOIL, TEMP, FIRE, SEA, GLACIER = range(5)

# Thresholds on the normalized [0,1] scale
NORMALIZED_POLICY: Dict[str, List[Clamp]] = {
    "desert": [Clamp(SOIL, le=0.15), Clamp(TEMP, ge=0.25), Clamp(FIRE, ge=0.6), Clamp(SEA, eq=0.0), Clamp(GLACIER, eq=0.0)],
    "polar": [Clamp(SOIL, le=0.4), Clamp(TEMP, le=0.15), Clamp(FIRE, le=0.3), Clamp(SEA, eq=0.0), Clamp(GLACIER, ge=0.05)],
    "coastal": [Clamp(SEA, ge=0.05)],
    "tropical": [Clamp(SOIL, ge=0.6), Clamp(TEMP, ge=0.2), Clamp(FIRE, le=0.6)],
    "mountainous": [Clamp(TEMP, le=0.3), Clamp(GLACIER, ge=0.02)],
}

# Thresholds in physical units (%, degC, index, m, mm/yr); desert/polar/coastal only
RAW_POLICY: Dict[str, List[Clamp]] = {
    "desert": [Clamp(SOIL, le=15.0), Clamp(TEMP, ge=25.0), Clamp(FIRE, ge=60.0), Clamp(SEA, eq=0.0), Clamp(GLACIER, eq=0.0)],
    "polar": [Clamp(SOIL, le=40.0), Clamp(TEMP, le=15.0), Clamp(FIRE, le=30.0), Clamp(SEA, eq=0.0), Clamp(GLACIER, ge=5.0)],
    "coastal": [Clamp(SEA, ge=0.05)],
}


def to_physical_policy(policy: Dict[str, List[Clamp]], ranges: Sequence[Tuple[float, float]]) -> Dict[str, List[Clamp]]:
    """
    Translate normalized-scale thresholds into physical units through per-slot
    (min, max) ranges so the clamp can run before normalization.
    """
    def _phys(slot: int, t: Optional[float]) -> Optional[float]:
        if t is None:
            return None
        lo, hi = ranges[slot]
        return lo + t * (hi - lo)

    return {
        region: [Clamp(c.slot, le=_phys(c.slot, c.le), ge=_phys(c.slot, c.ge), eq=_phys(c.slot, c.eq)) for c in clamps]
        for region, clamps in policy.items()
    }


def adjust_levels(levels: np.ndarray, lat: float, lon: float, policy: Dict[str, List[Clamp]]) -> Tuple[np.ndarray, List[str]]:
    """
    Apply every matching region's clamps to the five level slots.

    Returns an adjusted copy and the regions that were applied, in order.
    """
    out = np.array(levels, dtype=np.float64, copy=True)
    applied: List[str] = []
    for region in REGION_ORDER:
        clamps = policy.get(region)
        if not clamps or not _PREDICATES[region](lat, lon):
            continue
        for c in clamps:
            out[c.slot] = c.apply(float(out[c.slot]))
        applied.append(region)
    return out, applied
