# FILE: risk_engine/schema.py
# ======================================================================================
# Climate Risk Engine
# Data model — raw samples, feature containers, predictions and results
# --------------------------------------------------------------------------------------
# Purpose
#   Plain dataclasses passed between pipeline stages. Raw samples and predictions are
#   frozen; NormalizedFeatures is produced once per request and discarded afterwards.
#
# License
#   MIT (c) 2025 Climate Risk Engine contributors
# ======================================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import numpy as np


class Signal(str, Enum):
    """The five environmental signals, in fixed slot order."""

    SOIL_MOISTURE = "soil_moisture"
    TEMPERATURE = "temperature"
    FIRE_INDEX = "fire_index"
    SEA_LEVEL = "sea_level"
    GLACIER_MELT = "glacier_melt"

    @property
    def slot(self) -> int:
        return SIGNAL_ORDER.index(self)

    @classmethod
    def parse(cls, key: Any) -> "Signal":
        """Accept enum members, snake_case values or the acquisition layer's camelCase names."""
        if isinstance(key, Signal):
            return key
        text = str(key).strip()
        alias = _SIGNAL_ALIASES.get(text.lower())
        if alias is not None:
            return alias
        return cls(text)


SIGNAL_ORDER: List[Signal] = [
    Signal.SOIL_MOISTURE,
    Signal.TEMPERATURE,
    Signal.FIRE_INDEX,
    Signal.SEA_LEVEL,
    Signal.GLACIER_MELT,
]

_SIGNAL_ALIASES: Dict[str, Signal] = {
    "soilmoisture": Signal.SOIL_MOISTURE,
    "temperature": Signal.TEMPERATURE,
    "surfacetemperature": Signal.TEMPERATURE,
    "surface_temperature": Signal.TEMPERATURE,
    "fireindex": Signal.FIRE_INDEX,
    "sealevel": Signal.SEA_LEVEL,
    "glaciermelt": Signal.GLACIER_MELT,
    "glaciermelting": Signal.GLACIER_MELT,
    "glacier_melting": Signal.GLACIER_MELT,
}

# Field carrying the measurement in the acquisition layer's records
VALUE_FIELDS: Dict[Signal, str] = {
    Signal.SOIL_MOISTURE: "soilMoisture",
    Signal.TEMPERATURE: "temperature",
    Signal.FIRE_INDEX: "fireIndex",
    Signal.SEA_LEVEL: "seaLevel",
    Signal.GLACIER_MELT: "meltingRate",
}


class ModelId(str, Enum):
    LINEAR = "linear"
    NEURAL = "neural"
    ENSEMBLE = "ensemble"
    RANDOM_FOREST = "random_forest"

    @property
    def uses_enhanced_path(self) -> bool:
        return self in (ModelId.NEURAL, ModelId.ENSEMBLE)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


# ======================================================================================
# Inputs
# ======================================================================================

@dataclass(frozen=True)
class RawSample:
    """
    One time-stamped measurement for a single signal.

    ``timestamp`` is kept as delivered (ISO string or datetime); it is parsed during
    cleaning so malformed samples can be counted and dropped there.
    """
    timestamp: Any
    latitude: Optional[float]
    longitude: Optional[float]
    value: Optional[float]
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, signal: Signal, record: Mapping[str, Any]) -> "RawSample":
        """Build from an acquisition-layer dict (``value`` or the kind-specific field)."""
        value_key = VALUE_FIELDS[Signal.parse(signal)]
        value = record.get("value", record.get(value_key))
        skip = {"timestamp", "latitude", "longitude", "value", value_key}
        extra = {k: v for k, v in record.items() if k not in skip}
        return cls(
            timestamp=record.get("timestamp"),
            latitude=record.get("latitude"),
            longitude=record.get("longitude"),
            value=value,
            extra=extra,
        )


@dataclass
class ApiResponse:
    """Result envelope returned by the external acquisition layer."""
    success: bool
    data: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    @classmethod
    def ok(cls, data: List[Any]) -> "ApiResponse":
        return cls(success=True, data=list(data))

    @classmethod
    def failed(cls, error: str) -> "ApiResponse":
        return cls(success=False, data=[], error=error)


@dataclass(frozen=True)
class FeatureToggles:
    soil_moisture: bool = True
    glacier_melting: bool = True
    surface_temperature: bool = True
    fire_index: bool = True
    sea_level: bool = True

    def selected(self) -> List[Signal]:
        flags = {
            Signal.SOIL_MOISTURE: self.soil_moisture,
            Signal.TEMPERATURE: self.surface_temperature,
            Signal.FIRE_INDEX: self.fire_index,
            Signal.SEA_LEVEL: self.sea_level,
            Signal.GLACIER_MELT: self.glacier_melting,
        }
        return [s for s in SIGNAL_ORDER if flags[s]]

    def count(self) -> int:
        return len(self.selected())

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)

    @classmethod
    def from_signals(cls, signals: List[Signal]) -> "FeatureToggles":
        chosen = {Signal.parse(s) for s in signals}
        return cls(
            soil_moisture=Signal.SOIL_MOISTURE in chosen,
            glacier_melting=Signal.GLACIER_MELT in chosen,
            surface_temperature=Signal.TEMPERATURE in chosen,
            fire_index=Signal.FIRE_INDEX in chosen,
            sea_level=Signal.SEA_LEVEL in chosen,
        )


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or f"Location {self.latitude:.4f}, {self.longitude:.4f}"


# ======================================================================================
# Intermediate containers
# ======================================================================================

@dataclass
class FeatureStatistics:
    """Descriptive statistics for one feature slot (single-sample after aggregation)."""
    mean: float
    median: float
    std: float
    min: float
    max: float
    count: int
    outliers: List[float] = field(default_factory=list)
    trend: Optional[float] = None
    volatility: Optional[float] = None
    seasonality: Optional[float] = None
    extreme_values: Optional[float] = None


@dataclass
class NormalizedFeatures:
    features: np.ndarray
    raw_features: np.ndarray
    quality: float
    completeness: float
    data_richness: Optional[float] = None
    statistics: List[FeatureStatistics] = field(default_factory=list)
    signal_quality: Dict[str, float] = field(default_factory=dict)
    feature_names: List[str] = field(default_factory=list)
    regions: List[str] = field(default_factory=list)

    @property
    def enhanced(self) -> bool:
        return self.data_richness is not None


@dataclass
class TrainingExample:
    features: np.ndarray
    drought_risk: float
    flood_risk: float
    region: str
    season: Optional[str] = None
    historical_events: int = 0


# ======================================================================================
# Outputs
# ======================================================================================

@dataclass(frozen=True)
class ModelPrediction:
    drought_risk: float
    flood_risk: float
    confidence: float
    uncertainty: Optional[float] = None
    feature_importance: Optional[List[float]] = None


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel
    probability: float
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level.value, "probability": self.probability, "confidence": self.confidence}


@dataclass(frozen=True)
class PredictionResult:
    id: str
    timestamp: str
    location: Location
    drought_risk: RiskAssessment
    flood_risk: RiskAssessment
    model: ModelId
    features: FeatureToggles
    data_points: Dict[str, float]
    quality: float
    completeness: float
    data_richness: Optional[float] = None
    pipeline: str = "basic"
    uncertainty: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "location": {
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "name": self.location.display_name,
            },
            "droughtRisk": self.drought_risk.to_dict(),
            "floodRisk": self.flood_risk.to_dict(),
            "model": self.model.value,
            "features": self.features.to_dict(),
            "dataPoints": dict(self.data_points),
            "quality": self.quality,
            "completeness": self.completeness,
            "dataRichness": self.data_richness,
            "pipeline": self.pipeline,
            "uncertainty": self.uncertainty,
        }
