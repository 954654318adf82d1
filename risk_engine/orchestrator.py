"""
Prediction Orchestrator

Request/response over (raw samples | fetchers, feature toggles, model id, location):

1) validate   → ≥2 toggles, coordinates in range, known model id (before any work)
2) gather     → optional concurrent fetch of the five signals (join on all)
3) route      → enhanced 25-feature path for {neural, ensemble}, basic otherwise
4) preprocess → NormalizedFeatures (quality / completeness / richness)
5) predict    → ModelManager (trains lazily on first use)
6) assemble   → risk buckets, confidence dampened by data quality

The orchestrator holds no per-request state; results may be appended to a
PredictionHistory owned by the caller.
"""
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from .errors import DataLoadError, InputValidationError, UnknownModelError
from .manager import ModelManager
from .preprocess import clamp01, create_preprocessor, series_mean
from .schema import (
    SIGNAL_ORDER,
    ApiResponse,
    FeatureToggles,
    Location,
    ModelId,
    PredictionResult,
    RiskAssessment,
    RiskLevel,
    Signal,
    utc_now_iso,
)
from .utils.config_loader import section
from .utils.geospatial import valid_coordinates
from .utils.logging_utils import get_logger, log_stage

Fetcher = Callable[[float, float], ApiResponse]

# Toggle field reported in data_points for each signal
_TOGGLE_FIELD: Dict[Signal, str] = {
    Signal.SOIL_MOISTURE: "soil_moisture",
    Signal.TEMPERATURE: "surface_temperature",
    Signal.FIRE_INDEX: "fire_index",
    Signal.SEA_LEVEL: "sea_level",
    Signal.GLACIER_MELT: "glacier_melting",
}


def risk_level(probability: float) -> RiskLevel:
    """<0.25 low, <0.5 medium, <0.75 high, else extreme."""
    if probability < 0.25:
        return RiskLevel.LOW
    if probability < 0.5:
        return RiskLevel.MEDIUM
    if probability < 0.75:
        return RiskLevel.HIGH
    return RiskLevel.EXTREME


class PredictionOrchestrator:
    def __init__(self, manager: ModelManager, cfg: Optional[Dict] = None) -> None:
        self.manager = manager
        pc = section(cfg, "prediction")
        self.min_features = int(pc["min_features"])
        self.fetch_workers = int(pc["fetch_workers"])
        self.cfg = cfg
        self.log = get_logger("risk.orchestrator")

    # ---- validation -----------------------------------------------------------------

    def validate(self, toggles: FeatureToggles, model_id: Union[ModelId, str], location: Location) -> ModelId:
        if toggles.count() < self.min_features:
            raise InputValidationError(
                f"Please select at least {self.min_features} features for prediction",
                {"selected": [s.value for s in toggles.selected()]},
            )
        if not valid_coordinates(location.latitude, location.longitude):
            raise InputValidationError(
                "Latitude must be within [-90, 90] and longitude within [-180, 180]",
                {"latitude": location.latitude, "longitude": location.longitude},
            )
        try:
            return ModelId(model_id)
        except ValueError:
            raise UnknownModelError(str(model_id)) from None

    # ---- data gathering -------------------------------------------------------------

    def gather(
        self,
        fetchers: Mapping[Any, Fetcher],
        toggles: FeatureToggles,
        location: Location,
        strict: bool = False,
    ) -> Dict[Signal, List[Any]]:
        """
        Fetch every selected signal concurrently and wait for all of them.

        Deselected signals resolve to an empty successful response. A failed
        response (or a fetcher exception) degrades to an empty array unless
        ``strict`` is set, in which case DataLoadError is raised.
        """
        by_signal = {Signal.parse(k): f for k, f in fetchers.items()}
        selected = set(toggles.selected())
        responses: Dict[Signal, ApiResponse] = {s: ApiResponse.ok([]) for s in SIGNAL_ORDER if s not in selected}

        jobs = {s: by_signal.get(s) for s in SIGNAL_ORDER if s in selected}
        for s, fn in list(jobs.items()):
            if fn is None:
                self.log.warning(f"No fetcher registered for selected signal '{s.value}'; using no data")
                responses[s] = ApiResponse.failed("no fetcher registered")
                del jobs[s]

        if jobs:
            with ThreadPoolExecutor(max_workers=max(1, min(self.fetch_workers, len(jobs)))) as pool:
                future_to_signal = {
                    pool.submit(fn, location.latitude, location.longitude): s for s, fn in jobs.items()
                }
                for fut in as_completed(future_to_signal):
                    s = future_to_signal[fut]
                    try:
                        responses[s] = fut.result()
                    except Exception as e:
                        responses[s] = ApiResponse.failed(f"{type(e).__name__}: {e}")

        out: Dict[Signal, List[Any]] = {}
        for s in SIGNAL_ORDER:
            resp = responses[s]
            if not resp.success:
                if strict:
                    raise DataLoadError(f"Failed to load {s.value}: {resp.error}", {"signal": s.value})
                self.log.warning(f"Fetch for '{s.value}' failed ({resp.error}); treating as empty")
                out[s] = []
            else:
                out[s] = list(resp.data or [])
        log_stage(self.log, "gather", counts={s.value: len(v) for s, v in out.items()})
        return out

    # ---- prediction -----------------------------------------------------------------

    def predict(
        self,
        samples: Mapping[Any, Sequence[Any]],
        toggles: FeatureToggles,
        model_id: Union[ModelId, str],
        location: Location,
        now: Optional[datetime] = None,
    ) -> PredictionResult:
        mid = self.validate(toggles, model_id, location)
        enhanced = mid.uses_enhanced_path
        # Deselected signals never reach the preprocessor
        selected = set(toggles.selected())
        by_signal = {Signal.parse(k): v for k, v in (samples or {}).items()}
        inputs = {s: (list(by_signal.get(s) or []) if s in selected else []) for s in SIGNAL_ORDER}

        pre = create_preprocessor(enhanced, self.cfg)
        nf = pre.process(inputs, location.latitude, location.longitude, now=now)
        pred = self.manager.predict(mid, nf.features, enhanced=enhanced)

        scale = nf.quality * (nf.data_richness if enhanced and nf.data_richness is not None else 1.0)
        confidence = clamp01(pred.confidence * clamp01(scale))
        drought_p = clamp01(pred.drought_risk)
        flood_p = clamp01(pred.flood_risk)

        data_points: Dict[str, float] = {}
        for s in SIGNAL_ORDER:
            if s in selected and inputs[s]:
                m = series_mean(inputs[s], s)
                if m is not None:
                    data_points[_TOGGLE_FIELD[s]] = m

        result = PredictionResult(
            id=f"pred_{int(time.time() * 1000)}",
            timestamp=utc_now_iso(),
            location=location,
            drought_risk=RiskAssessment(risk_level(drought_p), drought_p, confidence),
            flood_risk=RiskAssessment(risk_level(flood_p), flood_p, confidence),
            model=mid,
            features=toggles,
            data_points=data_points,
            quality=nf.quality,
            completeness=nf.completeness,
            data_richness=nf.data_richness,
            pipeline=pre.pipeline,
            uncertainty=pred.uncertainty,
        )
        log_stage(
            self.log,
            "result",
            model=mid.value,
            pipeline=pre.pipeline,
            drought=drought_p,
            flood=flood_p,
            confidence=confidence,
            regions=nf.regions,
        )
        return result

    def predict_from_fetchers(
        self,
        fetchers: Mapping[Any, Fetcher],
        toggles: FeatureToggles,
        model_id: Union[ModelId, str],
        location: Location,
        strict: bool = False,
    ) -> PredictionResult:
        self.validate(toggles, model_id, location)
        samples = self.gather(fetchers, toggles, location, strict=strict)
        return self.predict(samples, toggles, model_id, location)


class PredictionHistory:
    """In-memory results, most recent first; emptied only by clear()."""

    def __init__(self) -> None:
        self._items: List[PredictionResult] = []

    def add(self, result: PredictionResult) -> PredictionResult:
        self._items.insert(0, result)
        return result

    def latest(self) -> Optional[PredictionResult]:
        return self._items[0] if self._items else None

    def clear(self) -> None:
        self._items.clear()

    def to_list(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[PredictionResult]:
        return iter(list(self._items))
