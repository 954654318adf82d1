from __future__ import annotations

import numpy as np
import pytest

import risk_engine.orchestrator as orchestrator_mod
from risk_engine.errors import DataLoadError, InputValidationError, UnknownModelError
from risk_engine.orchestrator import PredictionHistory, PredictionOrchestrator, risk_level
from risk_engine.preprocess import create_preprocessor
from risk_engine.schema import ApiResponse, FeatureToggles, Location, ModelId, RiskLevel, Signal

SAHARA = Location(20.0, 10.0)
PLAINS = Location(45.0, -100.0)  # no region clamps apply


@pytest.fixture
def orch(manager, fast_cfg):
    return PredictionOrchestrator(manager, fast_cfg)


@pytest.mark.parametrize(
    "p,level",
    [
        (0.0, RiskLevel.LOW),
        (0.2499, RiskLevel.LOW),
        (0.25, RiskLevel.MEDIUM),
        (0.4999, RiskLevel.MEDIUM),
        (0.5, RiskLevel.HIGH),
        (0.7499, RiskLevel.HIGH),
        (0.75, RiskLevel.EXTREME),
        (1.0, RiskLevel.EXTREME),
    ],
)
def test_risk_level_thresholds(p, level):
    assert risk_level(p) is level


# --------------------------------------------------------------------------------------
# end-to-end scenarios
# --------------------------------------------------------------------------------------

def test_sahara_linear_leans_to_drought(orch, make_samples):
    samples = make_samples([10.0, 40.0, 80.0, 0.0, 0.0], SAHARA.latitude, SAHARA.longitude)
    result = orch.predict(samples, FeatureToggles(), "linear", SAHARA)
    assert result.pipeline == "basic"
    assert result.drought_risk.probability > result.flood_risk.probability
    assert result.quality > 0.5
    assert result.drought_risk.level is risk_level(result.drought_risk.probability)
    assert result.data_points["soil_moisture"] == pytest.approx(10.0)
    assert result.data_points["fire_index"] == pytest.approx(80.0)


def test_single_toggle_rejected_before_preprocessing(orch, make_samples, monkeypatch):
    def _boom(*args, **kwargs):
        raise AssertionError("preprocessor must not run")

    monkeypatch.setattr(orchestrator_mod, "create_preprocessor", _boom)
    toggles = FeatureToggles.from_signals([Signal.SOIL_MOISTURE])
    with pytest.raises(InputValidationError, match="Please select at least 2 features for prediction") as exc:
        orch.predict(make_samples([10.0] * 5, 0.0, 0.0), toggles, "linear", Location(0.0, 0.0))
    assert exc.value.code == "VALIDATION_ERROR"


def test_all_empty_signals_still_produce_a_result(orch):
    samples = {s: [] for s in Signal}
    toggles = FeatureToggles(glacier_melting=False, sea_level=False, fire_index=False)
    result = orch.predict(samples, toggles, "linear", PLAINS)
    assert result.quality == pytest.approx(0.0)
    assert result.drought_risk.confidence == pytest.approx(0.0)
    assert result.data_points == {}
    nf = create_preprocessor(False).process(samples, PLAINS.latitude, PLAINS.longitude)
    assert np.all(nf.raw_features[:5] == 0.0)


@pytest.mark.parametrize(
    "model,pipeline",
    [("linear", "basic"), ("random_forest", "basic"), ("neural", "enhanced"), ("ensemble", "enhanced")],
)
def test_enhanced_path_only_for_neural_and_ensemble(orch, make_samples, model, pipeline):
    samples = make_samples([40.0, 18.0, 35.0, 0.02, 0.5], PLAINS.latitude, PLAINS.longitude, noise=0.5)
    result = orch.predict(samples, FeatureToggles(), model, PLAINS)
    assert result.pipeline == pipeline
    assert result.model is ModelId(model)
    assert (result.data_richness is not None) == (pipeline == "enhanced")
    assert (result.uncertainty is not None) == (pipeline == "enhanced")


# --------------------------------------------------------------------------------------
# confidence and validation
# --------------------------------------------------------------------------------------

def test_confidence_is_dampened_by_quality(orch, manager, make_samples):
    samples = make_samples([40.0, 18.0, 35.0, 0.02, 0.5], PLAINS.latitude, PLAINS.longitude)
    samples[Signal.FIRE_INDEX] = samples[Signal.FIRE_INDEX][:15]
    result = orch.predict(samples, FeatureToggles(), "linear", PLAINS)
    nf = create_preprocessor(False).process(samples, PLAINS.latitude, PLAINS.longitude)
    raw = manager.predict("linear", nf.features)
    assert nf.quality == pytest.approx(0.7)
    assert result.drought_risk.confidence == pytest.approx(raw.confidence * nf.quality)
    assert result.drought_risk.confidence <= raw.confidence


def test_enhanced_confidence_also_scaled_by_richness(orch, manager, make_samples):
    samples = make_samples([40.0, 18.0, 35.0, 0.02, 0.5], PLAINS.latitude, PLAINS.longitude, noise=0.5)
    result = orch.predict(samples, FeatureToggles(), "ensemble", PLAINS)
    nf = create_preprocessor(True).process(samples, PLAINS.latitude, PLAINS.longitude)
    raw = manager.predict("ensemble", nf.features, enhanced=True)
    assert result.flood_risk.confidence == pytest.approx(raw.confidence * nf.quality * nf.data_richness)


@pytest.mark.parametrize("loc", [Location(91.0, 0.0), Location(0.0, 200.0)])
def test_out_of_range_coordinates_rejected(orch, loc):
    with pytest.raises(InputValidationError):
        orch.validate(FeatureToggles(), "linear", loc)


def test_unknown_model_rejected(orch):
    with pytest.raises(UnknownModelError, match="Model xgboost not found"):
        orch.validate(FeatureToggles(), "xgboost", PLAINS)


def test_deselected_signals_are_ignored(orch, make_samples):
    samples = make_samples([40.0, 18.0, 35.0, 0.02, 0.5], PLAINS.latitude, PLAINS.longitude)
    toggles = FeatureToggles(sea_level=False, glacier_melting=False)
    result = orch.predict(samples, toggles, "linear", PLAINS)
    assert set(result.data_points) == {"soil_moisture", "surface_temperature", "fire_index"}


# --------------------------------------------------------------------------------------
# concurrent gathering
# --------------------------------------------------------------------------------------

def _fetchers(make_samples, loc, calls):
    data = make_samples([40.0, 18.0, 35.0, 0.02, 0.5], loc.latitude, loc.longitude)

    def ok(sig):
        def _fetch(lat, lon):
            calls.append(sig)
            return ApiResponse.ok(data[sig])
        return _fetch

    def failing(lat, lon):
        calls.append(Signal.SEA_LEVEL)
        return ApiResponse.failed("upstream 503")

    def raising(lat, lon):
        calls.append(Signal.GLACIER_MELT)
        raise ConnectionError("timed out")

    return {
        "soilMoisture": ok(Signal.SOIL_MOISTURE),
        "temperature": ok(Signal.TEMPERATURE),
        "fireIndex": ok(Signal.FIRE_INDEX),
        "seaLevel": failing,
        "glacierMelt": raising,
    }


def test_gather_degrades_failed_fetches_to_empty(orch, make_samples):
    calls = []
    out = orch.gather(_fetchers(make_samples, PLAINS, calls), FeatureToggles(), PLAINS)
    assert len(out[Signal.SOIL_MOISTURE]) == 30
    assert out[Signal.SEA_LEVEL] == []
    assert out[Signal.GLACIER_MELT] == []
    assert len(calls) == 5


def test_gather_strict_raises_data_load_error(orch, make_samples):
    with pytest.raises(DataLoadError) as exc:
        orch.gather(_fetchers(make_samples, PLAINS, []), FeatureToggles(), PLAINS, strict=True)
    assert exc.value.code == "DATA_LOAD_ERROR"


def test_gather_skips_deselected_fetchers(orch, make_samples):
    calls = []
    toggles = FeatureToggles(sea_level=False, glacier_melting=False)
    out = orch.gather(_fetchers(make_samples, PLAINS, calls), toggles, PLAINS, strict=True)
    assert sorted(s.value for s in calls) == ["fire_index", "soil_moisture", "temperature"]
    assert out[Signal.SEA_LEVEL] == [] and out[Signal.GLACIER_MELT] == []


def test_predict_from_fetchers_end_to_end(orch, make_samples):
    result = orch.predict_from_fetchers(_fetchers(make_samples, PLAINS, []), FeatureToggles(), "random_forest", PLAINS)
    assert result.pipeline == "basic"
    assert "sea_level" not in result.data_points
    assert result.completeness == pytest.approx(3 / 5)


# --------------------------------------------------------------------------------------
# history / serialization
# --------------------------------------------------------------------------------------

def test_history_is_most_recent_first(orch, make_samples):
    samples = make_samples([40.0, 18.0, 35.0, 0.02, 0.5], PLAINS.latitude, PLAINS.longitude)
    history = PredictionHistory()
    first = history.add(orch.predict(samples, FeatureToggles(), "linear", PLAINS))
    second = history.add(orch.predict(samples, FeatureToggles(), "random_forest", PLAINS))
    assert len(history) == 2
    assert history.latest() is second
    assert list(history) == [second, first]
    rows = history.to_list()
    assert rows[0]["model"] == "random_forest"
    assert set(rows[0]) >= {"id", "timestamp", "droughtRisk", "floodRisk", "dataPoints", "features", "location"}
    assert rows[0]["id"].startswith("pred_")
    assert rows[0]["location"]["name"] == "Location 45.0000, -100.0000"
    history.clear()
    assert len(history) == 0 and history.latest() is None
