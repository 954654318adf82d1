from __future__ import annotations

import json

from typer.testing import CliRunner

from risk_engine import get_version
from risk_engine.cli import app, demo_samples
from risk_engine.schema import Signal

runner = CliRunner()

_FAST = json.dumps(
    {
        "training": {"basic_examples_per_archetype": 10},
        "models": {"linear": {"epochs": 2}},
    }
)


def test_version_reports_config_hash(cfg_path):
    res = runner.invoke(app, ["version", "--config", str(cfg_path)])
    assert res.exit_code == 0
    payload = json.loads(res.stdout)
    assert payload["risk_engine_version"] == get_version()
    assert payload["config_hash"].startswith("sha256:")


def test_models_lists_registry():
    res = runner.invoke(app, ["models"])
    assert res.exit_code == 0
    keys = [k for row in json.loads(res.stdout) for k in row["keys"]]
    assert "enhanced_ensemble" in keys and "rf" in keys


def test_effective_config_writes_yaml(cfg_path, tmp_path):
    out = tmp_path / "resolved.yaml"
    res = runner.invoke(app, ["effective-config", "-c", str(cfg_path), "-o", _FAST, "--out", str(out)])
    assert res.exit_code == 0
    text = out.read_text(encoding="utf-8")
    assert "basic_examples_per_archetype: 10" in text
    assert "random_seed: 7" in text


def test_selftest_linear(tmp_path):
    res = runner.invoke(
        app,
        ["selftest", "-o", _FAST, "--model", "linear", "--run-id", "cli", "--log-level", "WARNING", "--no-log-file"],
    )
    assert res.exit_code == 0, res.stdout
    assert '"pipeline": "basic"' in res.stdout
    assert '"droughtRisk"' in res.stdout


def test_selftest_unknown_model_exits_2():
    res = runner.invoke(app, ["selftest", "--model", "xgboost", "--run-id", "cli", "--log-level", "WARNING"])
    assert res.exit_code == 2
    assert "PREDICTION_ERROR" in res.stdout


def test_demo_samples_cover_every_signal():
    samples = demo_samples(70.0, 20.0, days=5)
    assert set(samples) == set(Signal)
    assert all(len(v) == 5 for v in samples.values())
    assert all(r["value"] >= 0.0 for r in samples[Signal.SOIL_MOISTURE])
