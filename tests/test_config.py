from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from risk_engine.errors import InputValidationError, RiskEngineError, UnknownModelError
from risk_engine.utils.config_loader import DEFAULT_CONFIG, deep_merge, load_yaml, resolve_config, section
from risk_engine.utils.logging_utils import get_logger, init_logging, log_stage


def test_defaults_without_a_file():
    cfg = resolve_config()
    assert cfg == DEFAULT_CONFIG
    assert cfg is not DEFAULT_CONFIG
    cfg["models"]["linear"]["epochs"] = 1
    assert DEFAULT_CONFIG["models"]["linear"]["epochs"] == 50


def test_yaml_merges_over_defaults(cfg_path: Path):
    cfg = resolve_config(cfg_path)
    assert cfg["models"]["linear"]["epochs"] == 50
    assert cfg["models"]["neural"]["epochs"] == 30
    assert cfg["models"]["neural"]["hidden"] == [64, 32, 16]
    assert cfg["run"]["random_seed"] == 7
    assert cfg["prediction"]["min_features"] == 2


def test_json_overrides_win(cfg_path: Path):
    cfg = resolve_config(cfg_path, overrides_json=json.dumps({"models": {"neural": {"epochs": 3}}}))
    assert cfg["models"]["neural"]["epochs"] == 3
    assert cfg["models"]["neural"]["batch_size"] == 32


def test_load_yaml(cfg, tmp_path: Path):
    assert cfg["training"]["basic_examples_per_archetype"] == 60
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_yaml(empty) == {}
    with pytest.raises(FileNotFoundError):
        load_yaml(tmp_path / "missing.yaml")


def test_deep_merge_and_section(cfg):
    assert deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}}) == {"a": {"b": 1, "c": 3}}
    rf = section(cfg, "models", "random_forest")
    assert rf == {"n_trees": 10, "min_samples_split": 10}
    assert section(None, "prediction") == {"min_features": 2, "fetch_workers": 5}
    assert section({"prediction": None}, "prediction")["fetch_workers"] == 5


def test_error_payloads():
    err = InputValidationError("bad", {"field": "lat"})
    assert err.to_dict() == {"code": "VALIDATION_ERROR", "message": "bad", "details": {"field": "lat"}}
    assert isinstance(err, ValueError) and isinstance(err, RiskEngineError)
    assert UnknownModelError("x", enhanced=True).message == "Enhanced model x not found"


def test_jsonl_logging_keeps_stage_fields(tmp_path: Path):
    log_dir = tmp_path / "logs"
    init_logging({"logging": {"level": "DEBUG", "to_file": True, "to_json": True, "dir": str(log_dir)}}, run_id="t1")
    try:
        log = get_logger("risk.test")
        log_stage(log, "quality", quality=0.75, counts=[1, 2])
        for h in logging.getLogger().handlers:
            h.flush()
        lines = (log_dir / "risk_t1.jsonl").read_text(encoding="utf-8").splitlines()
        records = [json.loads(x) for x in lines]
        stage = [r for r in records if r.get("stage") == "quality"][0]
        assert stage["fields"] == {"quality": 0.75, "counts": [1, 2]}
        assert stage["logger"] == "risk.test"
        assert "[quality]" in (log_dir / "risk_t1.log").read_text(encoding="utf-8")
    finally:
        init_logging({"logging": {"level": "WARNING"}})


def test_default_training_set_sizes():
    training = DEFAULT_CONFIG["training"]
    assert training["enhanced_examples_per_archetype"] >= 200
    assert training["basic_examples_per_archetype"] == 100
