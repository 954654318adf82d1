"""
Shared pytest fixtures for risk engine tests.

Writes a minimal engine config (reduced epochs / example counts) into a temp
folder, provides the loaded config dict via risk_engine.utils.config_loader, and
a session-wide ModelManager so each predictor trains once per test run.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

import numpy as np
import pytest

from risk_engine.manager import ModelManager
from risk_engine.schema import SIGNAL_ORDER, Signal
from risk_engine.utils.config_loader import load_yaml, resolve_config


_MIN_ENGINE_YAML = """\
run:
  random_seed: 7

logging:
  level: "WARNING"
  to_file: false
  dir: "{LOGS}"

training:
  enhanced_examples_per_archetype: 40
  basic_examples_per_archetype: 60
  series_length: 24

models:
  linear:        {epochs: 50, batch_size: 32}
  neural:        {epochs: 30, batch_size: 32}
  enhanced_neural: {epochs: 20, batch_size: 64}
  random_forest: {n_trees: 10, min_samples_split: 10}
"""

# Fixed reference clock for cleaning (stale-sample filter keys off the year)
NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def cfg_path(tmp_path: Path) -> Path:
    """Writes a minimal engine.yaml into tmp_path/configs/ and returns its path."""
    cfg_dir = tmp_path / "configs"
    cfg_dir.mkdir(parents=True, exist_ok=True)
    text = _MIN_ENGINE_YAML.replace("{LOGS}", str((tmp_path / "logs").as_posix()))
    p = cfg_dir / "engine.yaml"
    p.write_text(text, encoding="utf-8")
    return p


@pytest.fixture(scope="function")
def cfg(tmp_path: Path, cfg_path: Path) -> Dict:
    """Loads the YAML produced by cfg_path for convenience."""
    return load_yaml(cfg_path)


@pytest.fixture(scope="session")
def fast_cfg(tmp_path_factory) -> Dict:
    d = tmp_path_factory.mktemp("engine")
    p = d / "engine.yaml"
    p.write_text(_MIN_ENGINE_YAML.replace("{LOGS}", str((d / "logs").as_posix())), encoding="utf-8")
    return resolve_config(p)


@pytest.fixture(scope="session")
def manager(fast_cfg: Dict) -> ModelManager:
    return ModelManager(fast_cfg)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_samples() -> Callable[..., Dict[Signal, List[Dict]]]:
    """
    Builder: ``make_samples(levels, lat, lon, n=30, noise=0.0, seed=0)`` returns
    ``n`` daily dict records per signal around the given physical levels.
    A level of None yields an empty series for that signal.
    """

    def _build(
        levels: List[Optional[float]],
        lat: float,
        lon: float,
        n: int = 30,
        noise: float = 0.0,
        seed: int = 0,
    ) -> Dict[Signal, List[Dict]]:
        rng = np.random.default_rng(seed)
        start = NOW - timedelta(days=n)
        out: Dict[Signal, List[Dict]] = {}
        for sig, level in zip(SIGNAL_ORDER, levels):
            if level is None:
                out[sig] = []
                continue
            out[sig] = [
                {
                    "timestamp": (start + timedelta(days=i)).isoformat(),
                    "latitude": lat,
                    "longitude": lon,
                    "value": float(level + (rng.normal(0.0, noise) if noise else 0.0)),
                }
                for i in range(n)
            ]
        return out

    return _build
