"""
Config loader & resolver

- load_yaml(path): loads YAML into dict (requires PyYAML)
- deep_merge(a, b): recursive dict merge, b wins
- resolve_config(path, overrides_json): built-in defaults <- YAML file <- JSON overrides

Every section has a default so the engine runs without any config file; YAML only
needs to mention what it changes.
"""
from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml
except ImportError as e:
    raise ImportError(
        "PyYAML is required to load configs. Install with: pip install pyyaml"
    ) from e


DEFAULT_CONFIG: Dict[str, Any] = {
    "run": {"random_seed": 42},
    "logging": {"level": "INFO", "to_file": False, "to_json": False, "dir": "logs"},
    "training": {
        "enhanced_examples_per_archetype": 200,
        "basic_examples_per_archetype": 100,
        "series_length": 24,
        "validation_split": 0.2,
    },
    "models": {
        "linear": {"epochs": 50, "batch_size": 32, "lr": 0.01, "l2": 0.01},
        "neural": {
            "epochs": 100,
            "batch_size": 32,
            "lr": 0.001,
            "l2": 0.01,
            "hidden": [64, 32, 16],
            "dropout": [0.2, 0.2, 0.0],
        },
        "enhanced_neural": {
            "epochs": 200,
            "batch_size": 64,
            "lr": 0.001,
            "l2": 0.001,
            "hidden": [128, 64, 32],
            "dropout": [0.3, 0.2, 0.1],
        },
        "random_forest": {"n_trees": 50, "min_samples_split": 10},
        "ensemble": {"weights": {"linear": 0.2, "neural": 0.5, "random_forest": 0.3}},
        "enhanced_ensemble": {"confidence_scale": 0.95, "uncertainty_scale": 1.1},
    },
    "preprocess": {
        "max_age_years": 10,
        "expected_min_points": 10,
        "basic_richness_points": 50,
        "enhanced_richness_points": 250,
    },
    "prediction": {"min_features": 2, "fetch_workers": 5},
}


def load_yaml(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    return yaml.safe_load(p.read_text()) or {}


def deep_merge(a: Dict, b: Dict) -> Dict:
    """Recursively merge dict b into a (returns a new dict)."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def resolve_config(path: Optional[str | Path] = None, overrides_json: Optional[str] = None) -> Dict:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if path:
        cfg = deep_merge(cfg, load_yaml(path))
    if overrides_json:
        # Accept a JSON string (e.g. {"models":{"linear":{"epochs":10}}})
        overrides = json.loads(overrides_json)
        cfg = deep_merge(cfg, overrides)
    return cfg


def section(cfg: Optional[Dict], *keys: str) -> Dict[str, Any]:
    """Return a nested section of cfg falling back to DEFAULT_CONFIG, never None."""
    dflt: Dict[str, Any] = DEFAULT_CONFIG
    cur: Any = cfg or {}
    for k in keys:
        dflt = dflt.get(k) or {}
        cur = cur.get(k) if isinstance(cur, dict) else None
    return deep_merge(dflt, cur if isinstance(cur, dict) else {})
