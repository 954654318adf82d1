"""
Climate Risk Engine — Core Python Package

Estimates drought and flood risk for a point from five environmental signals:
1) preprocess   → clean, aggregate, geo-adjust, normalize raw samples
2) models       → linear / neural / random-split forest / ensemble predictors
3) manager      → train-once model registry (explicit context object)
4) orchestrator → validation, path routing, risk bucketing, result history

Design goals
------------
- Config-driven: hyper-parameters and thresholds live in YAML (configs/engine.yaml).
- Reproducible: deterministic seeds for numpy and torch.
- Observable: one structured log record per pipeline stage.

License: MIT
"""
from __future__ import annotations

import os

__all__ = [
    "cli",
    "stats",
    "features",
    "preprocess",
    "training_data",
    "models",
    "manager",
    "orchestrator",
    "get_version",
    "set_global_seed",
]


def get_version() -> str:
    """Package version; honors RISK_ENGINE_VERSION when set (CI stamping)."""
    return os.environ.get("RISK_ENGINE_VERSION", "0.3.0")


def set_global_seed(seed: int = 42) -> None:
    """
    Set NumPy and PyTorch RNG seeds for reproducibility.
    """
    import numpy as _np
    import torch as _torch

    _np.random.seed(seed)
    _torch.manual_seed(seed)
    if _torch.cuda.is_available():
        _torch.cuda.manual_seed_all(seed)


__version__ = get_version()
