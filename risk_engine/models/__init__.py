# /risk_engine/models/__init__.py
# ======================================================================================
# Climate Risk Engine
# Models package — registry of predictor factories
# --------------------------------------------------------------------------------------
# Every predictor shares the contract in `base.Predictor`:
#     train(examples) -> None          (idempotent)
#     ensure_trained() -> None         (single-flight lazy training)
#     predict(features) -> ModelPrediction
#
# Registry keys
# -------------
#   linear             LinearPredictor            (5 features)
#   neural             NeuralPredictor            (5 features)
#   random_forest      RandomForestPredictor      (5 features)   alias: forest, rf
#   ensemble           EnsemblePredictor          (5 features)
#   enhanced_neural    EnhancedNeuralPredictor    (25 features)
#   enhanced_ensemble  EnhancedEnsemblePredictor  (25 features)
#
# Example
# -------
#     from risk_engine.models import create
#     rf = create("random_forest", n_trees=20)
#
# License
# -------
# MIT (c) 2025 Climate Risk Engine contributors
# ======================================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Callable, Dict, List, Optional

from .base import Predictor, TrainingState, config_from_dict
from .ensemble import (
    DEFAULT_WEIGHTS,
    EnhancedEnsembleConfig,
    EnhancedEnsemblePredictor,
    EnsembleConfig,
    EnsemblePredictor,
    blend,
)
from .forest import ForestConfig, RandomForestPredictor
from .linear import LinearConfig, LinearPredictor
from .neural import EnhancedNeuralPredictor, NeuralConfig, NeuralPredictor, enhanced_neural_config

__all__ = [
    "ModelRegistry",
    "REGISTRY",
    "create",
    "create_from_config",
    "get_available",
    "get_registry_table",
    "Predictor",
    "TrainingState",
    "LinearPredictor",
    "LinearConfig",
    "NeuralPredictor",
    "EnhancedNeuralPredictor",
    "NeuralConfig",
    "enhanced_neural_config",
    "RandomForestPredictor",
    "ForestConfig",
    "EnsemblePredictor",
    "EnsembleConfig",
    "EnhancedEnsemblePredictor",
    "EnhancedEnsembleConfig",
    "DEFAULT_WEIGHTS",
    "blend",
]


# ======================================================================================
# Registry & Factories
# ======================================================================================

@dataclass
class _Entry:
    """Internal: registry entry describing one constructible predictor."""
    name: str
    factory: Callable[..., Predictor]
    n_features: int
    summary: str = ""


class ModelRegistry:
    """
    Registry mapping a key → factory(**config_kwargs) → Predictor.

    Unknown config keys are ignored so a whole YAML section can be passed through.
    """

    def __init__(self) -> None:
        self._map: Dict[str, _Entry] = {}

    def register(self, name: str, factory: Callable[..., Predictor], n_features: int, summary: str = "") -> None:
        key = name.strip().lower()
        self._map[key] = _Entry(name=key, factory=factory, n_features=n_features, summary=summary)

    def register_alias(self, alias: str, target: str) -> None:
        alias_key = alias.strip().lower()
        target_key = target.strip().lower()
        if target_key not in self._map:
            raise KeyError(f"Cannot alias unknown target '{target}'.")
        self._map[alias_key] = self._map[target_key]

    def create(self, name: str, /, **kwargs: Any) -> Predictor:
        key = name.strip().lower()
        if key not in self._map:
            raise KeyError(f"Unknown model '{name}'. Known: {sorted(self._map)}")
        return self._map[key].factory(**kwargs)

    def keys(self) -> List[str]:
        return sorted(self._map.keys())

    def __contains__(self, name: str) -> bool:
        return name.strip().lower() in self._map

    def __len__(self) -> int:
        return len(self._map)


def _factory_linear(example_factory=None, **kwargs: Any) -> Predictor:
    """Accepts keys from LinearConfig(**kwargs)."""
    return LinearPredictor(5, config_from_dict(LinearConfig, kwargs), example_factory)


def _factory_neural(example_factory=None, **kwargs: Any) -> Predictor:
    """Accepts keys from NeuralConfig(**kwargs)."""
    return NeuralPredictor(5, config_from_dict(NeuralConfig, kwargs), example_factory)


def _factory_forest(example_factory=None, **kwargs: Any) -> Predictor:
    """Accepts keys from ForestConfig(**kwargs)."""
    return RandomForestPredictor(5, config_from_dict(ForestConfig, kwargs), example_factory)


def _factory_ensemble(example_factory=None, linear=None, neural=None, forest=None, **kwargs: Any) -> Predictor:
    """Members may be injected (shared with the manager) or built with defaults."""
    return EnsemblePredictor(5, config_from_dict(EnsembleConfig, kwargs), example_factory, linear, neural, forest)


def _factory_enhanced_neural(example_factory=None, **kwargs: Any) -> Predictor:
    known = {k: v for k, v in kwargs.items() if k in NeuralConfig.__dataclass_fields__}
    return EnhancedNeuralPredictor(25, enhanced_neural_config(**known), example_factory)


def _factory_enhanced_ensemble(example_factory=None, base=None, **kwargs: Any) -> Predictor:
    return EnhancedEnsemblePredictor(25, config_from_dict(EnhancedEnsembleConfig, kwargs), example_factory, base)


REGISTRY = ModelRegistry()
REGISTRY.register("linear", _factory_linear, 5, "Sigmoid regression per target, L2, Adam/MSE (torch)")
REGISTRY.register("neural", _factory_neural, 5, "MLP 64-32-16 with dropout, Adam/MSE (torch)")
REGISTRY.register("random_forest", _factory_forest, 5, "Bagged random-split regression trees (numpy)")
REGISTRY.register_alias("forest", "random_forest")
REGISTRY.register_alias("rf", "random_forest")
REGISTRY.register("ensemble", _factory_ensemble, 5, "Weighted blend linear .2 / neural .5 / forest .3")
REGISTRY.register("enhanced_neural", _factory_enhanced_neural, 25, "MLP 128-64-32 with BN + dropout, Adam/BCE (torch)")
REGISTRY.register("enhanced_ensemble", _factory_enhanced_ensemble, 25, "Enhanced neural with dampened confidence")


# ======================================================================================
# Public helpers
# ======================================================================================

def create(name: str, /, **kwargs: Any) -> Predictor:
    """
    Create a predictor by registry key.

    Example
    -------
        model = create("linear", epochs=10)
    """
    return REGISTRY.create(name, **kwargs)


def get_available() -> List[str]:
    return REGISTRY.keys()


def get_registry_table() -> List[Dict[str, Any]]:
    """
    One row per unique factory (aliases collapsed): keys, feature width, summary.
    """
    by_id: Dict[int, Dict[str, Any]] = {}
    for k, e in REGISTRY._map.items():  # type: ignore[attr-defined]
        row = by_id.setdefault(id(e), {"keys": [], "features": e.n_features, "summary": e.summary})
        row["keys"].append(k)
    rows = []
    for row in by_id.values():
        row["keys"] = sorted(row["keys"])
        rows.append(row)
    rows.sort(key=lambda r: r["keys"][0])
    return rows


def create_from_config(key: str, cfg: Any, example_factory: Optional[Callable] = None, **members: Any) -> Predictor:
    """
    Create a predictor from a registry key and a config dataclass or dict.

    Example
    -------
        rf = create_from_config("random_forest", {"n_trees": 20})
    """
    if is_dataclass(cfg):
        kwargs = asdict(cfg)  # type: ignore[arg-type]
    elif isinstance(cfg, dict):
        kwargs = dict(cfg)
    elif cfg is None:
        kwargs = {}
    else:
        raise TypeError("cfg must be a dataclass instance or a dict of kwargs")
    return create(key, example_factory=example_factory, **members, **kwargs)
