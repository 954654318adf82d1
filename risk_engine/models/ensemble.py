"""
Ensemble / meta-models.

- EnsemblePredictor         : fixed-weight blend of linear / neural / random_forest
                              (0.2 / 0.5 / 0.3) over drought, flood and confidence.
- EnhancedEnsemblePredictor : wraps the enhanced neural predictor and dampens it
                              (confidence ×0.95, uncertainty ×1.1, capped at 1).
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from ..schema import ModelPrediction, TrainingExample
from .base import MAX_CONFIDENCE, ExampleFactory, Predictor, clip01
from .forest import ForestConfig, RandomForestPredictor
from .linear import LinearConfig, LinearPredictor
from .neural import EnhancedNeuralPredictor, NeuralConfig, NeuralPredictor

DEFAULT_WEIGHTS: Dict[str, float] = {"linear": 0.2, "neural": 0.5, "random_forest": 0.3}


def _weighted(values: Mapping[str, float], weights: Mapping[str, float]) -> float:
    """Weighted sum; returns the shared value unchanged when every member agrees."""
    distinct = {values[k] for k in weights}
    if len(distinct) == 1:
        return distinct.pop()
    return sum(weights[k] * values[k] for k in weights)


def blend(predictions: Mapping[str, ModelPrediction], weights: Mapping[str, float]) -> ModelPrediction:
    """
    Weighted average of member predictions.

    Weights must cover every member and sum to 1. Members that agree on a value
    blend to exactly that value.
    """
    missing = set(weights) - set(predictions)
    if missing:
        raise KeyError(f"Missing member predictions: {sorted(missing)}")
    total = sum(weights.values())
    if not math.isclose(total, 1.0, abs_tol=1e-9):
        raise ValueError(f"Ensemble weights must sum to 1.0, got {total}")
    drought = _weighted({k: predictions[k].drought_risk for k in weights}, weights)
    flood = _weighted({k: predictions[k].flood_risk for k in weights}, weights)
    conf = _weighted({k: predictions[k].confidence for k in weights}, weights)
    return ModelPrediction(
        drought_risk=clip01(drought),
        flood_risk=clip01(flood),
        confidence=min(MAX_CONFIDENCE, clip01(conf)),
    )


@dataclass
class EnsembleConfig:
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))


class EnsemblePredictor(Predictor):
    name = "ensemble"

    def __init__(
        self,
        n_features: int = 5,
        cfg: Optional[EnsembleConfig] = None,
        example_factory: Optional[ExampleFactory] = None,
        linear: Optional[LinearPredictor] = None,
        neural: Optional[NeuralPredictor] = None,
        forest: Optional[RandomForestPredictor] = None,
    ) -> None:
        super().__init__(n_features, example_factory)
        self.cfg = cfg or EnsembleConfig()
        self.members: Dict[str, Predictor] = {
            "linear": linear or LinearPredictor(n_features, LinearConfig()),
            "neural": neural or NeuralPredictor(n_features, NeuralConfig()),
            "random_forest": forest or RandomForestPredictor(n_features, ForestConfig()),
        }
        unknown = set(self.cfg.weights) - set(self.members)
        if unknown:
            raise ValueError(f"Ensemble weights reference unknown members: {sorted(unknown)}")

    def _fit(self, examples: List[TrainingExample]) -> None:
        for name, member in self.members.items():
            self.log.info(f"Training ensemble member '{name}'")
            member.train(examples)

    def _predict(self, x: np.ndarray) -> ModelPrediction:
        preds = {name: m.predict(x) for name, m in self.members.items() if name in self.cfg.weights}
        return blend(preds, self.cfg.weights)


@dataclass
class EnhancedEnsembleConfig:
    confidence_scale: float = 0.95
    uncertainty_scale: float = 1.1


class EnhancedEnsemblePredictor(Predictor):
    name = "enhanced_ensemble"

    def __init__(
        self,
        n_features: int = 25,
        cfg: Optional[EnhancedEnsembleConfig] = None,
        example_factory: Optional[ExampleFactory] = None,
        base: Optional[EnhancedNeuralPredictor] = None,
    ) -> None:
        super().__init__(n_features, example_factory)
        self.cfg = cfg or EnhancedEnsembleConfig()
        self.base = base or EnhancedNeuralPredictor(n_features)

    def _fit(self, examples: List[TrainingExample]) -> None:
        self.base.train(examples)

    def _predict(self, x: np.ndarray) -> ModelPrediction:
        p = self.base.predict(x)
        uncertainty = None if p.uncertainty is None else min(1.0, p.uncertainty * self.cfg.uncertainty_scale)
        return ModelPrediction(
            drought_risk=p.drought_risk,
            flood_risk=p.flood_risk,
            confidence=clip01(p.confidence * self.cfg.confidence_scale),
            uncertainty=uncertainty,
            feature_importance=p.feature_importance,
        )

    def info(self) -> Dict[str, Any]:
        out = super().info()
        out["base"] = self.base.info()
        return out
