"""
Linear predictor: one L2-regularized sigmoid unit per target (drought, flood).

Trained with Adam on squared error for a fixed number of epochs; 20% of the data
is held out and scored for logging only.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import torch
import torch.nn as nn

from ..schema import ModelPrediction, TrainingExample
from .base import ExampleFactory, FitResult, Predictor, fit_network, forward_one, nonzero_confidence


@dataclass
class LinearConfig:
    epochs: int = 50
    batch_size: int = 32
    lr: float = 0.01
    l2: float = 0.01
    validation_split: float = 0.2
    seed: int = 42
    confidence_floor: float = 0.6
    confidence_weight: float = 0.3


class _SigmoidRegression(nn.Module):
    def __init__(self, in_features: int) -> None:
        super().__init__()
        self.dense = nn.Linear(in_features, 2)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.sigmoid(self.dense(x))


class LinearPredictor(Predictor):
    name = "linear"

    def __init__(self, n_features: int = 5, cfg: Optional[LinearConfig] = None, example_factory: Optional[ExampleFactory] = None) -> None:
        super().__init__(n_features, example_factory)
        self.cfg = cfg or LinearConfig()
        self.model = _SigmoidRegression(self.n_features)
        self.fit_result_: Optional[FitResult] = None

    def _fit(self, examples: List[TrainingExample]) -> None:
        self.fit_result_ = fit_network(
            self.model,
            examples,
            epochs=self.cfg.epochs,
            batch_size=self.cfg.batch_size,
            lr=self.cfg.lr,
            l2=self.cfg.l2,
            regularized=[self.model.dense.weight],
            loss="mse",
            validation_split=self.cfg.validation_split,
            seed=self.cfg.seed,
            log_name=f"risk.models.{self.name}",
        )

    def _predict(self, x: np.ndarray) -> ModelPrediction:
        drought, flood = forward_one(self.model, x)
        conf = nonzero_confidence(x, self.cfg.confidence_floor, self.cfg.confidence_weight)
        return ModelPrediction(drought_risk=drought, flood_risk=flood, confidence=conf)
