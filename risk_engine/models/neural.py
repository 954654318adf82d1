# /risk_engine/models/neural.py
# ======================================================================================
# Climate Risk Engine
# Neural predictors — feed-forward MLPs for the basic (5) and enhanced (25) paths
# --------------------------------------------------------------------------------------
# One network with two sigmoid outputs (drought, flood) stands in for two separate
# per-target networks; hidden layers are shared between the targets.
#
# Basic    : in → 64 relu → drop .2 → 32 relu → drop .2 → 16 relu → 2 sigmoid
#            L2 0.01 on the first two kernels, Adam 1e-3, MSE, 100 epochs, batch 32.
# Enhanced : in → 128 relu → BN → drop .3 → 64 relu → BN → drop .2 → 32 relu → drop .1
#            → 2 sigmoid; L2 0.001 on hidden kernels and biases, Adam 1e-3,
#            binary cross-entropy, 200 epochs, batch 64.
#
# Enhanced predictions also carry:
#   uncertainty        = min(1, 2·|drought − flood|)
#   feature_importance = |x_i| / (i + 1)   (position-weighted magnitude, not a
#                                            sensitivity measure)
#
# License
# -------
# MIT (c) 2025 Climate Risk Engine contributors
# ======================================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn

from ..schema import ModelPrediction, TrainingExample
from .base import ExampleFactory, FitResult, Predictor, fit_network, forward_one, nonzero_confidence


@dataclass
class NeuralConfig:
    """
    Parameters for the MLP predictors.

    hidden : List[int]            Hidden layer widths
    dropout : List[float]         Dropout after each hidden layer (0 disables)
    batch_norm : List[bool]       BatchNorm1d after each hidden layer's activation
    l2 : float                    Penalty weight on regularized tensors
    l2_layers : int               How many leading hidden layers are regularized
    l2_bias : bool                Also regularize those layers' biases
    loss : str                    'mse' | 'bce'
    confidence_floor, confidence_weight : float
        confidence = min(0.95, floor + weight·nonzero/len)
    """
    hidden: List[int] = field(default_factory=lambda: [64, 32, 16])
    dropout: List[float] = field(default_factory=lambda: [0.2, 0.2, 0.0])
    batch_norm: List[bool] = field(default_factory=lambda: [False, False, False])
    epochs: int = 100
    batch_size: int = 32
    lr: float = 0.001
    l2: float = 0.01
    l2_layers: int = 2
    l2_bias: bool = False
    loss: str = "mse"
    validation_split: float = 0.2
    seed: int = 42
    confidence_floor: float = 0.7
    confidence_weight: float = 0.25


def enhanced_neural_config(**overrides) -> NeuralConfig:
    base = dict(
        hidden=[128, 64, 32],
        dropout=[0.3, 0.2, 0.1],
        batch_norm=[True, True, False],
        epochs=200,
        batch_size=64,
        lr=0.001,
        l2=0.001,
        l2_layers=3,
        l2_bias=True,
        loss="bce",
        confidence_floor=0.8,
        confidence_weight=0.2,
    )
    base.update(overrides)
    return NeuralConfig(**base)


class _MLP(nn.Module):
    def __init__(self, in_features: int, hidden: Sequence[int], dropout: Sequence[float], batch_norm: Sequence[bool]) -> None:
        super().__init__()
        layers: List[nn.Module] = []
        self.dense: List[nn.Linear] = []
        prev = in_features
        for i, width in enumerate(hidden):
            lin = nn.Linear(prev, width)
            self.dense.append(lin)
            layers += [lin, nn.ReLU()]
            if i < len(batch_norm) and batch_norm[i]:
                layers.append(nn.BatchNorm1d(width))
            if i < len(dropout) and dropout[i] > 0:
                layers.append(nn.Dropout(dropout[i]))
            prev = width
        layers += [nn.Linear(prev, 2), nn.Sigmoid()]
        self.net = nn.Sequential(*layers)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.net(x)


class NeuralPredictor(Predictor):
    name = "neural"

    def __init__(self, n_features: int = 5, cfg: Optional[NeuralConfig] = None, example_factory: Optional[ExampleFactory] = None) -> None:
        super().__init__(n_features, example_factory)
        self.cfg = cfg or NeuralConfig()
        torch.manual_seed(self.cfg.seed)
        self.model = _MLP(self.n_features, self.cfg.hidden, self.cfg.dropout, self.cfg.batch_norm)
        self.fit_result_: Optional[FitResult] = None

    def _regularized(self) -> List[torch.Tensor]:
        out: List[torch.Tensor] = []
        for lin in self.model.dense[: self.cfg.l2_layers]:
            out.append(lin.weight)
            if self.cfg.l2_bias:
                out.append(lin.bias)
        return out

    def _fit(self, examples: List[TrainingExample]) -> None:
        self.fit_result_ = fit_network(
            self.model,
            examples,
            epochs=self.cfg.epochs,
            batch_size=self.cfg.batch_size,
            lr=self.cfg.lr,
            l2=self.cfg.l2,
            regularized=self._regularized(),
            loss=self.cfg.loss,
            validation_split=self.cfg.validation_split,
            seed=self.cfg.seed,
            log_name=f"risk.models.{self.name}",
        )

    def _predict(self, x: np.ndarray) -> ModelPrediction:
        drought, flood = forward_one(self.model, x)
        conf = nonzero_confidence(x, self.cfg.confidence_floor, self.cfg.confidence_weight)
        return ModelPrediction(drought_risk=drought, flood_risk=flood, confidence=conf)


class EnhancedNeuralPredictor(NeuralPredictor):
    name = "enhanced_neural"

    def __init__(self, n_features: int = 25, cfg: Optional[NeuralConfig] = None, example_factory: Optional[ExampleFactory] = None) -> None:
        super().__init__(n_features, cfg or enhanced_neural_config(), example_factory)

    def _predict(self, x: np.ndarray) -> ModelPrediction:
        base = super()._predict(x)
        uncertainty = min(1.0, 2.0 * abs(base.drought_risk - base.flood_risk))
        importance = [float(abs(v)) / (i + 1) for i, v in enumerate(x)]
        return ModelPrediction(
            drought_risk=base.drought_risk,
            flood_risk=base.flood_risk,
            confidence=base.confidence,
            uncertainty=uncertainty,
            feature_importance=importance,
        )
