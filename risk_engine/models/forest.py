"""
Randomized tree ensemble (NumPy only).

Each tree partitions the training set by a uniformly random feature index and a
uniformly random threshold inside that feature's [min, max] in the current node
(left: x <= t, right: x > t). A node becomes a leaf holding the mean
(drought, flood) when it has fewer than ``min_samples_split`` examples or when a
split would leave one side empty.

Confidence grows with tree agreement:
    min(0.95, 0.65 + 0.3·(1 - sqrt(var_drought + var_flood)))
with population variances taken across the trees' outputs.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from ..schema import ModelPrediction, TrainingExample
from ..training_data import to_arrays
from .base import MAX_CONFIDENCE, ExampleFactory, Predictor, clip01
from ..utils.logging_utils import log_stage


@dataclass
class ForestConfig:
    n_trees: int = 50
    min_samples_split: int = 10
    seed: int = 42
    confidence_floor: float = 0.65
    confidence_weight: float = 0.3


@dataclass
class _Leaf:
    drought: float
    flood: float


@dataclass
class _Split:
    feature: int
    threshold: float
    left: "Node"
    right: "Node"


Node = Union[_Leaf, _Split]


def _leaf(y: np.ndarray) -> _Leaf:
    return _Leaf(drought=float(y[:, 0].mean()), flood=float(y[:, 1].mean()))


def build_tree(X: np.ndarray, y: np.ndarray, rng: np.random.Generator, min_samples_split: int = 10) -> Node:
    """Grow one random-split tree over rows (X, y)."""
    if len(X) < min_samples_split:
        return _leaf(y)
    feat = int(rng.integers(0, X.shape[1]))
    col = X[:, feat]
    lo, hi = float(col.min()), float(col.max())
    thr = float(rng.uniform(lo, hi)) if hi > lo else lo
    mask = col <= thr
    if mask.all() or not mask.any():
        return _leaf(y)
    return _Split(
        feature=feat,
        threshold=thr,
        left=build_tree(X[mask], y[mask], rng, min_samples_split),
        right=build_tree(X[~mask], y[~mask], rng, min_samples_split),
    )


def tree_predict(node: Node, x: np.ndarray) -> Tuple[float, float]:
    while isinstance(node, _Split):
        node = node.left if x[node.feature] <= node.threshold else node.right
    return node.drought, node.flood


def tree_depth(node: Node) -> int:
    if isinstance(node, _Leaf):
        return 0
    return 1 + max(tree_depth(node.left), tree_depth(node.right))


class RandomForestPredictor(Predictor):
    name = "random_forest"

    def __init__(self, n_features: int = 5, cfg: Optional[ForestConfig] = None, example_factory: Optional[ExampleFactory] = None) -> None:
        super().__init__(n_features, example_factory)
        self.cfg = cfg or ForestConfig()
        self.trees: List[Node] = []

    def _fit(self, examples: List[TrainingExample]) -> None:
        X, y = to_arrays(examples)
        rng = np.random.default_rng(self.cfg.seed)
        self.trees = [build_tree(X, y, rng, self.cfg.min_samples_split) for _ in range(self.cfg.n_trees)]
        depths = [tree_depth(t) for t in self.trees]
        log_stage(
            self.log,
            "train",
            level=logging.INFO,
            trees=len(self.trees),
            examples=len(X),
            mean_depth=float(np.mean(depths)) if depths else 0.0,
        )

    def _predict(self, x: np.ndarray) -> ModelPrediction:
        outs = np.array([tree_predict(t, x) for t in self.trees], dtype=np.float64)
        drought, flood = outs.mean(axis=0)
        spread = math.sqrt(float(outs[:, 0].var() + outs[:, 1].var()))
        conf = min(MAX_CONFIDENCE, self.cfg.confidence_floor + self.cfg.confidence_weight * (1.0 - spread))
        return ModelPrediction(drought_risk=clip01(drought), flood_risk=clip01(flood), confidence=clip01(conf))

    def info(self) -> Dict[str, Any]:
        out = super().info()
        out["trees"] = len(self.trees)
        return out
