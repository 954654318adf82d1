# /risk_engine/models/base.py
# ======================================================================================
# Climate Risk Engine
# Predictor base — lifecycle state machine + shared torch training loop
# --------------------------------------------------------------------------------------
# Lifecycle
# ---------
#   UNTRAINED --ensure_trained()/train()--> TRAINING --ok--> READY
#                                               └--error--> UNTRAINED (re-raised)
#
#   • train(examples) is idempotent: a READY predictor ignores further calls.
#   • ensure_trained() is single-flight per instance (re-entrant lock): racing callers
#     block until the first training finishes, then reuse the result.
#   • predict() on an UNTRAINED predictor trains lazily from `example_factory`.
#
# Inputs are normalized feature vectors ([0,1] per slot); labels are (drought, flood).
#
# License
# -------
# MIT (c) 2025 Climate Risk Engine contributors
# ======================================================================================

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim
from sklearn.metrics import mean_absolute_error, mean_squared_error
from sklearn.model_selection import train_test_split

from ..schema import ModelPrediction, TrainingExample
from ..training_data import to_arrays
from ..utils.logging_utils import get_logger, log_stage

ExampleFactory = Callable[[], List[TrainingExample]]
C = TypeVar("C")

MAX_CONFIDENCE = 0.95


class TrainingState(str, Enum):
    UNTRAINED = "untrained"
    TRAINING = "training"
    READY = "ready"


def config_from_dict(cls: Type[C], data: Optional[Dict[str, Any]]) -> C:
    """Build a dataclass config from a dict, ignoring keys it does not declare."""
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    return cls(**{k: v for k, v in (data or {}).items() if k in known})


def clip01(v: float) -> float:
    v = float(v)
    if not np.isfinite(v):
        return 0.0
    return float(min(1.0, max(0.0, v)))


def nonzero_confidence(features: np.ndarray, floor: float, weight: float) -> float:
    """``min(0.95, floor + weight·(nonzero/len))``."""
    x = np.asarray(features, dtype=np.float64)
    frac = np.count_nonzero(x) / x.size if x.size else 0.0
    return min(MAX_CONFIDENCE, floor + weight * frac)


class Predictor:
    """
    Common contract for every model family.

    Subclasses implement ``_fit(examples)`` and ``_predict(x) -> ModelPrediction``.
    """

    name: str = "predictor"

    def __init__(self, n_features: int, example_factory: Optional[ExampleFactory] = None) -> None:
        self.n_features = int(n_features)
        self.example_factory = example_factory
        self._state = TrainingState.UNTRAINED
        self._lock = threading.RLock()
        self.log = get_logger(f"risk.models.{self.name}")

    # ---- lifecycle ------------------------------------------------------------------

    @property
    def state(self) -> TrainingState:
        return self._state

    @property
    def is_trained(self) -> bool:
        return self._state is TrainingState.READY

    def train(self, examples: Sequence[TrainingExample]) -> None:
        with self._lock:
            if self._state is TrainingState.READY:
                return
            self._state = TrainingState.TRAINING
            try:
                self._fit(list(examples))
            except Exception:
                self._state = TrainingState.UNTRAINED
                raise
            self._state = TrainingState.READY

    def ensure_trained(self) -> None:
        if self._state is TrainingState.READY:
            return
        with self._lock:
            if self._state is TrainingState.READY:
                return
            if self.example_factory is None:
                raise RuntimeError(f"{self.name}: untrained and no example factory configured.")
            self.log.info(f"Training {self.name} on synthetic data (cold start)")
            self.train(self.example_factory())

    def predict(self, features: Sequence[float]) -> ModelPrediction:
        x = np.asarray(features, dtype=np.float32).ravel()
        if x.size != self.n_features:
            raise ValueError(f"{self.name} expects {self.n_features} features, got {x.size}")
        self.ensure_trained()
        return self._predict(x)

    # ---- subclass hooks -------------------------------------------------------------

    def _fit(self, examples: List[TrainingExample]) -> None:
        raise NotImplementedError

    def _predict(self, x: np.ndarray) -> ModelPrediction:
        raise NotImplementedError

    def info(self) -> Dict[str, Any]:
        return {"name": self.name, "features": self.n_features, "state": self._state.value}


# ======================================================================================
# Torch training loop (fixed epochs, held-out split reported but not used to stop)
# ======================================================================================

@dataclass
class FitResult:
    train_loss: float
    val_mse: Optional[float]
    val_mae: Optional[float]
    epochs: int


def _loader(X: np.ndarray, y: np.ndarray, batch_size: int, shuffle: bool, drop_last: bool = False) -> "torch.utils.data.DataLoader":
    ds = torch.utils.data.TensorDataset(torch.as_tensor(X, dtype=torch.float32), torch.as_tensor(y, dtype=torch.float32))
    return torch.utils.data.DataLoader(ds, batch_size=batch_size, shuffle=shuffle, drop_last=drop_last)


def l2_penalty(params: Sequence[torch.Tensor], l2: float) -> torch.Tensor:
    """Keras-style L2: l2 · sum(w²) over the given tensors."""
    total = torch.zeros(())
    for p in params:
        total = total + p.pow(2).sum()
    return l2 * total


def fit_network(
    model: nn.Module,
    examples: Sequence[TrainingExample],
    *,
    epochs: int,
    batch_size: int,
    lr: float,
    l2: float,
    regularized: Sequence[torch.Tensor],
    loss: str = "mse",
    validation_split: float = 0.2,
    seed: int = 42,
    log_name: str = "risk.models.train",
) -> FitResult:
    """
    Adam + (MSE | BCE) + explicit L2 penalty, fixed epoch budget.

    ``validation_split`` of the data is held out via sklearn and scored after
    training for logging only.
    """
    log = get_logger(log_name)
    X, y = to_arrays(examples)
    torch.manual_seed(seed)

    if 0.0 < validation_split < 1.0 and len(X) >= 10:
        X_tr, X_val, y_tr, y_val = train_test_split(X, y, test_size=validation_split, random_state=seed)
    else:
        X_tr, X_val, y_tr, y_val = X, None, y, None

    has_bn = any(isinstance(m, nn.BatchNorm1d) for m in model.modules())
    # BatchNorm cannot normalize a trailing batch of one
    drop_last = has_bn and len(X_tr) > batch_size and len(X_tr) % batch_size == 1
    train_loader = _loader(X_tr, y_tr, batch_size, shuffle=True, drop_last=drop_last)

    opt = optim.Adam(model.parameters(), lr=lr)
    crit = nn.BCELoss() if loss == "bce" else nn.MSELoss()

    train_loss = float("nan")
    for epoch in range(epochs):
        model.train()
        total = 0.0
        seen = 0
        for xb, yb in train_loader:
            opt.zero_grad(set_to_none=True)
            out = model(xb)
            batch_loss = crit(out, yb)
            if l2 > 0.0 and regularized:
                batch_loss = batch_loss + l2_penalty(regularized, l2)
            batch_loss.backward()
            opt.step()
            total += float(batch_loss.item()) * xb.size(0)
            seen += xb.size(0)
        train_loss = total / max(1, seen)
        if epoch == 0 or (epoch + 1) % max(1, epochs // 5) == 0:
            log.debug(f"epoch {epoch + 1}/{epochs} loss={train_loss:.5f}")

    val_mse: Optional[float] = None
    val_mae: Optional[float] = None
    if X_val is not None and len(X_val) > 0:
        model.eval()
        with torch.no_grad():
            pred = model(torch.as_tensor(X_val, dtype=torch.float32)).cpu().numpy()
        val_mse = float(mean_squared_error(y_val, pred))
        val_mae = float(mean_absolute_error(y_val, pred))

    log_stage(
        log,
        "train",
        level=logging.INFO,
        epochs=epochs,
        examples=len(X),
        train_loss=train_loss,
        val_mse=val_mse,
        val_mae=val_mae,
    )
    return FitResult(train_loss=train_loss, val_mse=val_mse, val_mae=val_mae, epochs=epochs)


def forward_one(model: nn.Module, x: np.ndarray) -> Tuple[float, float]:
    """Run a single normalized vector through a 2-output network in eval mode."""
    model.eval()
    with torch.no_grad():
        out = model(torch.as_tensor(x, dtype=torch.float32).reshape(1, -1)).cpu().numpy()[0]
    return clip01(out[0]), clip01(out[1])
