"""
Model Manager: the process-lifetime owner of trained predictors.

Constructed once at startup and passed by reference to the orchestrator. Two
closed registries:

- basic    : linear, neural, random_forest, ensemble   (5 features)
- enhanced : neural, ensemble                          (25 features)

The basic ensemble shares its members with the basic registry and the enhanced
ensemble wraps the enhanced neural predictor, so every network trains once.
Predictors train lazily (``ensure_trained``) before their first prediction.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .errors import UnknownModelError
from .models import create_from_config
from .models.base import Predictor
from .schema import ModelId, ModelPrediction, TrainingExample
from .training_data import generate_basic_training_data, generate_enhanced_training_data, normalize_examples
from .utils.config_loader import section
from .utils.logging_utils import get_logger, log_stage

BASIC_MODELS = (ModelId.LINEAR, ModelId.NEURAL, ModelId.RANDOM_FOREST, ModelId.ENSEMBLE)
ENHANCED_MODELS = (ModelId.NEURAL, ModelId.ENSEMBLE)


def _coerce_id(model_id: Union[ModelId, str]) -> Optional[ModelId]:
    try:
        return ModelId(model_id)
    except ValueError:
        return None


class ModelManager:
    def __init__(self, cfg: Optional[Dict] = None) -> None:
        self.cfg = cfg or {}
        self.log = get_logger("risk.manager")
        self.seed = int(section(cfg, "run").get("random_seed", 42))
        self._training = section(cfg, "training")
        self._basic: Dict[ModelId, Predictor] = {}
        self._enhanced: Dict[ModelId, Predictor] = {}
        self._build()

    # ---- construction ---------------------------------------------------------------

    def _model_cfg(self, name: str) -> Dict[str, Any]:
        out = dict(section(self.cfg, "models", name))
        out.setdefault("seed", self.seed)
        out.setdefault("validation_split", self._training.get("validation_split", 0.2))
        return out

    def basic_examples(self) -> List[TrainingExample]:
        return normalize_examples(
            generate_basic_training_data(
                per_archetype=int(self._training["basic_examples_per_archetype"]),
                seed=self.seed,
            )
        )

    def enhanced_examples(self) -> List[TrainingExample]:
        return normalize_examples(
            generate_enhanced_training_data(
                per_archetype=int(self._training["enhanced_examples_per_archetype"]),
                series_length=int(self._training["series_length"]),
                seed=self.seed,
            )
        )

    def _build(self) -> None:
        basic: Callable[[], List[TrainingExample]] = self.basic_examples
        enhanced: Callable[[], List[TrainingExample]] = self.enhanced_examples

        linear = create_from_config("linear", self._model_cfg("linear"), basic)
        neural = create_from_config("neural", self._model_cfg("neural"), basic)
        forest = create_from_config("random_forest", self._model_cfg("random_forest"), basic)
        ensemble = create_from_config(
            "ensemble", section(self.cfg, "models", "ensemble"), basic, linear=linear, neural=neural, forest=forest
        )
        self._basic = {
            ModelId.LINEAR: linear,
            ModelId.NEURAL: neural,
            ModelId.RANDOM_FOREST: forest,
            ModelId.ENSEMBLE: ensemble,
        }

        e_neural = create_from_config("enhanced_neural", self._model_cfg("enhanced_neural"), enhanced)
        e_ensemble = create_from_config(
            "enhanced_ensemble", section(self.cfg, "models", "enhanced_ensemble"), enhanced, base=e_neural
        )
        self._enhanced = {ModelId.NEURAL: e_neural, ModelId.ENSEMBLE: e_ensemble}

    # ---- lookup ---------------------------------------------------------------------

    def get(self, model_id: Union[ModelId, str], enhanced: bool = False) -> Predictor:
        registry = self._enhanced if enhanced else self._basic
        mid = _coerce_id(model_id)
        if mid is None or mid not in registry:
            raise UnknownModelError(getattr(model_id, "value", str(model_id)), enhanced=enhanced)
        return registry[mid]

    def available_models(self, enhanced: bool = False) -> List[str]:
        return [m.value for m in (self._enhanced if enhanced else self._basic)]

    # ---- training / prediction ------------------------------------------------------

    def ensure_trained(self, model_id: Union[ModelId, str], enhanced: bool = False) -> Predictor:
        model = self.get(model_id, enhanced)
        model.ensure_trained()
        return model

    def warm_up(self, enhanced: Optional[bool] = None) -> None:
        """Train every registered predictor (or one path) up front."""
        paths = [False, True] if enhanced is None else [enhanced]
        for path in paths:
            for mid in (ENHANCED_MODELS if path else BASIC_MODELS):
                self.ensure_trained(mid, path)

    def predict(self, model_id: Union[ModelId, str], features: Sequence[float], enhanced: bool = False) -> ModelPrediction:
        model = self.ensure_trained(model_id, enhanced)
        pred = model.predict(features)
        log_stage(
            self.log,
            "predict",
            model=model.name,
            drought=pred.drought_risk,
            flood=pred.flood_risk,
            confidence=pred.confidence,
            uncertainty=pred.uncertainty,
        )
        return pred

    def model_info(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "basic": [dict(id=m.value, **p.info()) for m, p in self._basic.items()],
            "enhanced": [dict(id=m.value, **p.info()) for m, p in self._enhanced.items()],
        }
