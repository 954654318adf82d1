"""
Error taxonomy for the risk engine.

Each error carries a stable ``code`` so callers (HTTP layers, dashboards) can map
failures without parsing messages:

- VALIDATION_ERROR : bad request (too few signals selected, coordinates out of range)
- PREDICTION_ERROR : unknown model id or a failure inside the model layer
- DATA_LOAD_ERROR  : a signal fetcher failed and the caller asked for strict loading

Data sparsity is not an error; it lowers quality scores instead.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class RiskEngineError(Exception):
    """Base class for all engine errors."""

    code = "PREDICTION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InputValidationError(RiskEngineError, ValueError):
    """Raised before any model work when a prediction request is malformed."""

    code = "VALIDATION_ERROR"


class UnknownModelError(RiskEngineError, LookupError):
    """Model identifier is not registered for the active (basic/enhanced) path."""

    code = "PREDICTION_ERROR"

    def __init__(self, model_id: str, enhanced: bool = False) -> None:
        prefix = "Enhanced model" if enhanced else "Model"
        super().__init__(f"{prefix} {model_id} not found", {"model": model_id, "enhanced": enhanced})
        self.model_id = model_id
        self.enhanced = enhanced


class DataLoadError(RiskEngineError):
    """A signal fetcher failed (only raised when strict loading is requested)."""

    code = "DATA_LOAD_ERROR"
