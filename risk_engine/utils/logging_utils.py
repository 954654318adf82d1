# risk_engine/utils/logging_utils.py
# ======================================================================================
# Climate Risk Engine
# Logging Utilities — Config-driven logging with structured per-stage records
# --------------------------------------------------------------------------------------
# Purpose
#   Provide a unified logging setup for the risk pipeline:
#     • Configurable levels and destinations (console, file, JSONL).
#     • Deterministic log file naming with run IDs.
#     • Structured fields: each pipeline stage (clean, aggregate, quality, adjust,
#       normalize, predict, train) emits one record whose intermediate quantities
#       travel as a dict, not as a formatted string.
#
# Design
#   - init_logging(cfg, run_id): root logger with console + optional file/JSON handlers.
#   - get_logger(name): retrieve a namespaced logger.
#   - log_stage(logger, stage, **fields): one structured record per pipeline stage.
#
# Dependencies: Python stdlib only (logging, json, datetime, pathlib).
#
# License
#   MIT (c) 2025 Climate Risk Engine contributors
# ======================================================================================

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _jsonable(v: Any) -> Any:
    if isinstance(v, np.ndarray):
        return [_jsonable(x) for x in v.tolist()]
    if isinstance(v, (np.floating, np.integer)):
        return v.item()
    if isinstance(v, dict):
        return {str(k): _jsonable(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_jsonable(x) for x in v]
    if isinstance(v, float) and not np.isfinite(v):
        return None
    return v


class _JSONLogHandler(logging.Handler):
    """
    Writes one JSON object per record (JSONL). Structured ``stage``/``fields``
    attached through ``extra=`` are serialized as-is.
    """

    def __init__(self, path: Path, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            log_entry = {
                "time": datetime.now(timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "func": record.funcName,
                "line": record.lineno,
            }
            stage = getattr(record, "stage", None)
            if stage is not None:
                log_entry["stage"] = stage
            fields = getattr(record, "fields", None)
            if fields:
                log_entry["fields"] = _jsonable(fields)
            run_id = getattr(record, "run_id", None)
            if run_id is not None:
                log_entry["run_id"] = run_id
            self._fh.write(json.dumps(log_entry, ensure_ascii=False) + "\n")
            self._fh.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            if not self._fh.closed:
                self._fh.close()
        finally:
            super().close()


def init_logging(cfg: Dict[str, Any], run_id: Optional[str] = None) -> None:
    """
    Configure logging system from config dictionary.

    Parameters
    ----------
    cfg : dict
        Config dictionary (expects key "logging" with options).
    run_id : str, optional
        Unique run identifier. Used in file naming.
    """
    log_cfg = cfg.get("logging", {}) if cfg else {}
    level_str = str(log_cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_str, logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    root.setLevel(level)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    root.addHandler(ch)

    run_tag = run_id or datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_dir = Path(log_cfg.get("dir", "logs"))

    if log_cfg.get("to_file", False):
        log_file = log_dir / f"risk_{run_tag}.log"
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT))
        root.addHandler(fh)

    if log_cfg.get("to_json", False):
        root.addHandler(_JSONLogHandler(log_dir / f"risk_{run_tag}.jsonl", level=level))

    root.debug("Logging initialized", extra={"run_id": run_id})


def get_logger(name: str) -> logging.Logger:
    """
    Retrieve a module-specific logger.
    """
    return logging.getLogger(name)


def log_stage(logger: logging.Logger, stage: str, level: int = logging.DEBUG, **fields: Any) -> None:
    """
    Emit one structured record for a pipeline stage.

    Console handlers show ``[stage] key=value ...``; the JSONL handler keeps the
    original values under ``fields``.
    """
    if not logger.isEnabledFor(level):
        return
    summary = " ".join(f"{k}={_short(v)}" for k, v in fields.items())
    logger.log(level, "[%s] %s", stage, summary, extra={"stage": stage, "fields": fields})


def _short(v: Any) -> str:
    if isinstance(v, float):
        return f"{v:.4f}"
    if isinstance(v, np.ndarray):
        return "[" + ", ".join(f"{x:.3f}" for x in v.ravel()[:8]) + (", ...]" if v.size > 8 else "]")
    return str(v)
