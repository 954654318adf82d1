# FILE: risk_engine/cli.py
# =============================================================================
# Climate Risk Engine — Typer CLI (developer tooling)
#
# Commands
# --------
#   version            Package version + config hash (JSON)
#   effective-config   Emit fully resolved config (defaults <- YAML <- overrides)
#   models             Model registry table
#   selftest           Train the manager and run one prediction on synthetic
#                      samples for a location; prints the PredictionResult JSON
#
# Logging controls on selftest:
#   --run-id auto|<str>, --log-level LEVEL, --log-file/--no-log-file,
#   --log-json/--no-log-json (JSONL keeps per-stage structured fields)
#
# Usage examples
# --------------
#   python -m risk_engine selftest -c configs/engine.yaml --lat 20 --lon 10 --model linear
#   python -m risk_engine effective-config -c configs/engine.yaml -o '{"models":{"linear":{"epochs":5}}}'
# =============================================================================

from __future__ import annotations

import hashlib
import json
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import typer
import yaml

from . import get_version, set_global_seed
from .errors import RiskEngineError
from .manager import ModelManager
from .models import get_registry_table
from .orchestrator import PredictionHistory, PredictionOrchestrator
from .schema import SIGNAL_ORDER, FeatureToggles, Location, ModelId, Signal
from .utils.config_loader import resolve_config
from .utils.logging_utils import get_logger, init_logging

app = typer.Typer(add_completion=False, help="Climate Risk Engine — drought/flood risk CLI")

# =============================================================================
# Helpers
# =============================================================================


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _sha256_bytes(b: bytes) -> str:
    return "sha256:" + hashlib.sha256(b).hexdigest()


def _sha256_file(path: Path) -> str:
    return _sha256_bytes(path.read_bytes())


def _git_short_hash() -> Optional[str]:
    try:
        out = subprocess.check_output(["git", "rev-parse", "--short", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode("utf-8").strip()
    except (OSError, subprocess.CalledProcessError):
        return None


def _auto_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    g = _git_short_hash()
    return f"{ts}_{g}" if g else ts


def _merge_logging_overrides(cfg: Dict[str, Any],
                             level: Optional[str],
                             to_file: Optional[bool],
                             to_json: Optional[bool]) -> Dict[str, Any]:
    c = dict(cfg or {})
    lc = dict(c.get("logging", {}) or {})
    if level:
        lc["level"] = level
    if to_file is not None:
        lc["to_file"] = bool(to_file)
    if to_json is not None:
        lc["to_json"] = bool(to_json)
    lc.setdefault("dir", "logs")
    c["logging"] = lc
    return c


def _bootstrap_logging(cfg: Dict[str, Any],
                       run_id: Optional[str],
                       level: Optional[str],
                       to_file: Optional[bool],
                       to_json: Optional[bool]) -> Tuple[Dict[str, Any], str]:
    """
    Apply CLI logging overrides, compute run_id (auto|str), and initialize logging.
    Returns (merged_cfg, resolved_run_id).
    """
    merged = _merge_logging_overrides(cfg, level, to_file, to_json)
    rid = _auto_run_id() if (run_id == "auto" or not run_id) else run_id
    init_logging(merged, run_id=rid)
    log = get_logger("risk.cli")
    log.info("[RunMeta] run_id=%s cfg_hash=%s", rid, _sha256_bytes(json.dumps(merged, sort_keys=True).encode("utf-8")))
    return merged, rid


# Typical level per signal in physical units, keyed by coarse climate band
_DEMO_LEVELS = {
    "tropical": [70.0, 28.0, 45.0, 0.05, 0.0],
    "temperate": [45.0, 18.0, 35.0, 0.02, 0.5],
    "polar": [30.0, -5.0, 15.0, 0.0, 8.0],
}


def demo_samples(lat: float, lon: float, days: int = 30, seed: int = 42) -> Dict[Signal, List[Dict[str, Any]]]:
    """Daily synthetic samples per signal around a latitude-band baseline."""
    rng = np.random.default_rng(seed)
    band = "tropical" if abs(lat) <= 23.5 else ("polar" if abs(lat) > 66.5 else "temperate")
    levels = _DEMO_LEVELS[band]
    spread = [8.0, 3.0, 10.0, 0.01, 0.5]
    start = datetime.now(timezone.utc) - timedelta(days=days)
    out: Dict[Signal, List[Dict[str, Any]]] = {}
    for sig, base, sd in zip(SIGNAL_ORDER, levels, spread):
        rows = []
        for d in range(days):
            rows.append(
                {
                    "timestamp": (start + timedelta(days=d)).isoformat(),
                    "latitude": lat,
                    "longitude": lon,
                    "value": max(0.0, float(rng.normal(base, sd))) if sig is not Signal.TEMPERATURE else float(rng.normal(base, sd)),
                }
            )
        out[sig] = rows
    return out


# =============================================================================
# Commands
# =============================================================================


@app.command("version")
def cli_version(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to engine config YAML.")
):
    cfg_hash = None
    if config:
        p = Path(config)
        if p.exists():
            cfg_hash = _sha256_file(p)
    payload = {"risk_engine_version": get_version(), "config_hash": cfg_hash, "timestamp_utc": _utc_now_iso()}
    typer.echo(json.dumps(payload, indent=2))


@app.command("effective-config")
def cli_effective_config(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config."),
    overrides: Optional[str] = typer.Option(None, "--override", "-o", help="JSON string of overrides."),
    out: Optional[str] = typer.Option(None, "--out", help="Write resolved config to this path (json|yaml)."),
):
    """
    Render the fully-resolved config (defaults, YAML, then JSON overrides).
    """
    cfg = resolve_config(config, overrides_json=overrides)
    if out:
        outp = Path(out)
        outp.parent.mkdir(parents=True, exist_ok=True)
        if outp.suffix.lower() in (".yml", ".yaml"):
            outp.write_text(yaml.safe_dump(cfg, sort_keys=False), encoding="utf-8")
        else:
            outp.write_text(json.dumps(cfg, indent=2), encoding="utf-8")
        typer.echo(f"Wrote resolved config → {outp.as_posix()}")
    else:
        typer.echo(json.dumps(cfg, indent=2))


@app.command("models")
def cli_models():
    typer.echo(json.dumps(get_registry_table(), indent=2))


@app.command("selftest")
def cli_selftest(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to engine config YAML."),
    overrides: Optional[str] = typer.Option(None, "--override", "-o", help="JSON string of overrides."),
    lat: float = typer.Option(20.0, "--lat", help="Latitude of the test point."),
    lon: float = typer.Option(10.0, "--lon", help="Longitude of the test point."),
    model: str = typer.Option("ensemble", "--model", "-m", help="linear | neural | ensemble | random_forest"),
    days: int = typer.Option(30, "--days", help="Synthetic daily samples per signal."),
    run_id: str = typer.Option("auto", "--run-id", help='Run identifier ("auto" => timestamp+git).'),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override logging level (e.g. INFO, DEBUG)."),
    log_file: Optional[bool] = typer.Option(None, "--log-file/--no-log-file", help="Enable/disable file logging."),
    log_json: Optional[bool] = typer.Option(None, "--log-json/--no-log-json", help="Enable/disable JSONL logging."),
):
    cfg = resolve_config(config, overrides_json=overrides)
    cfg, rid = _bootstrap_logging(cfg, run_id, log_level, log_file, log_json)
    log = get_logger("risk.cli")
    seed = int(cfg["run"].get("random_seed", 42))
    set_global_seed(seed)

    manager = ModelManager(cfg)
    orchestrator = PredictionOrchestrator(manager, cfg)
    history = PredictionHistory()
    try:
        result = orchestrator.predict(
            demo_samples(lat, lon, days=days, seed=seed),
            FeatureToggles(),
            model,
            Location(lat, lon),
        )
    except RiskEngineError as e:
        log.error("Selftest failed: %s", e.message)
        typer.echo(json.dumps(e.to_dict(), indent=2))
        raise typer.Exit(code=2)
    history.add(result)
    payload = {"run_id": rid, "model_ids": [m.value for m in ModelId], "result": result.to_dict()}
    typer.echo(json.dumps(payload, indent=2))
    log.info("Selftest passed (%s path, model=%s).", result.pipeline, result.model.value)


# =============================================================================
# Entrypoint
# =============================================================================


@app.callback(invoke_without_command=False)
def _root() -> None:
    """Climate Risk Engine — CLI entrypoint."""
    return


def main() -> None:
    app()


if __name__ == "__main__":
    main()
