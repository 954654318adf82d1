# FILE: risk_engine/__main__.py
# =============================================================================
# Climate Risk Engine
# Package Entrypoint — enables `python -m risk_engine` to launch the CLI.
#
#     python -m risk_engine --help
#     python -m risk_engine selftest -c configs/engine.yaml --model ensemble
#
# All config resolution and logging setup lives in `risk_engine.cli`.
# =============================================================================

from __future__ import annotations

import sys


def _run() -> int:
    """
    Import and invoke the Typer CLI entrypoint.

    Returns
    -------
    int
        Process exit code (0 on success).
    """
    from risk_engine.cli import main as _cli_main

    _cli_main()
    return 0


if __name__ == "__main__":
    sys.exit(_run())
