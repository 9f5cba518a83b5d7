"""
Integration test package.

These tests exercise the treasury end-to-end: an on-disk ledger, the off-chain
reconstructor and a withdrawal session talking to each other through the
public APIs only. The local flows use the clear proving backend and always run.

Flows that need a real Groth16 toolchain (snarkjs on PATH plus compiled
circuit artifacts) are **skipped** unless explicitly enabled:

    RUN_INTEGRATION_TESTS=1
    UMBRA_IT_WASM   — e.g. build/withdraw_js/withdraw.wasm
    UMBRA_IT_ZKEY   — e.g. build/withdraw_final.zkey
    UMBRA_IT_VKEY   — e.g. build/verification_key.json
    UMBRA_IT_DEPTH  — tree depth the circuit was compiled for (default 20)
    UMBRA_IT_BATCH  — batch size the circuit was compiled for (default 5)

Typical usage inside a test:
    from tests.integration import require_env
    wasm = require_env("UMBRA_IT_WASM")  # skips with a helpful message if missing
"""
from __future__ import annotations

import os
from typing import Optional

import pytest


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    return value in ("1", "true", "yes", "y", "on")


DEFAULTS = {
    "UMBRA_IT_DEPTH": "20",
    "UMBRA_IT_BATCH": "5",
}


def enabled() -> bool:
    return _as_bool(os.getenv("RUN_INTEGRATION_TESTS"), default=False)


def env(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Read an environment variable with an optional default. If default is None,
    we fall back to DEFAULTS (if present) for convenience.
    """
    if default is None:
        default = DEFAULTS.get(name)
    return os.getenv(name, default)


def require_env(name: str) -> str:
    """
    Skip the calling test unless integration runs are enabled and `name` is set.
    """
    if not enabled():
        pytest.skip("integration tests disabled; set RUN_INTEGRATION_TESTS=1 to enable")
    val = os.getenv(name)
    if val is None:
        pytest.skip(
            f"Missing env var {name!r}; set it or provide a fixture to run this integration test."
        )
    return val


__all__ = ["env", "enabled", "require_env", "DEFAULTS"]
