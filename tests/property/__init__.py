# -*- coding: utf-8 -*-
"""
tests.property package bootstrap.

Shared configuration for property-based tests (Hypothesis). Every example
runs pure-Python Poseidon, so the profiles keep example counts modest.

What this does on import:
- Registers a few named Hypothesis profiles (dev/ci/fast/stress).
- Selects the active profile using HYPOTHESIS_PROFILE, otherwise "ci" on CI
  (CI env var present/truthy) and "dev" locally.
- Re-exports common Hypothesis imports (given, strategies as st) plus the
  treasury-specific strategies used across these tests.

Usage in tests:
    from tests.property import given, leaf_values, st

    @given(leaf_values(max_size=8))
    def test_something_about_deposits(values):
        ...

Environment knobs:
- HYPOTHESIS_PROFILE=dev|ci|fast|stress
- CI=true (auto-pick the 'ci' profile if HYPOTHESIS_PROFILE not set)

Note: If you need per-test overrides, just use @settings(...) on that test.
"""
from __future__ import annotations

import os
from typing import Final, Tuple

from hypothesis import HealthCheck, Verbosity, given, settings
from hypothesis import strategies as st

# ---- profile registry --------------------------------------------------------


def _hc(*items: HealthCheck) -> Tuple[HealthCheck, ...]:
    return items


settings.register_profile(
    "dev",
    settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=_hc(
            HealthCheck.too_slow,
            HealthCheck.filter_too_much,
            HealthCheck.function_scoped_fixture,
        ),
        verbosity=Verbosity.normal,
        derandomize=False,
    ),
)

settings.register_profile(
    "ci",
    settings(
        max_examples=50,
        deadline=None,
        suppress_health_check=_hc(
            HealthCheck.too_slow,
            HealthCheck.filter_too_much,
            HealthCheck.function_scoped_fixture,
        ),
        verbosity=Verbosity.verbose,
        derandomize=True,
    ),
)

settings.register_profile(
    "fast",
    settings(
        max_examples=10,
        deadline=None,
        suppress_health_check=_hc(HealthCheck.too_slow, HealthCheck.function_scoped_fixture),
        verbosity=Verbosity.normal,
        derandomize=False,
    ),
)

settings.register_profile(
    "stress",
    settings(
        max_examples=500,
        deadline=None,
        suppress_health_check=_hc(
            HealthCheck.too_slow,
            HealthCheck.filter_too_much,
            HealthCheck.data_too_large,
            HealthCheck.function_scoped_fixture,
        ),
        verbosity=Verbosity.normal,
        derandomize=True,
    ),
)


def _env_truthy(name: str) -> bool:
    v = os.getenv(name)
    return (v or "").lower() not in ("", "0", "false", "no", "off")


# Choose active profile (env overrides CI detection)
_active: Final[str] = os.getenv("HYPOTHESIS_PROFILE") or (
    "ci" if _env_truthy("CI") else "dev"
)
settings.load_profile(_active)

# ---- small convenience exports ----------------------------------------------


def active_profile() -> str:
    """Return the name of the active Hypothesis profile."""
    return _active


def leaf_values(min_size: int = 1, max_size: int = 8):
    """Positive deposit values; small enough that sums stay readable in failures."""
    return st.lists(st.integers(min_value=1, max_value=10**6), min_size=min_size, max_size=max_size)


def field_elements():
    return st.integers(min_value=0, max_value=2**253)


__all__ = [
    "st",
    "given",
    "active_profile",
    "leaf_values",
    "field_elements",
]
