"""
tests.unit
==========

Small shared helpers for unit-test modules of the `core` package:

    from tests.unit import in_ci, write_config

Paths
-----
- Repository root is inferred relative to this file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping

# Resolve repository root: tests/unit/__init__.py -> tests -> <root>
ROOT: Path = Path(__file__).resolve().parents[2]

__all__ = ["ROOT", "in_ci", "write_config"]


def in_ci() -> bool:
    """Return True when running under a CI environment."""
    return os.getenv("CI", "").lower() in {"1", "true", "yes", "on"}


def _toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    return json.dumps(str(v))


def write_config(path: Path, sections: Mapping[str, Mapping[str, Any]]) -> Path:
    """
    Write a config file for `core.config.load`. The suffix picks the format:
    `.json` dumps the mapping as-is, anything else is written as flat TOML tables.
    """
    if path.suffix == ".json":
        path.write_text(json.dumps(sections), encoding="utf-8")
        return path
    lines = []
    for name, table in sections.items():
        lines.append(f"[{name}]")
        lines.extend(f"{k} = {_toml_value(v)}" for k, v in table.items())
        lines.append("")
    path.write_text("\n".join(lines), encoding="utf-8")
    return path
