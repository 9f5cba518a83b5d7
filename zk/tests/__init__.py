"""
zk.tests helpers

Lightweight utilities shared by zk/* tests.

Exports:
- TEST_ROOT
- write_json(path, obj) -> Path
- env_flag(name, default=False) -> bool
- configure_test_logging() -> None

Environment toggles:
- ZK_TEST_LOG=1           → enable INFO logging for zk.*
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

TEST_ROOT: Path = Path(__file__).resolve().parent


def write_json(path: Path, obj: Any) -> Path:
    """Write obj as JSON (ints as decimal strings are the caller's business)."""
    path.write_text(json.dumps(obj), encoding="utf-8")
    return path


def env_flag(name: str, default: bool = False) -> bool:
    """
    Read an environment flag in a truthy/falsey way: "1", "true", "yes" → True.
    """
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on"}


def configure_test_logging(level: int | None = None) -> None:
    """
    Configure basic logging for zk.* loggers when ZK_TEST_LOG is set.
    """
    if level is None:
        level = logging.INFO
    if env_flag("ZK_TEST_LOG", False):
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        logging.getLogger("zk").setLevel(level)


configure_test_logging()

__all__ = ["TEST_ROOT", "write_json", "env_flag", "configure_test_logging"]
