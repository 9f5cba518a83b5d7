"""
Version helpers for Umbra.

Resolution order:
    1) UMBRA_VERSION env var (verbatim)
    2) installed distribution metadata for "umbra"
    3) DEFAULT_VERSION

No external dependencies; safe to import very early.
"""

from __future__ import annotations

import os
from importlib import metadata
from typing import Optional

DEFAULT_VERSION = "0.1.0"
DIST_NAME = "umbra"


def _installed_version() -> Optional[str]:
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return None


def resolve_version() -> str:
    env = os.getenv("UMBRA_VERSION")
    if env:
        return env.strip()
    return _installed_version() or DEFAULT_VERSION


__version__ = resolve_version()


if __name__ == "__main__":
    print(__version__)
