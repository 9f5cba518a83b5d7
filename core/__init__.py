"""
Umbra core package.

Cross-cutting substrate shared by the ledger, the reconstructor and the CLI:
error taxonomy, configuration, structured logging and version helpers.

Only re-exports the version here to keep import-time side effects near zero.
"""

from __future__ import annotations

from .version import __version__

__all__ = ["__version__"]
