"""
Umbra zk.curves
===============

Embedded curves over the BN254 scalar field. Only Baby Jubjub is needed: it
carries the treasury keys and the per-deposit (P, Q) derivation pairs.
"""

from . import babyjub

__all__ = ["babyjub"]
