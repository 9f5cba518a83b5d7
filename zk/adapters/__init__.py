"""
Umbra zk.adapters
=================

Bridges between external proving tooling and the in-tree verifiers. Only the
snarkjs (Groth16/BN254) flavour is supported.

License: MIT
"""

from .snarkjs import (fullprove, load_json, normalize_groth16_proof,
                      normalize_groth16_vk, normalize_numbers)

__all__ = [
    "fullprove",
    "load_json",
    "normalize_numbers",
    "normalize_groth16_vk",
    "normalize_groth16_proof",
]
