"""
Umbra zk.verifiers
==================

Field-level primitives shared by the ledger and the proof tooling:

- `poseidon`        → Poseidon permutation + fixed-width hash over BN254 Fr
- `pairing_bn254`   → py_ecc BN254 pairing wrapper
- `groth16_bn254`   → Groth16 verifier for snarkjs JSON artifacts
"""

from . import groth16_bn254, pairing_bn254, poseidon
from .groth16_bn254 import verify_groth16
from .poseidon import poseidon_hash

__all__ = [
    "groth16_bn254",
    "pairing_bn254",
    "poseidon",
    "verify_groth16",
    "poseidon_hash",
]
