"""
Umbra zk.verifiers.groth16_bn254
================================

Groth16 verifier for BN254 (altbn128), compatible with the `snarkjs` JSON
layout produced for the treasury withdrawal circuit.

Verification equation (standard form)
-------------------------------------
    e(A, B) == e(alpha1, beta2) * e(VK_x, gamma2) * e(C, delta2)

implemented as a product check in GT:
    e(A, B) * e(-alpha1, beta2) * e(-VK_x, gamma2) * e(-C, delta2) == 1

JSON compatibility (snarkjs)
----------------------------
- Verifying key: vk_alpha_1, vk_beta_2, vk_gamma_2, vk_delta_2, IC
  (IC has 1 + #public_inputs points)
- Proof: pi_a, pi_b, pi_c

Coordinates are decimal strings, hex strings or ints. G1 points may carry the
projective third coordinate snarkjs emits ("1"); it is ignored. G2 elements
are Fq2 encoded as [c0, c1].

Public API
----------
- verify_groth16(vk_json, proof_json, inputs) -> bool
- load_vk(vk_json) -> VerifyingKey
- load_proof(proof_json) -> Proof
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Union

from py_ecc.optimized_bn128 import FQ, FQ2
from py_ecc.optimized_bn128 import add as _add
from py_ecc.optimized_bn128 import multiply as _mul
from py_ecc.optimized_bn128 import neg as _neg

from .pairing_bn254 import check_pairing_product, curve_order, is_on_curve_g1, is_on_curve_g2

log = logging.getLogger("zk.verifiers.groth16")

G1Point = Any
G2Point = Any

_FR = curve_order()


def _to_int(z: Union[int, str]) -> int:
    if isinstance(z, int):
        return z
    s = str(z).strip().lower()
    if s.startswith("0x"):
        return int(s, 16)
    return int(s)


def _fr(z: Union[int, str]) -> int:
    return _to_int(z) % _FR


def _g1(x: Union[int, str], y: Union[int, str]) -> G1Point:
    xi, yi = _to_int(x), _to_int(y)
    if xi == 0 and yi == 0:
        return (FQ(1), FQ(1), FQ(0))
    return (FQ(xi), FQ(yi), FQ(1))


def _g2(xx: Sequence[Union[int, str]], yy: Sequence[Union[int, str]]) -> G2Point:
    x0, x1 = _to_int(xx[0]), _to_int(xx[1])
    y0, y1 = _to_int(yy[0]), _to_int(yy[1])
    if x0 == 0 and x1 == 0 and y0 == 0 and y1 == 0:
        return (FQ2([1, 0]), FQ2([1, 0]), FQ2([0, 0]))
    return (FQ2([x0, x1]), FQ2([y0, y1]), FQ2([1, 0]))


@dataclass(frozen=True)
class VerifyingKey:
    alpha1: G1Point
    beta2: G2Point
    gamma2: G2Point
    delta2: G2Point
    IC: List[G1Point]

    @property
    def n_public(self) -> int:
        return len(self.IC) - 1


@dataclass(frozen=True)
class Proof:
    A: G1Point
    B: G2Point
    C: G1Point


def load_vk(vk_json: Mapping[str, Any]) -> VerifyingKey:
    """Parse a snarkjs-style verifying key into a VerifyingKey (points checked on-curve)."""
    a1 = vk_json["vk_alpha_1"]
    b2 = vk_json["vk_beta_2"]
    g2 = vk_json["vk_gamma_2"]
    d2 = vk_json["vk_delta_2"]
    IC = vk_json["IC"]

    vk = VerifyingKey(
        alpha1=_g1(a1[0], a1[1]),
        beta2=_g2(b2[0], b2[1]),
        gamma2=_g2(g2[0], g2[1]),
        delta2=_g2(d2[0], d2[1]),
        IC=[_g1(pt[0], pt[1]) for pt in IC],
    )
    if not (
        is_on_curve_g1(vk.alpha1)
        and is_on_curve_g2(vk.beta2)
        and is_on_curve_g2(vk.gamma2)
        and is_on_curve_g2(vk.delta2)
    ):
        raise ValueError("VK points are not on curve")
    if not all(is_on_curve_g1(P) for P in vk.IC):
        raise ValueError("IC point not on G1 curve")
    return vk


def load_proof(proof_json: Mapping[str, Any]) -> Proof:
    """Parse a snarkjs-style proof into a Proof (points checked on-curve)."""
    A = proof_json["pi_a"]
    B = proof_json["pi_b"]
    C = proof_json["pi_c"]

    pf = Proof(A=_g1(A[0], A[1]), B=_g2(B[0], B[1]), C=_g1(C[0], C[1]))
    if not (is_on_curve_g1(pf.A) and is_on_curve_g2(pf.B) and is_on_curve_g1(pf.C)):
        raise ValueError("Proof points are not on curve")
    return pf


def _vk_x(IC: Sequence[G1Point], inputs: Sequence[Union[int, str]]) -> G1Point:
    """VK_x = IC[0] + sum_i inputs[i] * IC[i+1]  in G1."""
    if len(IC) != len(inputs) + 1:
        raise ValueError(f"IC length {len(IC)} != 1 + len(inputs) {len(inputs)}")
    acc = IC[0]
    for i, v in enumerate(inputs):
        s = _fr(v)
        if s != 0:
            acc = _add(acc, _mul(IC[i + 1], s))
    return acc


def verify_groth16(
    vk_json: Mapping[str, Any],
    proof_json: Mapping[str, Any],
    public_inputs: Sequence[Union[int, str]],
) -> bool:
    """
    Verify a Groth16 proof given snarkjs-style VK/Proof JSON and public inputs.

    Returns True on success, False otherwise. Malformed inputs are reported as
    a failed verification (logged at DEBUG), never raised.
    """
    try:
        vk = load_vk(vk_json)
        pf = load_proof(proof_json)
        vkx = _vk_x(vk.IC, public_inputs)
    except (KeyError, IndexError, TypeError, ValueError) as e:
        log.debug("groth16 input rejected: %s", e)
        return False

    pairs = [
        (pf.A, pf.B),
        (_neg(vk.alpha1), vk.beta2),
        (_neg(vkx), vk.gamma2),
        (_neg(pf.C), vk.delta2),
    ]
    return check_pairing_product(pairs)


__all__ = ["VerifyingKey", "Proof", "load_vk", "load_proof", "verify_groth16"]
