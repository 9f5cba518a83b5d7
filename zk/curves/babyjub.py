"""
Umbra zk.curves.babyjub
=======================

Baby Jubjub: the twisted Edwards curve embedded in the BN254 scalar field,

    a·x² + y² = 1 + d·x²·y²      (mod r),   a = 168700, d = 168696

as used by circomlib. Points are plain ``(x, y)`` int tuples in affine form;
arithmetic runs in projective coordinates and normalizes once at the end.
The addition law is complete (a is a square, d is not), so no special cases
are needed for doubling or the identity ``(0, 1)``.

Public API
----------
- A, D, FIELD, SUBGROUP_ORDER, B8, IDENTITY
- is_on_curve(p), in_subgroup(p)
- add(p, q), neg(p), mul(p, k)
- random_scalar(), public_key(priv)
"""

from __future__ import annotations

import secrets
from typing import Tuple

from ..verifiers.pairing_bn254 import curve_order

AffinePoint = Tuple[int, int]

FIELD = curve_order()
A = 168700
D = 168696

# Prime order of the subgroup generated by B8 (curve order = 8 * SUBGROUP_ORDER).
SUBGROUP_ORDER = (
    2736030358979909402780800718157159386076813972158567259200215660948447373041
)

B8: AffinePoint = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)

IDENTITY: AffinePoint = (0, 1)


def _inv(x: int) -> int:
    if x % FIELD == 0:
        raise ZeroDivisionError("inverse of zero in Fr")
    return pow(x, FIELD - 2, FIELD)


def is_on_curve(p: AffinePoint) -> bool:
    x, y = p
    if not (0 <= x < FIELD and 0 <= y < FIELD):
        return False
    x2 = x * x % FIELD
    y2 = y * y % FIELD
    return (A * x2 + y2) % FIELD == (1 + D * x2 % FIELD * y2) % FIELD


# ---------------------------
# Projective arithmetic
# ---------------------------

_Proj = Tuple[int, int, int]


def _padd(p: _Proj, q: _Proj) -> _Proj:
    # add-2008-bbjlp (projective twisted Edwards)
    X1, Y1, Z1 = p
    X2, Y2, Z2 = q
    a = Z1 * Z2 % FIELD
    b = a * a % FIELD
    c = X1 * X2 % FIELD
    d = Y1 * Y2 % FIELD
    e = D * c % FIELD * d % FIELD
    f = (b - e) % FIELD
    g = (b + e) % FIELD
    x3 = a * f % FIELD * (((X1 + Y1) * (X2 + Y2) - c - d) % FIELD) % FIELD
    y3 = a * g % FIELD * ((d - A * c) % FIELD) % FIELD
    z3 = f * g % FIELD
    return (x3, y3, z3)


def _to_affine(p: _Proj) -> AffinePoint:
    X, Y, Z = p
    zi = _inv(Z)
    return (X * zi % FIELD, Y * zi % FIELD)


def add(p: AffinePoint, q: AffinePoint) -> AffinePoint:
    return _to_affine(_padd((p[0], p[1], 1), (q[0], q[1], 1)))


def neg(p: AffinePoint) -> AffinePoint:
    return ((-p[0]) % FIELD, p[1])


def mul(p: AffinePoint, k: int) -> AffinePoint:
    """Scalar multiplication k·p (double-and-add, MSB first). k may be any int >= 0."""
    if k < 0:
        raise ValueError("scalar must be non-negative")
    acc: _Proj = (0, 1, 1)
    base: _Proj = (p[0], p[1], 1)
    for bit in bin(k)[2:] if k else "":
        acc = _padd(acc, acc)
        if bit == "1":
            acc = _padd(acc, base)
    return _to_affine(acc)


def in_subgroup(p: AffinePoint) -> bool:
    """True iff p is on the curve and in the prime-order subgroup generated by B8."""
    return is_on_curve(p) and mul(p, SUBGROUP_ORDER) == IDENTITY


# ---------------------------
# Keys
# ---------------------------


def random_scalar() -> int:
    """Uniform scalar in [1, SUBGROUP_ORDER)."""
    return 1 + secrets.randbelow(SUBGROUP_ORDER - 1)


def public_key(priv: int) -> AffinePoint:
    if not (0 < priv < SUBGROUP_ORDER):
        raise ValueError("private scalar out of range")
    return mul(B8, priv)


__all__ = [
    "AffinePoint",
    "FIELD",
    "A",
    "D",
    "SUBGROUP_ORDER",
    "B8",
    "IDENTITY",
    "is_on_curve",
    "in_subgroup",
    "add",
    "neg",
    "mul",
    "random_scalar",
    "public_key",
]
