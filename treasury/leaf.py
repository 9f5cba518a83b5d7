"""
Leaf records and their field-element encoding.

A leaf binds a deposit's value to a Baby Jubjub pair (P, Q) with Q = α·P for
the treasury private scalar α. Only α's holder can recognise (and spend) it.

    leaf_hash     = hash5(P.x, P.y, Q.x, Q.y, value)
    interior_hash = hash2(left, right)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Tuple, Union

from core.config import SNARK_FIELD
from core.errors import DeserializationError
from zk.curves import babyjub

from .capabilities import Hasher


def _felt(v: Union[int, str], what: str) -> int:
    iv = int(v, 0) if isinstance(v, str) else int(v)
    if not (0 <= iv < SNARK_FIELD):
        raise ValueError(f"{what} is not a field element")
    return iv


@dataclass(frozen=True)
class Point:
    x: int
    y: int

    def __post_init__(self) -> None:
        _felt(self.x, "Point.x")
        _felt(self.y, "Point.y")

    @classmethod
    def from_any(cls, obj: Union["Point", Sequence[Any], Mapping[str, Any]]) -> "Point":
        """Accept a Point, an (x, y) pair or {"x": .., "y": ..}; ints or numeric strings."""
        if isinstance(obj, Point):
            return obj
        if isinstance(obj, Mapping):
            return cls(_felt(obj["x"], "x"), _felt(obj["y"], "y"))
        x, y = obj
        return cls(_felt(x, "x"), _felt(y, "y"))

    def as_tuple(self) -> Tuple[int, int]:
        return (self.x, self.y)

    def to_list(self) -> list:
        # circuit input shape
        return [str(self.x), str(self.y)]

    def is_on_curve(self) -> bool:
        return babyjub.is_on_curve(self.as_tuple())

    def mul(self, k: int) -> "Point":
        return Point(*babyjub.mul(self.as_tuple(), k))


@dataclass(frozen=True)
class TreasuryRecord:
    """Directory entry. `label` is descriptive only."""

    public_key: Point
    label: str

    def to_json(self) -> Dict[str, Any]:
        return {"public_key": self.public_key.to_list(), "label": self.label}


@dataclass(frozen=True)
class Leaf:
    P: Point
    Q: Point
    value: int

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError("leaf value must be an int")
        _felt(self.value, "leaf value")

    def hash(self, hasher: Hasher) -> int:
        return encode_leaf_hash(self, hasher)

    def owned_by(self, alpha: int) -> bool:
        """True iff Q == α·P."""
        return babyjub.mul(self.P.as_tuple(), alpha) == self.Q.as_tuple()

    def to_json(self) -> Dict[str, Any]:
        return {"P": self.P.to_list(), "Q": self.Q.to_list(), "value": str(self.value)}

    @classmethod
    def from_json(cls, obj: Mapping[str, Any]) -> "Leaf":
        try:
            return cls(
                P=Point.from_any(obj["P"]),
                Q=Point.from_any(obj["Q"]),
                value=int(obj["value"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeserializationError(f"malformed leaf record: {e}") from e


def encode_leaf_hash(leaf: Leaf, hasher: Hasher) -> int:
    return hasher.hash5(leaf.P.x, leaf.P.y, leaf.Q.x, leaf.Q.y, leaf.value)


def encode_interior_hash(left: int, right: int, hasher: Hasher) -> int:
    return hasher.hash2(left, right)


def make_deposit_material(treasury_pub: Point, nonce: int) -> Tuple[Point, Point]:
    """
    Contributor side: P = nonce·B8, Q = nonce·treasury_pub.

    Since treasury_pub = α·B8, Q = α·P and only the treasury can recognise it.
    """
    if not (0 < nonce < babyjub.SUBGROUP_ORDER):
        raise ValueError("nonce out of range")
    P = Point(*babyjub.mul(babyjub.B8, nonce))
    Q = treasury_pub.mul(nonce)
    return P, Q


def derive_change_material(alpha: int, nonce: int) -> Tuple[Point, Point]:
    """Fresh (P, Q) owned by α: P = nonce·B8, Q = α·P."""
    if not (0 < nonce < babyjub.SUBGROUP_ORDER):
        raise ValueError("nonce out of range")
    P = Point(*babyjub.mul(babyjub.B8, nonce))
    return P, P.mul(alpha)


__all__ = [
    "Point",
    "TreasuryRecord",
    "Leaf",
    "encode_leaf_hash",
    "encode_interior_hash",
    "make_deposit_material",
    "derive_change_material",
]
