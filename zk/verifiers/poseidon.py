"""
Umbra zk.verifiers.poseidon
===========================

Poseidon hash over the BN254 scalar field (Fr).

This module implements the Poseidon permutation but **keeps parameters
external** so that the ledger hashes leaves and tree nodes with *exactly the
same parameters as the withdrawal circuit*. Register the circuit's parameter
sets at startup (programmatically or by loading JSON files that include the
MDS matrix and round constants).

Two widths are used by the treasury:
  - t=3  (2 inputs)  → interior accumulator nodes, H(left, right)
  - t=6  (5 inputs)  → leaf records, H(P.x, P.y, Q.x, Q.y, value)

Public API
----------
- PoseidonParams(t, R_F, R_P, alpha, mds, rc)
- register_params(name, params)
- load_params_json(path, name=None)
- get_params(name)
- poseidon_permute(state, params)
- poseidon_hash(inputs, *, params_name=None)   # fixed-width, circomlib convention

JSON schema (example)
---------------------
{
  "t": 3,
  "R_F": 8,
  "R_P": 57,
  "alpha": 5,
  "mds": [[...t ints...], [...], [...]],
  "rc":  [[...t ints...], ... R_F+R_P rows ...]
}

All integers are encoded as decimal strings, 0x-hex strings or JSON numbers.

Hashing convention
------------------
`poseidon_hash` follows circomlib's `Poseidon(n)` template: the state is
`[0, x_1, ..., x_n]` (width t = n + 1), one permutation is applied and
`state[0]` is returned. The parameter set registered as ``bn254_t{n+1}`` is
used unless `params_name` says otherwise.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from .pairing_bn254 import curve_order

# ---------------------------
# Field arithmetic (mod Fr)
# ---------------------------

_MOD = curve_order()


def _fpow_alpha(x: int, alpha: int) -> int:
    if alpha == 5:
        x2 = x * x % _MOD
        x4 = x2 * x2 % _MOD
        return x * x4 % _MOD
    return pow(x, alpha, _MOD)


# ---------------------------
# Parameters & registry
# ---------------------------


@dataclass(frozen=True)
class PoseidonParams:
    t: int  # state width
    R_F: int  # number of full rounds
    R_P: int  # number of partial rounds
    alpha: int  # S-box exponent (odd >= 3, commonly 5)
    mds: List[List[int]]  # t x t
    rc: List[List[int]]  # (R_F + R_P) x t

    def validate(self) -> None:
        if self.t < 2:
            raise ValueError("t must be >= 2")
        if self.R_F % 2 != 0:
            raise ValueError("R_F must be even (split half-before/after partial rounds)")
        if self.alpha < 3 or self.alpha % 2 == 0:
            raise ValueError("alpha must be an odd integer >= 3")
        if len(self.mds) != self.t or any(len(row) != self.t for row in self.mds):
            raise ValueError("mds must be t x t")
        expected_rounds = self.R_F + self.R_P
        if len(self.rc) != expected_rounds or any(len(row) != self.t for row in self.rc):
            raise ValueError(f"rc must be (R_F+R_P) x t = {expected_rounds} x {self.t}")


_PARAMS_REGISTRY: Dict[str, PoseidonParams] = {}


def register_params(name: str, params: PoseidonParams) -> None:
    """Register (or replace) a Poseidon parameter set under `name`."""
    if not name or not isinstance(name, str):
        raise ValueError("name must be a non-empty string")
    params.validate()
    _PARAMS_REGISTRY[name] = params


def get_params(name: str) -> PoseidonParams:
    if name not in _PARAMS_REGISTRY:
        raise KeyError(
            f"Poseidon params '{name}' are not registered. "
            "Load them with load_params_json(...) or register_params(...)."
        )
    return _PARAMS_REGISTRY[name]


def _to_int(x: Union[int, str]) -> int:
    if isinstance(x, int):
        return x % _MOD
    s = str(x).strip().lower()
    if s.startswith("0x"):
        return int(s, 16) % _MOD
    return int(s) % _MOD


def read_params_json(path: Union[str, os.PathLike]) -> PoseidonParams:
    """Parse and validate a Poseidon params JSON file without registering it."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    params = PoseidonParams(
        t=int(raw["t"]),
        R_F=int(raw["R_F"]),
        R_P=int(raw["R_P"]),
        alpha=int(raw.get("alpha", 5)),
        mds=[[_to_int(v) for v in row] for row in raw["mds"]],
        rc=[[_to_int(v) for v in row] for row in raw["rc"]],
    )
    params.validate()
    return params


def load_params_json(path: Union[str, os.PathLike], name: Optional[str] = None) -> PoseidonParams:
    """
    Load a Poseidon params JSON file and register it.

    If `name` is None it is derived from the width: ``bn254_t{t}``.
    """
    params = read_params_json(path)
    register_params(name or f"bn254_t{params.t}", params)
    return params


# ---------------------------
# Permutation
# ---------------------------


def _apply_mds(state: List[int], mds: List[List[int]]) -> List[int]:
    t = len(state)
    return [sum(mds[i][j] * state[j] for j in range(t)) % _MOD for i in range(t)]


def poseidon_permute(state: Sequence[int], params: PoseidonParams) -> List[int]:
    """
    Poseidon permutation.

    Round schedule:
      - R_F/2 full rounds (S-box on all t elements)
      - R_P partial rounds (S-box on the first element only)
      - R_F/2 full rounds
    """
    t, alpha, mds, rc = params.t, params.alpha, params.mds, params.rc
    if len(state) != t:
        raise ValueError(f"state length {len(state)} != t={t}")

    x = [int(v) % _MOD for v in state]
    r = 0
    half = params.R_F // 2

    for _ in range(half):
        x = [_fpow_alpha((x[i] + rc[r][i]) % _MOD, alpha) for i in range(t)]
        x = _apply_mds(x, mds)
        r += 1

    for _ in range(params.R_P):
        x = [(x[i] + rc[r][i]) % _MOD for i in range(t)]
        x[0] = _fpow_alpha(x[0], alpha)
        x = _apply_mds(x, mds)
        r += 1

    for _ in range(half):
        x = [_fpow_alpha((x[i] + rc[r][i]) % _MOD, alpha) for i in range(t)]
        x = _apply_mds(x, mds)
        r += 1

    return x


# ---------------------------
# Hash interface
# ---------------------------


def poseidon_hash(
    inputs: Sequence[int],
    *,
    params_name: Optional[str] = None,
    params: Optional[PoseidonParams] = None,
) -> int:
    """
    Fixed-width Poseidon hash of `inputs` (circomlib convention).

    An explicit `params` object takes precedence over the registry lookup.

    Inputs must already be field elements; values >= r are rejected rather
    than silently reduced, since the circuit would never accept them.
    """
    n = len(inputs)
    if n == 0:
        raise ValueError("poseidon_hash needs at least one input")
    if params is None:
        params = get_params(params_name or f"bn254_t{n + 1}")
    if params.t != n + 1:
        raise ValueError(f"params '{params_name or 'explicit'}' have t={params.t}, need t={n + 1}")

    state = [0]
    for v in inputs:
        iv = int(v)
        if not (0 <= iv < _MOD):
            raise ValueError("poseidon input is not a canonical field element")
        state.append(iv)
    return int(poseidon_permute(state, params)[0])


# ---------------------------
# Built-in placeholder parameters
# ---------------------------
# These are NOT the circomlib constants. They make every component usable
# (and deterministic) without external files; deployments that talk to a real
# circuit must load the circuit's parameters via load_params_json().

_PLACEHOLDER_PARTIAL_ROUNDS = {3: 57, 6: 60}


def _derive_placeholder_params(t: int) -> PoseidonParams:
    R_F = 8
    R_P = _PLACEHOLDER_PARTIAL_ROUNDS.get(t, 60)

    # Cauchy matrix 1 / (x_i + y_j) with distinct x_i, y_j: always invertible (MDS).
    xs = list(range(t))
    ys = list(range(t, 2 * t))
    mds = [[pow(xs[i] + ys[j], _MOD - 2, _MOD) for j in range(t)] for i in range(t)]

    rc: List[List[int]] = []
    for r in range(R_F + R_P):
        row = []
        for i in range(t):
            h = hashlib.sha3_256(f"umbra/poseidon/placeholder/t={t}/r={r}/i={i}".encode()).digest()
            row.append(int.from_bytes(h, "big") % _MOD)
        rc.append(row)

    return PoseidonParams(t=t, R_F=R_F, R_P=R_P, alpha=5, mds=mds, rc=rc)


def register_placeholders(overwrite: bool = False) -> None:
    """Register placeholder parameter sets for the widths the treasury uses."""
    for t in (3, 6):
        name = f"bn254_t{t}"
        if overwrite or name not in _PARAMS_REGISTRY:
            register_params(name, _derive_placeholder_params(t))


register_placeholders()


__all__ = [
    "PoseidonParams",
    "register_params",
    "get_params",
    "read_params_json",
    "load_params_json",
    "poseidon_permute",
    "poseidon_hash",
    "register_placeholders",
]
