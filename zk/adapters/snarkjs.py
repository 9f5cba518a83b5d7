"""
Umbra zk.adapters.snarkjs
=========================

Helpers to **load and normalize** SnarkJS JSON artifacts, and to drive the
`snarkjs` CLI for Groth16 proof generation.

- Groth16 on BN254 (aka bn128 in SnarkJS)

Parsing coerces bigint-like strings into Python `int`s and normalizes the
common shapes so they can be passed to `zk.verifiers.groth16_bn254`.

Typical Groth16 SnarkJS shapes
------------------------------
Verifying key (vk.json):
{
  "protocol": "groth16",
  "curve": "bn128",
  "vk_alpha_1": [ "0x..", "0x.." ],
  "vk_beta_2":  [[ "0x..","0x.." ], [ "0x..","0x.." ]],
  "vk_gamma_2": [[ "0x..","0x.." ], [ "0x..","0x.." ]],
  "vk_delta_2": [[ "0x..","0x.." ], [ "0x..","0x.." ]],
  "IC": [ [ "0x..", "0x.." ], ... ]
}

Proof (proof.json) and public signals (public.json):
{
  "pi_a": [ "..", "..", "1" ],
  "pi_b": [[ "..",".." ], [ "..",".." ], [ "1","0" ]],
  "pi_c": [ "..", "..", "1" ]
}
[ "123", "456", ... ]

Some tools wrap as { "proof": {...}, "publicSignals": [...] }; both are handled.

Exports
-------
- load_json(source) -> dict | list
- normalize_numbers(obj) -> obj_with_ints
- is_groth16_vk(obj) / is_groth16_proof(obj)
- normalize_groth16_vk(vk) -> dict (same keys, ints)
- normalize_groth16_proof(proof_or_bundle) -> (proof_dict, public_inputs_list)
- fullprove(inputs, wasm, zkey, *, snarkjs_bin, timeout) -> (proof, publics)   [async]

License: MIT
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from core.errors import DeserializationError, ProverError, TimeoutErrorA

log = logging.getLogger("zk.adapters.snarkjs")

JsonLike = Union[str, bytes, os.PathLike, Mapping[str, Any]]


# -----------------------------------------------------------------------------
# I/O helpers
# -----------------------------------------------------------------------------

def load_json(source: JsonLike) -> Any:
    """
    Load JSON from:
      - dict-like: shallow-copied into a new dict
      - path-like or string path
      - string containing JSON text

    Raises DeserializationError on failure.
    """
    if isinstance(source, Mapping):
        return dict(source)
    if isinstance(source, (bytes, bytearray, memoryview)):
        try:
            return json.loads(bytes(source).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DeserializationError("invalid JSON bytes") from e
    s = os.fspath(source) if isinstance(source, os.PathLike) else str(source)

    if os.path.isfile(s):
        try:
            with open(s, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise DeserializationError("invalid JSON file", path=s) from e

    try:
        return json.loads(s)
    except json.JSONDecodeError as e:
        raise DeserializationError("could not load JSON from provided source") from e


# -----------------------------------------------------------------------------
# Number coercion (dec/hex/JS BigInt strings → Python int)
# -----------------------------------------------------------------------------

_INT_RE = re.compile(r"^\s*([+-]?(?:0x[0-9a-fA-F]+|\d+))n?\s*$")


def _maybe_to_int(x: Any) -> Any:
    if isinstance(x, bool):
        return x
    if isinstance(x, int):
        return x
    if isinstance(x, str):
        m = _INT_RE.match(x)
        if m:
            return int(m.group(1), 0)
    return x


def normalize_numbers(obj: Any) -> Any:
    """
    Recursively convert **numeric-like strings** ("123", "0xabc", "123n")
    into Python ints. Other types are preserved.
    """
    if isinstance(obj, Mapping):
        return {k: normalize_numbers(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [normalize_numbers(v) for v in obj]
    return _maybe_to_int(obj)


# -----------------------------------------------------------------------------
# Shape detection
# -----------------------------------------------------------------------------

def is_groth16_vk(obj: Mapping[str, Any]) -> bool:
    return all(k in obj for k in ("vk_alpha_1", "vk_beta_2", "vk_gamma_2", "vk_delta_2", "IC"))


def is_groth16_proof(obj: Mapping[str, Any]) -> bool:
    if isinstance(obj.get("proof"), Mapping):
        obj = obj["proof"]
    return all(k in obj for k in ("pi_a", "pi_b", "pi_c"))


# -----------------------------------------------------------------------------
# Groth16 normalization
# -----------------------------------------------------------------------------

def _norm_g1(pt: Iterable[Any]) -> List[int]:
    arr = list(pt)
    # snarkjs emits projective [x, y, "1"]
    if len(arr) not in (2, 3):
        raise ValueError("G1 point must have 2 coordinates")
    return [int(_maybe_to_int(arr[0])), int(_maybe_to_int(arr[1]))]


def _norm_g2(pt: Iterable[Iterable[Any]]) -> List[List[int]]:
    arr = [list(a) for a in pt]
    if len(arr) not in (2, 3) or len(arr[0]) != 2 or len(arr[1]) != 2:
        raise ValueError("G2 point must be [[x0,x1],[y0,y1]]")
    return [
        [int(_maybe_to_int(arr[0][0])), int(_maybe_to_int(arr[0][1]))],
        [int(_maybe_to_int(arr[1][0])), int(_maybe_to_int(arr[1][1]))],
    ]


def normalize_groth16_vk(vk: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Normalize a SnarkJS Groth16 verifying key into a dict with the **same key
    names** SnarkJS uses, but with Python ints everywhere.
    """
    if not is_groth16_vk(vk):
        raise DeserializationError("object does not look like a Groth16 verifying key")
    out: Dict[str, Any] = {}
    for meta_key in ("protocol", "curve", "nPublic"):
        if meta_key in vk:
            out[meta_key] = vk[meta_key]

    try:
        out["vk_alpha_1"] = _norm_g1(vk["vk_alpha_1"])
        out["vk_beta_2"] = _norm_g2(vk["vk_beta_2"])
        out["vk_gamma_2"] = _norm_g2(vk["vk_gamma_2"])
        out["vk_delta_2"] = _norm_g2(vk["vk_delta_2"])
        IC = vk.get("IC")
        if not isinstance(IC, list) or len(IC) == 0:
            raise ValueError("vk.IC must be a non-empty list of G1 points")
        out["IC"] = [_norm_g1(pt) for pt in IC]
    except (TypeError, ValueError) as e:
        raise DeserializationError(f"malformed Groth16 verifying key: {e}") from e
    return out


def normalize_groth16_proof(bundle_or_proof: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[int]]:
    """
    Accept either:
      - flat proof dict {pi_a, pi_b, pi_c, protocol?, curve?, publicSignals?}
      - bundle {proof: {...}, publicSignals: [...]}

    Returns: (proof_dict, public_inputs_list_of_ints)
    """
    if isinstance(bundle_or_proof.get("proof"), Mapping):
        proof = bundle_or_proof["proof"]
    else:
        proof = bundle_or_proof
    publics = bundle_or_proof.get("publicSignals", [])

    if not is_groth16_proof(proof):
        missing = [k for k in ("pi_a", "pi_b", "pi_c") if k not in proof]
        raise DeserializationError(f"Groth16 proof missing {missing}")

    out: Dict[str, Any] = {}
    for meta_key in ("protocol", "curve"):
        if meta_key in proof:
            out[meta_key] = str(proof[meta_key])

    try:
        out["pi_a"] = _norm_g1(proof["pi_a"])
        out["pi_b"] = _norm_g2(proof["pi_b"])
        out["pi_c"] = _norm_g1(proof["pi_c"])
        if publics is None:
            public_signals: List[int] = []
        elif isinstance(publics, list):
            public_signals = [int(_maybe_to_int(v)) for v in publics]
        else:
            raise ValueError("publicSignals must be a list when present")
    except (TypeError, ValueError) as e:
        raise DeserializationError(f"malformed Groth16 proof: {e}") from e

    return out, public_signals


# -----------------------------------------------------------------------------
# Proving via the snarkjs CLI
# -----------------------------------------------------------------------------

async def fullprove(
    inputs: Mapping[str, Any],
    wasm: Union[str, Path],
    zkey: Union[str, Path],
    *,
    snarkjs_bin: str = "snarkjs",
    timeout: float = 600.0,
) -> Tuple[Dict[str, Any], List[int]]:
    """
    Run ``snarkjs groth16 fullprove input.json <wasm> <zkey> proof.json public.json``
    in a temp dir and return the normalized (proof, public signals).

    Cancelling the awaiting task kills the child process.
    """
    with tempfile.TemporaryDirectory(prefix="umbra-prove-") as tmp:
        tmpdir = Path(tmp)
        input_p = tmpdir / "input.json"
        proof_p = tmpdir / "proof.json"
        public_p = tmpdir / "public.json"
        input_p.write_text(json.dumps(inputs, separators=(",", ":")), encoding="utf-8")

        cmd = [
            snarkjs_bin, "groth16", "fullprove",
            str(input_p), str(wasm), str(zkey), str(proof_p), str(public_p),
        ]
        log.debug("spawning %s", " ".join(cmd[:3]))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ProverError(
                "snarkjs executable not found", retryable=False, bin=snarkjs_bin
            ) from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            await _kill(proc)
            raise TimeoutErrorA("snarkjs fullprove timed out", timeout=timeout) from e
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        if proc.returncode != 0:
            raise ProverError(
                "snarkjs fullprove failed",
                returncode=proc.returncode,
                stderr=(stderr or b"").decode("utf-8", "replace")[-2000:],
            )

        proof, _ = normalize_groth16_proof(normalize_numbers(load_json(proof_p)))
        publics = load_json(public_p)
        if not isinstance(publics, list):
            raise DeserializationError("public.json must be a list")
        return proof, [int(_maybe_to_int(v)) for v in publics]


async def _kill(proc: "asyncio.subprocess.Process") -> None:
    if proc.returncode is None:
        proc.kill()
        await proc.wait()


__all__ = [
    "load_json",
    "normalize_numbers",
    "is_groth16_vk",
    "is_groth16_proof",
    "normalize_groth16_vk",
    "normalize_groth16_proof",
    "fullprove",
]
