"""
Proof-system backends.

- Groth16Verifier   verifies snarkjs Groth16 proofs over BN254 (py_ecc pairing)
- SnarkjsProver     runs `snarkjs groth16 fullprove` as a cancellable subprocess
- ClearProofSystem  transparent development backend, NOT zero-knowledge

ClearProofSystem's "proof" is the witness itself (private scalar included).
Verification re-checks the relations the withdrawal circuit enforces for each
live batch entry:

    Q_i == α·P_i
    leaf_i = hash5(P_i, Q_i, v_i) is included in `root` at leafIndex_i

so the protocol logic can be exercised end to end without circuit artifacts.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from core.config import Config
from core.errors import ConfigError, ProverError
from zk.adapters import snarkjs
from zk.curves import babyjub
from zk.verifiers.groth16_bn254 import verify_groth16

from .accumulator import MerklePath
from .capabilities import Hasher, SyncProverMixin
from .terminator import BatchTerminator, terminator_by_name

log = logging.getLogger("treasury.proving")

CLEAR_PROTOCOL = "clear"


class Groth16Verifier:
    def __init__(self, vk: Mapping[str, Any]) -> None:
        self.vk = snarkjs.normalize_groth16_vk(snarkjs.normalize_numbers(vk))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Groth16Verifier":
        return cls(snarkjs.load_json(Path(path)))

    @property
    def n_public(self) -> int:
        return len(self.vk["IC"]) - 1

    def verify(self, proof: Any, public_signals: Sequence[int]) -> bool:
        if not isinstance(proof, Mapping):
            return False
        if len(public_signals) != self.n_public:
            log.debug("public signal count %d != vk %d", len(public_signals), self.n_public)
            return False
        return verify_groth16(self.vk, proof, list(public_signals))


class SnarkjsProver:
    def __init__(
        self,
        wasm: Union[str, Path],
        zkey: Union[str, Path],
        *,
        snarkjs_bin: str = "snarkjs",
        timeout: float = 600.0,
    ) -> None:
        self.wasm = Path(wasm)
        self.zkey = Path(zkey)
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout

    async def prove_async(self, inputs: Mapping[str, Any]) -> Tuple[Any, List[int]]:
        return await snarkjs.fullprove(
            inputs, self.wasm, self.zkey, snarkjs_bin=self.snarkjs_bin, timeout=self.timeout
        )

    def prove(self, inputs: Mapping[str, Any]) -> Tuple[Any, List[int]]:
        return asyncio.run(self.prove_async(inputs))


class ClearProofSystem(SyncProverMixin):
    def __init__(self, depth: int, hasher: Hasher, terminator: BatchTerminator) -> None:
        self.depth = depth
        self.hasher = hasher
        self.terminator = terminator

    # -------- prover --------

    def prove(self, inputs: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[int]]:
        try:
            witness = _normalize_witness(inputs)
            publics = [witness["root"], *witness["v"], *witness["leafIndex"]]
            reason = self._check(witness)
        except (KeyError, TypeError, ValueError) as e:
            raise ProverError(f"malformed circuit inputs: {e}", retryable=False) from e
        if reason:
            raise ProverError(f"witness does not satisfy the circuit: {reason}", retryable=False)
        log.warning(
            "clear proof built: the private key travels with it; use the snarkjs backend in production",
            extra={"root": str(witness["root"])},
        )
        return {"protocol": CLEAR_PROTOCOL, "witness": _witness_to_json(witness)}, publics

    # -------- verifier --------

    def verify(self, proof: Any, public_signals: Sequence[int]) -> bool:
        if not isinstance(proof, Mapping) or proof.get("protocol") != CLEAR_PROTOCOL:
            return False
        try:
            witness = _normalize_witness(proof["witness"])
            expected = [witness["root"], *witness["v"], *witness["leafIndex"]]
            if [int(s) for s in public_signals] != expected:
                log.debug("clear proof: public signals do not match witness")
                return False
            reason = self._check(witness)
        except (KeyError, TypeError, ValueError) as e:
            log.debug("clear proof rejected: %s", e)
            return False
        if reason:
            log.debug("clear proof rejected: %s", reason)
            return False
        return True

    def _check(self, w: Mapping[str, Any]) -> Optional[str]:
        n = len(w["v"])
        for key in ("leafIndex", "P", "Q", "pathIndex", "pathElements"):
            if len(w[key]) != n:
                raise ValueError(f"{key} has {len(w[key])} entries, expected {n}")
        alpha = w["treasuryPriv"]
        root = w["root"]
        k = self.terminator.batch_length(w["v"], w["leafIndex"])
        for i in range(k):
            P, Q, v = w["P"][i], w["Q"][i], w["v"][i]
            if babyjub.mul(P, alpha) != Q:
                return f"entry {i + 1}: Q is not derived from P"
            path = MerklePath(tuple(w["pathElements"][i]), tuple(w["pathIndex"][i]))
            if len(path) != self.depth or any(d not in (0, 1) for d in path.directions):
                return f"entry {i + 1}: malformed path"
            if path.leaf_index() != w["leafIndex"][i]:
                return f"entry {i + 1}: path does not lead to leafIndex"
            leaf_hash = self.hasher.hash5(P[0], P[1], Q[0], Q[1], v)
            if path.compute_root(leaf_hash, self.hasher) != root:
                return f"entry {i + 1}: leaf not included in root"
        return None


def _normalize_witness(inputs: Mapping[str, Any]) -> Dict[str, Any]:
    def pt(x: Sequence[Any]) -> Tuple[int, int]:
        a, b = x
        return (int(a), int(b))

    return {
        "root": int(inputs["root"]),
        "treasuryPriv": int(inputs["treasuryPriv"]),
        "v": [int(x) for x in inputs["v"]],
        "leafIndex": [int(x) for x in inputs["leafIndex"]],
        "P": [pt(p) for p in inputs["P"]],
        "Q": [pt(q) for q in inputs["Q"]],
        "pathIndex": [[int(d) for d in row] for row in inputs["pathIndex"]],
        "pathElements": [[int(s) for s in row] for row in inputs["pathElements"]],
    }


def _witness_to_json(w: Mapping[str, Any]) -> Dict[str, Any]:
    def s(x: Any) -> Any:
        if isinstance(x, (list, tuple)):
            return [s(i) for i in x]
        return str(x)

    return {k: s(v) for k, v in w.items()}


def build_proof_system(cfg: Config, hasher: Hasher) -> Tuple[Any, Any]:
    """(prover, verifier) for the configured backend."""
    p = cfg.prover
    if p.backend == "clear":
        clear = ClearProofSystem(cfg.tree.depth, hasher, terminator_by_name(cfg.batch.terminator))
        return clear, clear
    if p.backend == "snarkjs":
        if p.wasm is None or p.zkey is None or p.vkey is None:
            raise ConfigError("snarkjs backend requires circuit artifacts")
        prover = SnarkjsProver(p.wasm, p.zkey, snarkjs_bin=p.snarkjs_bin, timeout=p.timeout)
        return prover, Groth16Verifier.from_file(p.vkey)
    raise ConfigError(f"unknown prover backend {p.backend!r}")


__all__ = [
    "CLEAR_PROTOCOL",
    "Groth16Verifier",
    "SnarkjsProver",
    "ClearProofSystem",
    "build_proof_system",
]
