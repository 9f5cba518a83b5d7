"""
Capability interfaces the treasury consumes.

The ledger never depends on a concrete hash or proof system; it is handed
objects satisfying these protocols. Production wiring uses `PoseidonHasher`
and `treasury.proving.Groth16Verifier`; tests can use the transparent
`treasury.proving.ClearProofSystem`.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import (Any, List, Mapping, Optional, Protocol, Sequence, Tuple, Union,
                    runtime_checkable)

from zk.verifiers import poseidon


@runtime_checkable
class Hasher(Protocol):
    def hash2(self, a: int, b: int) -> int: ...

    def hash5(self, a: int, b: int, c: int, d: int, e: int) -> int: ...


@runtime_checkable
class Verifier(Protocol):
    def verify(self, proof: Any, public_signals: Sequence[int]) -> bool: ...


@runtime_checkable
class Prover(Protocol):
    def prove(self, inputs: Mapping[str, Any]) -> Tuple[Any, List[int]]: ...

    async def prove_async(self, inputs: Mapping[str, Any]) -> Tuple[Any, List[int]]: ...


class PoseidonHasher:
    """Poseidon over BN254 Fr: t=3 for interior nodes, t=6 for leaves."""

    def __init__(
        self,
        t3: Union[str, poseidon.PoseidonParams] = "bn254_t3",
        t6: Union[str, poseidon.PoseidonParams] = "bn254_t6",
    ) -> None:
        # Parameters are bound at construction; later registry changes do not reach this hasher.
        self._t3 = poseidon.get_params(t3) if isinstance(t3, str) else t3
        self._t6 = poseidon.get_params(t6) if isinstance(t6, str) else t6
        if self._t3.t != 3 or self._t6.t != 6:
            raise ValueError(f"need t=3 and t=6 params, got t={self._t3.t} and t={self._t6.t}")

    @classmethod
    def from_files(
        cls, t3_path: Optional[Path] = None, t6_path: Optional[Path] = None
    ) -> "PoseidonHasher":
        """Use circuit parameter files where given, the built-in placeholders otherwise."""
        t3 = poseidon.read_params_json(t3_path) if t3_path is not None else "bn254_t3"
        t6 = poseidon.read_params_json(t6_path) if t6_path is not None else "bn254_t6"
        return cls(t3, t6)

    def hash2(self, a: int, b: int) -> int:
        return poseidon.poseidon_hash((a, b), params=self._t3)

    def hash5(self, a: int, b: int, c: int, d: int, e: int) -> int:
        return poseidon.poseidon_hash((a, b, c, d, e), params=self._t6)


class SyncProverMixin:
    """Provide `prove_async` for provers whose `prove` is synchronous."""

    async def prove_async(self, inputs: Mapping[str, Any]) -> Tuple[Any, List[int]]:
        return await asyncio.to_thread(self.prove, inputs)  # type: ignore[attr-defined]


__all__ = ["Hasher", "Verifier", "Prover", "PoseidonHasher", "SyncProverMixin"]
