"""
Batch termination policies.

A withdrawal always carries N (value, index) pairs; batches with fewer real
targets are padded. A policy owns *both* halves of that contract: how the
off-ledger side pads (`pad`) and where the ledger stops walking
(`batch_length`). Keeping them together stops the two from drifting apart.

DuplicateIndexTerminator (reference)
    Padding repeats the first target (data, witness and index). The walk stops
    at the first position i > 1 whose index equals index_1, i.e. the value at
    flat signal position N+1. The comparison is against that fixed position,
    not against the padding value actually used; a real target that repeats
    index_1 would end the batch early. Such a batch is a double spend anyway,
    so `pad` refuses it.

ZeroValueTerminator
    Padding entries carry value 0 and index 0 (with the first target's witness).
    The walk stops at the first position i > 1 whose value is 0. Zero-valued
    leaves (e.g. change from an exact withdrawal) may only be selected first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Type

from core.errors import ConfigError

from .accumulator import MerklePath
from .errors import BatchTooLarge
from .leaf import Leaf


@dataclass(frozen=True)
class BatchEntry:
    index: int
    leaf: Leaf
    path: MerklePath


class BatchTerminator:
    name = "abstract"

    def batch_length(self, values: Sequence[int], indices: Sequence[int]) -> int:
        """Number of real entries in a padded batch (1..N)."""
        raise NotImplementedError

    def pad(self, entries: Sequence[BatchEntry], n: int) -> List[BatchEntry]:
        raise NotImplementedError

    def _check(self, entries: Sequence[BatchEntry], n: int) -> None:
        if not entries:
            raise ValueError("at least one target is required")
        if len(entries) > n:
            raise BatchTooLarge(len(entries), n)
        seen = set()
        for e in entries:
            if e.index in seen:
                raise ValueError(f"target index {e.index} selected twice")
            seen.add(e.index)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DuplicateIndexTerminator(BatchTerminator):
    name = "duplicate-index"

    def batch_length(self, values: Sequence[int], indices: Sequence[int]) -> int:
        first = indices[0]
        for i in range(1, len(indices)):
            if indices[i] == first:
                return i
        return len(indices)

    def pad(self, entries: Sequence[BatchEntry], n: int) -> List[BatchEntry]:
        self._check(entries, n)
        return list(entries) + [entries[0]] * (n - len(entries))


class ZeroValueTerminator(BatchTerminator):
    name = "zero-value"

    def batch_length(self, values: Sequence[int], indices: Sequence[int]) -> int:
        for i in range(1, len(values)):
            if values[i] == 0:
                return i
        return len(values)

    def pad(self, entries: Sequence[BatchEntry], n: int) -> List[BatchEntry]:
        self._check(entries, n)
        for e in entries[1:]:
            if e.leaf.value == 0:
                raise ValueError(
                    f"zero-valued leaf {e.index} would end the batch; select it first or not at all"
                )
        first = entries[0]
        filler = BatchEntry(
            index=0,
            leaf=Leaf(first.leaf.P, first.leaf.Q, 0),
            path=first.path,
        )
        return list(entries) + [filler] * (n - len(entries))


_POLICIES: Dict[str, Type[BatchTerminator]] = {
    DuplicateIndexTerminator.name: DuplicateIndexTerminator,
    ZeroValueTerminator.name: ZeroValueTerminator,
}


def terminator_by_name(name: str) -> BatchTerminator:
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ConfigError(
            f"unknown terminator {name!r}", supported=sorted(_POLICIES)
        ) from None


__all__ = [
    "BatchEntry",
    "BatchTerminator",
    "DuplicateIndexTerminator",
    "ZeroValueTerminator",
    "terminator_by_name",
]
