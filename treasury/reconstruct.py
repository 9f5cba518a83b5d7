"""
Off-ledger reconstruction.

The manager never reads ledger internals. Everything is rebuilt from one pass
over the NewLeaf event log:

    recon = rebuild_from_history(treasury.history(), depth=32, hasher=h)
    recon.check_root(treasury.root)            # RootMismatch if history diverged
    owned = find_owned_leaves(recon.leaves, alpha)
    batch = recon.prepare_batch(sorted(owned)[:2], n=5, terminator=term)
    inputs = batch.circuit_inputs(recon.root, alpha)

`pad_batch` is the off-ledger half of the batch-termination contract; the
terminator it is given must be the one the ledger walks with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Set, Union

from core.config import NOTHING_UP_MY_SLEEVE
from core.errors import StateInvariant

from .accumulator import IncrementalTree, MerklePath
from .capabilities import Hasher
from .errors import RootMismatch
from .events import NewLeaf
from .leaf import Leaf
from .protocol import PublicSignals
from .terminator import BatchEntry, BatchTerminator

log = logging.getLogger("treasury.reconstruct")

LeafRecord = Union[Leaf, NewLeaf]


def _leaf_of(rec: LeafRecord) -> Leaf:
    return rec.leaf if isinstance(rec, NewLeaf) else rec


@dataclass
class Reconstruction:
    tree: IncrementalTree
    leaves: List[Leaf]

    @property
    def root(self) -> int:
        return self.tree.root

    def check_root(self, expected: int) -> None:
        if self.tree.root != expected:
            log.error(
                "reconstructed root mismatch",
                extra={"rebuilt": str(self.tree.root), "expected": str(expected), "leaves": len(self.leaves)},
            )
            raise RootMismatch(self.tree.root, expected, len(self.leaves))

    def witness(self, index: int) -> MerklePath:
        return self.tree.witness(index)

    def prepare_batch(
        self, target_indices: Sequence[int], n: int, terminator: BatchTerminator
    ) -> "PaddedBatch":
        leaves = [self.leaves[i] if 0 <= i < len(self.leaves) else None for i in target_indices]
        # witness() raises IndexNotFilled for anything outside the history
        witnesses = [self.tree.witness(i) for i in target_indices]
        return pad_batch(target_indices, leaves, witnesses, n, terminator)  # type: ignore[arg-type]


def rebuild_from_history(
    records: Iterable[LeafRecord],
    *,
    depth: int,
    hasher: Hasher,
    zero_value: int = NOTHING_UP_MY_SLEEVE,
) -> Reconstruction:
    """Replay every leaf in emission order. Consumes `records` exactly once."""
    tree = IncrementalTree(depth, hasher, zero_value)
    leaves: List[Leaf] = []
    for rec in records:
        leaf = _leaf_of(rec)
        index = tree.insert(leaf.hash(hasher))
        if isinstance(rec, NewLeaf) and rec.index != index:
            raise StateInvariant(
                "event log has a gap", event_index=rec.index, replay_index=index
            )
        leaves.append(leaf)
    log.info("history replayed", extra={"leaves": len(leaves), "root": str(tree.root)})
    return Reconstruction(tree=tree, leaves=leaves)


def find_owned_leaves(records: Iterable[LeafRecord], alpha: int) -> Set[int]:
    """Indices whose leaf satisfies Q == α·P. Pure."""
    owned: Set[int] = set()
    for pos, rec in enumerate(records):
        index = rec.index if isinstance(rec, NewLeaf) else pos
        if _leaf_of(rec).owned_by(alpha):
            owned.add(index)
    log.debug("ownership scan complete", extra={"owned": len(owned)})
    return owned


@dataclass(frozen=True)
class PaddedBatch:
    entries: List[BatchEntry]
    live: int  # number of real targets

    @property
    def n(self) -> int:
        return len(self.entries)

    @property
    def values(self) -> List[int]:
        return [e.leaf.value for e in self.entries]

    @property
    def indices(self) -> List[int]:
        return [e.index for e in self.entries]

    @property
    def total_value(self) -> int:
        return sum(e.leaf.value for e in self.entries[: self.live])

    @property
    def targets(self) -> List[BatchEntry]:
        return self.entries[: self.live]

    def public_signals(self, root: int) -> PublicSignals:
        return PublicSignals(root=root, values=tuple(self.values), indices=tuple(self.indices))

    def circuit_inputs(self, root: int, alpha: int) -> Dict[str, Any]:
        """Withdrawal circuit input map (decimal strings)."""
        return {
            "v": [str(e.leaf.value) for e in self.entries],
            "root": str(root),
            "leafIndex": [str(e.index) for e in self.entries],
            "P": [e.leaf.P.to_list() for e in self.entries],
            "Q": [e.leaf.Q.to_list() for e in self.entries],
            "treasuryPriv": str(alpha),
            "pathIndex": [e.path.to_circuit()["indices"] for e in self.entries],
            "pathElements": [e.path.to_circuit()["pathElements"] for e in self.entries],
        }


def pad_batch(
    target_indices: Sequence[int],
    leaves: Sequence[Leaf],
    witnesses: Sequence[MerklePath],
    n: int,
    terminator: BatchTerminator,
) -> PaddedBatch:
    """
    Pad the selected targets (leaves/witnesses aligned with target_indices)
    to exactly n entries using `terminator`'s padding scheme.
    """
    if not (len(target_indices) == len(leaves) == len(witnesses)):
        raise ValueError("target_indices, leaves and witnesses must be aligned")
    for i, leaf in zip(target_indices, leaves):
        if leaf is None:
            raise ValueError(f"no leaf data for index {i}")
    entries = [BatchEntry(i, lf, w) for i, lf, w in zip(target_indices, leaves, witnesses)]
    padded = terminator.pad(entries, n)
    live = terminator.batch_length([e.leaf.value for e in padded], [e.index for e in padded])
    if live != len(entries):
        raise ValueError(
            f"padding does not terminate where expected (live={live}, targets={len(entries)})"
        )
    return PaddedBatch(entries=padded, live=live)


__all__ = [
    "Reconstruction",
    "rebuild_from_history",
    "find_owned_leaves",
    "PaddedBatch",
    "pad_batch",
]
