"""
Append-only incremental binary hash tree.

Fixed depth D, 2**D slots pre-filled with `zero_value` (by default
NOTHING_UP_MY_SLEEVE). Root maintenance uses the frontier algorithm: for each
level we remember the last completed left child ("filled subtree"), so an
insertion touches exactly D nodes.

Witnesses come from per-level node lists: `levels[l][j]` is the node at
position j of level l among the positions written so far. Each insertion
either appends to a level or overwrites its last entry, which keeps
`witness()` O(D) and makes `snapshot()`/`restore()` O(D) too.

The same class runs on the ledger (authoritative) and off-ledger
(reconstructed); identical insertion histories give bit-identical roots and
witnesses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from core.config import NOTHING_UP_MY_SLEEVE

from .capabilities import Hasher
from .errors import CapacityExceeded, IndexNotFilled
from .leaf import encode_interior_hash


@dataclass(frozen=True)
class MerklePath:
    """D (sibling, direction) pairs from leaf to root; direction 1 = node is a right child."""

    siblings: Tuple[int, ...]
    directions: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.siblings)

    def pairs(self) -> List[Tuple[int, int]]:
        return list(zip(self.siblings, self.directions))

    def leaf_index(self) -> int:
        return sum(bit << level for level, bit in enumerate(self.directions))

    def compute_root(self, leaf_hash: int, hasher: Hasher) -> int:
        node = leaf_hash
        for sibling, direction in zip(self.siblings, self.directions):
            if direction:
                node = encode_interior_hash(sibling, node, hasher)
            else:
                node = encode_interior_hash(node, sibling, hasher)
        return node

    def to_circuit(self) -> Dict[str, List[str]]:
        return {
            "pathElements": [str(s) for s in self.siblings],
            "indices": [str(d) for d in self.directions],
        }

    @classmethod
    def from_circuit(cls, obj: Dict[str, Sequence]) -> "MerklePath":
        siblings = tuple(int(s) for s in obj["pathElements"])
        directions = tuple(int(d) for d in obj["indices"])
        if len(siblings) != len(directions) or any(d not in (0, 1) for d in directions):
            raise ValueError("malformed merkle path")
        return cls(siblings, directions)


def verify_path(root: int, leaf_hash: int, path: MerklePath, hasher: Hasher) -> bool:
    return path.compute_root(leaf_hash, hasher) == root


def zero_hashes(depth: int, zero_value: int, hasher: Hasher) -> List[int]:
    """zeros[0] = zero_value, zeros[i+1] = hash2(zeros[i], zeros[i]); D+1 entries."""
    zeros = [zero_value]
    for _ in range(depth):
        zeros.append(encode_interior_hash(zeros[-1], zeros[-1], hasher))
    return zeros


@dataclass(frozen=True)
class TreeSnapshot:
    next_index: int
    root: int
    filled: Tuple[int, ...]
    levels: Tuple[Tuple[int, int], ...]  # (length, last value) per level


class IncrementalTree:
    def __init__(
        self, depth: int, hasher: Hasher, zero_value: int = NOTHING_UP_MY_SLEEVE
    ) -> None:
        if depth < 1:
            raise ValueError("depth must be >= 1")
        self.depth = depth
        self.hasher = hasher
        self.zero_value = zero_value
        self.zeros = zero_hashes(depth, zero_value, hasher)
        self._filled: List[int] = list(self.zeros[:depth])
        self._levels: List[List[int]] = [[] for _ in range(depth + 1)]
        self._next_index = 0
        self._root = self.zeros[depth]

    # -------- accessors --------

    @property
    def root(self) -> int:
        return self._root

    @property
    def next_index(self) -> int:
        return self._next_index

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    @property
    def empty_root(self) -> int:
        return self.zeros[self.depth]

    def __len__(self) -> int:
        return self._next_index

    def leaf(self, index: int) -> int:
        self._check_index(index)
        return self._levels[0][index]

    # -------- mutation --------

    def insert(self, leaf_hash: int) -> int:
        index = self._next_index
        if index >= self.capacity:
            raise CapacityExceeded(self.capacity)

        node = leaf_hash
        pos = index
        self._store(0, pos, node)
        for level in range(self.depth):
            if pos & 1 == 0:
                self._filled[level] = node
                node = encode_interior_hash(node, self.zeros[level], self.hasher)
            else:
                node = encode_interior_hash(self._filled[level], node, self.hasher)
            pos >>= 1
            self._store(level + 1, pos, node)

        self._root = node
        self._next_index = index + 1
        return index

    def _store(self, level: int, pos: int, node: int) -> None:
        nodes = self._levels[level]
        if pos == len(nodes):
            nodes.append(node)
        else:
            nodes[pos] = node

    # -------- witnesses --------

    def witness(self, index: int) -> MerklePath:
        self._check_index(index)
        siblings: List[int] = []
        directions: List[int] = []
        pos = index
        for level in range(self.depth):
            nodes = self._levels[level]
            sib = pos ^ 1
            siblings.append(nodes[sib] if sib < len(nodes) else self.zeros[level])
            directions.append(pos & 1)
            pos >>= 1
        return MerklePath(tuple(siblings), tuple(directions))

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= self._next_index:
            raise IndexNotFilled(index, self._next_index)

    # -------- checkpoints --------

    def snapshot(self) -> TreeSnapshot:
        return TreeSnapshot(
            next_index=self._next_index,
            root=self._root,
            filled=tuple(self._filled),
            levels=tuple((len(n), n[-1] if n else 0) for n in self._levels),
        )

    def restore(self, snap: TreeSnapshot) -> None:
        if len(snap.levels) != self.depth + 1:
            raise ValueError("snapshot depth mismatch")
        for nodes, (length, last) in zip(self._levels, snap.levels):
            del nodes[length:]
            if length:
                nodes[-1] = last
        self._filled = list(snap.filled)
        self._next_index = snap.next_index
        self._root = snap.root


__all__ = ["MerklePath", "verify_path", "zero_hashes", "TreeSnapshot", "IncrementalTree"]
