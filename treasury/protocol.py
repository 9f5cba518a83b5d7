"""
Withdrawal protocol.

Public signals are a flat list of 1 + 2N field elements:

    [claimed_root, value_1 .. value_N, index_1 .. index_N]

Validation order (first failure wins, nothing is mutated before all checks pass):

    1. StaleRoot        claimed_root != tree.root
    2. InvalidProof     verifier rejects (proof, signals)
    3. walk i = 1..k    k from the batch terminator; each index must be filled
                        (IndexNotFilled) and unspent, including within the batch
                        (AlreadySpent); values are summed
    4. InsufficientValue  total < amount

Then: mark the walked indices spent, append the change leaf
(change_P, change_Q, total - amount) and report `amount` as released.
Balances and durability are the ledger's business (see treasury.ledger).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from core.config import SNARK_FIELD

from .accumulator import IncrementalTree
from .capabilities import Verifier
from .errors import (AlreadySpent, CapacityExceeded, IndexNotFilled, InsufficientValue,
                     InvalidProof, MalformedSignals, StaleRoot)
from .leaf import Leaf, Point
from .spent import SpentSet
from .terminator import BatchTerminator, DuplicateIndexTerminator

log = logging.getLogger("treasury.protocol")


@dataclass(frozen=True)
class PublicSignals:
    root: int
    values: Tuple[int, ...]
    indices: Tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.values) != len(self.indices) or not self.values:
            raise MalformedSignals(
                "values and indices must be non-empty and of equal length",
                values=len(self.values),
                indices=len(self.indices),
            )
        for v in (self.root, *self.values, *self.indices):
            if not (0 <= v < SNARK_FIELD):
                raise MalformedSignals("signal is not a field element")

    @property
    def n(self) -> int:
        return len(self.values)

    def to_list(self) -> List[int]:
        return [self.root, *self.values, *self.indices]

    @classmethod
    def from_list(cls, seq: Sequence[Union[int, str]], n: int) -> "PublicSignals":
        if len(seq) != 1 + 2 * n:
            raise MalformedSignals(
                "public signal list has the wrong length", expected=1 + 2 * n, got=len(seq)
            )
        try:
            ints = [int(v, 0) if isinstance(v, str) else int(v) for v in seq]
        except (TypeError, ValueError) as e:
            raise MalformedSignals(f"non-numeric public signal: {e}") from e
        return cls(root=ints[0], values=tuple(ints[1 : 1 + n]), indices=tuple(ints[1 + n :]))


@dataclass(frozen=True)
class WithdrawRequest:
    amount: int
    change_P: Point
    change_Q: Point
    proof: Any
    public_signals: Union[PublicSignals, Sequence[int]]


@dataclass(frozen=True)
class WithdrawalReceipt:
    consumed: Tuple[int, ...]
    total_value: int
    amount: int
    change_index: int
    change_leaf: Leaf
    new_root: int

    def to_json(self) -> dict:
        return {
            "consumed": list(self.consumed),
            "total_value": self.total_value,
            "amount": self.amount,
            "change_index": self.change_index,
            "change_leaf": self.change_leaf.to_json(),
            "new_root": str(self.new_root),
        }


class WithdrawalProtocol:
    def __init__(
        self,
        verifier: Verifier,
        *,
        max_batch: int,
        terminator: Optional[BatchTerminator] = None,
    ) -> None:
        if max_batch < 1:
            raise ValueError("max_batch must be >= 1")
        self.verifier = verifier
        self.max_batch = max_batch
        self.terminator = terminator or DuplicateIndexTerminator()

    def signals(self, raw: Union[PublicSignals, Sequence[Union[int, str]]]) -> PublicSignals:
        if isinstance(raw, PublicSignals):
            if raw.n != self.max_batch:
                raise MalformedSignals("batch size mismatch", expected=self.max_batch, got=raw.n)
            return raw
        return PublicSignals.from_list(raw, self.max_batch)

    def validate(
        self, tree: IncrementalTree, spent: SpentSet, req: WithdrawRequest
    ) -> Tuple[List[int], int]:
        """Steps 1-4. Pure: returns (indices to consume, total value)."""
        sig = self.signals(req.public_signals)
        if req.amount < 0:
            raise ValueError("amount must be non-negative")

        if sig.root != tree.root:
            raise StaleRoot(sig.root, tree.root)

        if not self.verifier.verify(req.proof, sig.to_list()):
            raise InvalidProof(root=str(sig.root))

        k = self.terminator.batch_length(sig.values, sig.indices)
        consumed: List[int] = []
        seen = set()
        total = 0
        for i in range(k):
            idx, val = sig.indices[i], sig.values[i]
            if idx >= tree.next_index:
                raise IndexNotFilled(idx, tree.next_index)
            if idx in seen or spent.is_spent(idx):
                raise AlreadySpent(idx)
            seen.add(idx)
            consumed.append(idx)
            total += val
            log.debug("batch entry %d: index=%d value=%d", i + 1, idx, val)

        if total < req.amount:
            raise InsufficientValue(req.amount, total)
        return consumed, total

    def execute(
        self, tree: IncrementalTree, spent: SpentSet, req: WithdrawRequest
    ) -> WithdrawalReceipt:
        """
        Validate, then mutate `spent` and `tree`. Callers wanting all-or-nothing
        semantics across their own state run this inside a transaction.
        """
        consumed, total = self.validate(tree, spent, req)
        if tree.next_index >= tree.capacity:
            raise CapacityExceeded(tree.capacity)

        change = Leaf(req.change_P, req.change_Q, total - req.amount)
        for idx in consumed:
            spent.mark_spent(idx)
        change_index = tree.insert(change.hash(tree.hasher))

        return WithdrawalReceipt(
            consumed=tuple(consumed),
            total_value=total,
            amount=req.amount,
            change_index=change_index,
            change_leaf=change,
            new_root=tree.root,
        )


__all__ = ["PublicSignals", "WithdrawRequest", "WithdrawalReceipt", "WithdrawalProtocol"]
