"""
treasury.tests helpers

Stand-ins for the capabilities the ledger consumes, plus small builders.

Exports:
- AcceptAll / RejectAll           verifiers with a fixed answer
- MovingLedger                    ledger view whose root moves under the first submit
- naive_root(leaves, depth, ...)  full-tree recomputation for cross-checks
- clear_session(treasury, alpha)  WithdrawalSession wired to the clear proof system
- run(coro)                       asyncio.run shorthand
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterator, List, Sequence

from treasury.leaf import make_deposit_material
from treasury.manager import WithdrawalSession


class AcceptAll:
    def __init__(self) -> None:
        self.calls = 0

    def verify(self, proof: Any, public_signals: Sequence[int]) -> bool:
        self.calls += 1
        return True


class RejectAll:
    def __init__(self) -> None:
        self.calls = 0

    def verify(self, proof: Any, public_signals: Sequence[int]) -> bool:
        self.calls += 1
        return False


class MovingLedger:
    """
    Delegates to a real Treasury, but the first `withdraw` call lands one
    extra deposit first, so the submitted root is stale exactly once.
    """

    def __init__(self, treasury: Any, pub: Any, moves: int = 1) -> None:
        self.t = treasury
        self.pub = pub
        self.moves = moves
        self.submits = 0

    @property
    def root(self) -> int:
        return self.t.root

    def is_spent(self, index: int) -> bool:
        return self.t.is_spent(index)

    def history(self) -> Iterator[Any]:
        return self.t.history()

    def withdraw(self, *args: Any, **kwargs: Any) -> Any:
        self.submits += 1
        if self.moves > 0:
            self.moves -= 1
            P, Q = make_deposit_material(self.pub, 424242 + self.submits)
            self.t.deposit(P, Q, 1, sender="interloper")
        return self.t.withdraw(*args, **kwargs)


def naive_root(leaves: Sequence[int], depth: int, hasher: Any, zero: int) -> int:
    layer: List[int] = list(leaves) + [zero] * ((1 << depth) - len(leaves))
    for _ in range(depth):
        layer = [hasher.hash2(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]
    return layer[0]


def clear_session(treasury: Any, alpha: int, **kwargs: Any) -> WithdrawalSession:
    # ClearProofSystem is both prover and verifier.
    clear = treasury.protocol.verifier
    return WithdrawalSession.for_treasury(treasury, alpha, clear, **kwargs)


def run(coro: Any) -> Any:
    return asyncio.run(coro)


__all__ = ["AcceptAll", "RejectAll", "MovingLedger", "naive_root", "clear_session", "run"]
