"""
Manager-side withdrawal workflow.

    session = WithdrawalSession.for_treasury(treasury, alpha, prover)
    receipt = await session.withdraw(amount=100, positions=[0, 1])

Steps (one attempt):

    1. read the NewLeaf history (one pass) and rebuild the accumulator
    2. check the rebuilt root against the ledger root        (RootMismatch)
    3. find leaves owned by α, drop spent ones, select targets
    4. witnesses + padding per the ledger's batch terminator
    5. prove (async, cancellable)
    6. verify locally before submitting                       (InvalidProof)
    7. submit with change material                            (StaleRoot, ...)

A StaleRoot on submit means the ledger moved while we were proving. Nothing
here retries on its own: `withdraw_with_refresh(max_attempts=...)` is the
explicit opt-in that rebuilds and re-proves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Protocol, Sequence, Tuple, Union

from core import logging as clog
from core.config import NOTHING_UP_MY_SLEEVE
from zk.curves import babyjub

from .capabilities import Hasher, Prover, Verifier
from .errors import InvalidProof, StaleRoot
from .events import NewLeaf
from .leaf import Leaf, Point, derive_change_material
from .protocol import PublicSignals, WithdrawalReceipt
from .reconstruct import PaddedBatch, find_owned_leaves, rebuild_from_history
from .terminator import BatchTerminator

log = logging.getLogger("treasury.manager")

ChangeSpec = Union[None, str, Tuple[Point, Point]]


class LedgerView(Protocol):
    @property
    def root(self) -> int: ...

    def is_spent(self, index: int) -> bool: ...

    def history(self) -> Iterator[NewLeaf]: ...

    def withdraw(
        self,
        amount: int,
        change_P: Point,
        change_Q: Point,
        proof: Any,
        public_signals: Any,
        *,
        caller: str = ...,
    ) -> WithdrawalReceipt: ...


@dataclass(frozen=True)
class PreparedWithdrawal:
    root: int
    batch: PaddedBatch
    proof: Any
    public_signals: PublicSignals

    @property
    def targets(self) -> List[int]:
        return [e.index for e in self.batch.targets]

    @property
    def total_value(self) -> int:
        return self.batch.total_value


class WithdrawalSession:
    def __init__(
        self,
        ledger: LedgerView,
        alpha: int,
        prover: Prover,
        verifier: Optional[Verifier] = None,
        *,
        hasher: Hasher,
        depth: int,
        max_batch: int,
        terminator: BatchTerminator,
        zero_value: int = NOTHING_UP_MY_SLEEVE,
        caller: str = "manager",
    ) -> None:
        if not (0 < alpha < babyjub.SUBGROUP_ORDER):
            raise ValueError("treasury private scalar out of range")
        self.ledger = ledger
        self.alpha = alpha
        self.prover = prover
        self.verifier = verifier
        self.hasher = hasher
        self.depth = depth
        self.max_batch = max_batch
        self.terminator = terminator
        self.zero_value = zero_value
        self.caller = caller

    @classmethod
    def for_treasury(
        cls,
        treasury: Any,
        alpha: int,
        prover: Prover,
        verifier: Optional[Verifier] = None,
        *,
        caller: str = "manager",
    ) -> "WithdrawalSession":
        """Take tree shape, hasher and batch policy from a `treasury.ledger.Treasury`."""
        return cls(
            treasury,
            alpha,
            prover,
            verifier if verifier is not None else treasury.protocol.verifier,
            hasher=treasury.hasher,
            depth=treasury.tree.depth,
            max_batch=treasury.max_batch,
            terminator=treasury.terminator,
            zero_value=treasury.tree.zero_value,
            caller=caller,
        )

    # ------------------------------------------------------------------

    def owned_unspent(self) -> List[int]:
        """Ascending indices of unspent leaves α can spend (full history replay)."""
        recon = rebuild_from_history(
            self.ledger.history(), depth=self.depth, hasher=self.hasher, zero_value=self.zero_value
        )
        return self._owned_unspent(recon.leaves)

    def _owned_unspent(self, leaves: Sequence[Any]) -> List[int]:
        owned = find_owned_leaves(leaves, self.alpha)
        return [i for i in sorted(owned) if not self.ledger.is_spent(i)]

    async def prepare(
        self,
        positions: Optional[Sequence[int]] = None,
        *,
        indices: Optional[Sequence[int]] = None,
    ) -> PreparedWithdrawal:
        """
        Build and prove a batch. Targets are chosen either by `positions` in the
        ascending list of owned unspent leaves, or by explicit leaf `indices`
        (which must be owned and unspent). Default: the first max_batch owned leaves
        holding a non-zero value.
        """
        recon = rebuild_from_history(
            self.ledger.history(), depth=self.depth, hasher=self.hasher, zero_value=self.zero_value
        )
        recon.check_root(self.ledger.root)
        available = self._owned_unspent(recon.leaves)
        targets = self._select(available, recon.leaves, positions, indices)
        log.info("batch selected", extra={"targets": targets, "owned": len(available)})

        batch = recon.prepare_batch(targets, self.max_batch, self.terminator)
        inputs = batch.circuit_inputs(recon.root, self.alpha)
        proof, publics = await self.prover.prove_async(inputs)
        signals = PublicSignals.from_list(publics, self.max_batch)
        if signals != batch.public_signals(recon.root):
            raise InvalidProof("prover returned unexpected public signals")

        if self.verifier is not None and not self.verifier.verify(proof, signals.to_list()):
            raise InvalidProof("proof failed local verification")
        log.info("proof ready", extra={"root": str(recon.root), "live": batch.live})
        return PreparedWithdrawal(root=recon.root, batch=batch, proof=proof, public_signals=signals)

    def _select(
        self,
        available: List[int],
        leaves: Sequence[Leaf],
        positions: Optional[Sequence[int]],
        indices: Optional[Sequence[int]],
    ) -> List[int]:
        if positions is not None and indices is not None:
            raise ValueError("select by positions or by indices, not both")
        if indices is not None:
            avail = set(available)
            missing = [i for i in indices if i not in avail]
            if missing:
                raise ValueError(f"leaves not owned or already spent: {missing}")
            return list(indices)
        if positions is not None:
            try:
                return [available[p] for p in positions]
            except IndexError:
                raise ValueError(
                    f"selection position out of range (have {len(available)} owned leaves)"
                ) from None
        if not available:
            raise ValueError("no owned unspent leaves")
        # zero-valued leaves add nothing and may only lead a zero-value-terminated batch
        valued = [i for i in available if leaves[i].value > 0]
        return valued[: self.max_batch] if valued else available[:1]

    def change_material(self, prepared: PreparedWithdrawal, change: ChangeSpec = None) -> Tuple[Point, Point]:
        """
        None     → reuse the last target leaf's (P, Q)
        "fresh"  → new (P, Q) owned by α
        (P, Q)   → as given
        """
        if change is None:
            last = prepared.batch.targets[-1].leaf
            return last.P, last.Q
        if change == "fresh":
            return derive_change_material(self.alpha, babyjub.random_scalar())
        if isinstance(change, str):
            raise ValueError(f"unknown change spec {change!r}")
        P, Q = change
        return Point.from_any(P), Point.from_any(Q)

    def submit(
        self, prepared: PreparedWithdrawal, amount: int, *, change: ChangeSpec = None
    ) -> WithdrawalReceipt:
        P, Q = self.change_material(prepared, change)
        return self.ledger.withdraw(
            amount, P, Q, prepared.proof, prepared.public_signals, caller=self.caller
        )

    async def withdraw(
        self,
        amount: int,
        positions: Optional[Sequence[int]] = None,
        *,
        indices: Optional[Sequence[int]] = None,
        change: ChangeSpec = None,
    ) -> WithdrawalReceipt:
        prepared = await self.prepare(positions, indices=indices)
        return self.submit(prepared, amount, change=change)

    async def withdraw_with_refresh(
        self,
        amount: int,
        positions: Optional[Sequence[int]] = None,
        *,
        indices: Optional[Sequence[int]] = None,
        change: ChangeSpec = None,
        max_attempts: int = 1,
    ) -> WithdrawalReceipt:
        """Retry on StaleRoot (rebuild + re-prove) up to `max_attempts` attempts in total."""
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        with clog.trace_scope(component="withdraw"):
            for attempt in range(1, max_attempts + 1):
                clog.bind(attempt=attempt)
                try:
                    return await self.withdraw(amount, positions, indices=indices, change=change)
                except StaleRoot as e:
                    if attempt == max_attempts:
                        raise e.with_context(attempts=attempt) from None
                    log.warning(
                        "root moved during proving; refreshing",
                        extra={"claimed": str(e.claimed), "current": str(e.current)},
                    )
        raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["LedgerView", "PreparedWithdrawal", "WithdrawalSession"]
