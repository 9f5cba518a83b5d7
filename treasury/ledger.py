"""
Treasury ledger state and entry points.

`Treasury` is an explicit, injectable state object: accumulator, spent set,
directory, balances and the NewLeaf event log. Nothing is global; tests and
tools build as many independent ledgers as they like.

Every mutating call runs as one serialized transaction:

    with self._tx() as cs:
        ... mutate in memory, record into the changeset `cs` ...

On success the changeset is committed to the store (if any) and the pending
events are published to the event log. On *any* exception the in-memory state
is rolled back: the tree from its O(D) snapshot, the spent set and balances
from what this transaction touched. Callers observe either the whole effect or
none of it.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from core.config import NOTHING_UP_MY_SLEEVE, Config
from core.config import load as load_config
from core.errors import ConfigError, StateInvariant

from .accumulator import IncrementalTree
from .capabilities import Hasher, PoseidonHasher, Verifier
from .errors import CapacityExceeded, InsufficientLiquidity, ZeroValueDeposit
from .events import EventLog, MemoryEventLog, NewLeaf
from .leaf import Leaf, Point, TreasuryRecord
from .protocol import PublicSignals, WithdrawalProtocol, WithdrawalReceipt, WithdrawRequest
from .proving import build_proof_system
from .spent import SpentSet
from .store import Changeset, LedgerStore
from .terminator import BatchTerminator, DuplicateIndexTerminator, terminator_by_name

log = logging.getLogger("treasury.ledger")

POOL_KEY = "pool"


class Treasury:
    def __init__(
        self,
        *,
        depth: int,
        hasher: Hasher,
        verifier: Verifier,
        max_batch: int,
        terminator: Optional[BatchTerminator] = None,
        zero_value: int = NOTHING_UP_MY_SLEEVE,
        events: Optional[EventLog] = None,
        store: Optional[LedgerStore] = None,
    ) -> None:
        self.hasher = hasher
        self.tree = IncrementalTree(depth, hasher, zero_value)
        self.spent = SpentSet()
        self.protocol = WithdrawalProtocol(
            verifier, max_batch=max_batch, terminator=terminator or DuplicateIndexTerminator()
        )
        self._directory: List[TreasuryRecord] = []
        self._balances: Dict[str, int] = {}
        self._balance_undo: Dict[str, Optional[int]] = {}
        self._pool = 0
        self._store = store
        if store is not None:
            if events is not None:
                raise ValueError("a store-backed ledger uses the store's event log")
            self._events: EventLog = store.events
        else:
            self._events = events if events is not None else MemoryEventLog()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Construction from configuration / disk
    # ------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        *,
        hasher: Optional[Hasher] = None,
        verifier: Optional[Verifier] = None,
        store: Optional[LedgerStore] = None,
    ) -> "Treasury":
        hasher = hasher or PoseidonHasher.from_files(cfg.hash.poseidon_t3, cfg.hash.poseidon_t6)
        if verifier is None:
            _, verifier = build_proof_system(cfg, hasher)
        return cls(
            depth=cfg.tree.depth,
            hasher=hasher,
            verifier=verifier,
            max_batch=cfg.batch.max_batch,
            terminator=terminator_by_name(cfg.batch.terminator),
            zero_value=cfg.tree.zero_value,
            store=store,
        )

    @classmethod
    def open(
        cls,
        path: Union[str, Path, None] = None,
        cfg: Optional[Config] = None,
        *,
        hasher: Optional[Hasher] = None,
        verifier: Optional[Verifier] = None,
    ) -> "Treasury":
        """
        Open (or create) a persistent ledger. Leaves are replayed into a fresh
        accumulator and the stored root is checked against the replayed one.
        """
        cfg = cfg or load_config()
        if path is None:
            cfg.ensure_dirs()
            path = cfg.paths.db_path
        store = LedgerStore.open(path)
        try:
            t = cls.from_config(cfg, hasher=hasher, verifier=verifier, store=store)
            t._load(store)
        except BaseException:
            store.close()
            raise
        return t

    def _load(self, store: LedgerStore) -> None:
        meta = store.meta()
        if meta:
            if int(meta["depth"]) != self.tree.depth or int(meta["zero_value"]) != self.tree.zero_value:
                raise ConfigError(
                    "ledger database was created with a different tree shape",
                    stored_depth=int(meta["depth"]),
                    depth=self.tree.depth,
                )
        n = 0
        for ev in store.leaves():
            if ev.index != self.tree.insert(ev.leaf.hash(self.hasher)):
                raise StateInvariant("leaf table out of order", index=ev.index)
            n += 1
        if meta and int(meta["root"]) != self.tree.root:
            raise StateInvariant(
                "stored root does not match replayed leaves",
                stored=meta["root"],
                replayed=str(self.tree.root),
            )
        for idx in store.spent():
            if idx >= self.tree.next_index:
                raise StateInvariant(
                    "spent index beyond the leaf table", index=idx, next_index=self.tree.next_index
                )
            self.spent.mark_spent(idx)
        self._directory = store.directory()
        balances = store.balances()
        self._pool = balances.pop(POOL_KEY, 0)
        self._balances = balances
        if not meta:
            store.commit(Changeset(meta=self._meta()))
        log.info(
            "ledger opened",
            extra={"path": store.path, "leaves": n, "spent": len(self.spent), "root": str(self.tree.root)},
        )

    def close(self) -> None:
        if self._store is not None:
            self._store.close()

    def _meta(self) -> Dict[str, str]:
        return {
            "depth": str(self.tree.depth),
            "zero_value": str(self.tree.zero_value),
            "root": str(self.tree.root),
        }

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _tx(self) -> Iterator[Changeset]:
        with self._lock:
            tree_snap = self.tree.snapshot()
            spent_cp = self.spent.checkpoint()
            dir_len = len(self._directory)
            pool_snap = self._pool
            self._balance_undo = {}
            cs = Changeset()
            try:
                yield cs
                if cs.leaves or cs.spent:
                    cs.meta.update(self._meta())
                if self._store is not None:
                    self._store.commit(cs)
                else:
                    self._events.extend(cs.leaves)
            except BaseException:
                self.tree.restore(tree_snap)
                self.spent.rollback(spent_cp)
                del self._directory[dir_len:]
                for account, prior in self._balance_undo.items():
                    if prior is None:
                        self._balances.pop(account, None)
                    else:
                        self._balances[account] = prior
                self._pool = pool_snap
                raise

    def _credit(self, cs: Changeset, account: str, amount: int) -> None:
        self._balance_undo.setdefault(account, self._balances.get(account))
        self._balances[account] = self._balances.get(account, 0) + amount
        cs.balances[account] = self._balances[account]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def deposit(self, P: Point, Q: Point, value: int, *, sender: str = "anonymous") -> int:
        """Append Leaf(P, Q, value); returns the leaf index. Emits NewLeaf(kind="deposit")."""
        if value <= 0:
            raise ZeroValueDeposit(value)
        leaf = Leaf(Point.from_any(P), Point.from_any(Q), value)
        with self._tx() as cs:
            if self.tree.next_index >= self.tree.capacity:
                raise CapacityExceeded(self.tree.capacity)
            index = self.tree.insert(leaf.hash(self.hasher))
            self._pool += value
            cs.leaves.append(NewLeaf(index, leaf, "deposit"))
            cs.balances[POOL_KEY] = self._pool
        log.info(
            "deposit accepted",
            extra={"index": index, "value": value, "sender": sender, "root": str(self.tree.root)},
        )
        return index

    def withdraw(
        self,
        amount: int,
        change_P: Point,
        change_Q: Point,
        proof: object,
        public_signals: Union[PublicSignals, List[int]],
        *,
        caller: str = "manager",
    ) -> WithdrawalReceipt:
        if caller == POOL_KEY:
            raise ValueError(f"{POOL_KEY!r} is reserved for the pool balance")
        req = WithdrawRequest(
            amount=amount,
            change_P=Point.from_any(change_P),
            change_Q=Point.from_any(change_Q),
            proof=proof,
            public_signals=public_signals,
        )
        try:
            with self._tx() as cs:
                receipt = self.protocol.execute(self.tree, self.spent, req)
                if amount > self._pool:
                    raise InsufficientLiquidity(amount, self._pool)
                self._pool -= amount
                self._credit(cs, caller, amount)
                cs.spent.extend(receipt.consumed)
                cs.leaves.append(NewLeaf(receipt.change_index, receipt.change_leaf, "change"))
                cs.balances[POOL_KEY] = self._pool
        except Exception as e:
            log.warning("withdrawal rejected: %s", e, extra={"caller": caller, "amount": amount})
            raise
        log.info(
            "withdrawal applied",
            extra={
                "consumed": list(receipt.consumed),
                "amount": amount,
                "change_index": receipt.change_index,
                "change_value": receipt.change_leaf.value,
                "root": str(receipt.new_root),
            },
        )
        return receipt

    def register(self, public_key: Point, label: str) -> int:
        """Append a directory entry; returns its position."""
        if not isinstance(label, str):
            raise TypeError("label must be a string")
        rec = TreasuryRecord(Point.from_any(public_key), label)
        with self._tx() as cs:
            idx = len(self._directory)
            self._directory.append(rec)
            cs.directory.append((idx, rec))
        log.info("treasury registered", extra={"directory_index": idx, "label": label})
        return idx

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def root(self) -> int:
        return self.tree.root

    @property
    def next_index(self) -> int:
        return self.tree.next_index

    @property
    def directory_length(self) -> int:
        return len(self._directory)

    def directory(self, index: int) -> TreasuryRecord:
        return self._directory[index]

    def directory_entries(self) -> Tuple[TreasuryRecord, ...]:
        return tuple(self._directory)

    def balance(self, account: str) -> int:
        return self._balances.get(account, 0)

    @property
    def pool_balance(self) -> int:
        return self._pool

    def is_spent(self, index: int) -> bool:
        return self.spent.is_spent(index)

    @property
    def max_batch(self) -> int:
        return self.protocol.max_batch

    @property
    def terminator(self) -> BatchTerminator:
        return self.protocol.terminator

    def history(self) -> Iterator[NewLeaf]:
        """One ordered pass over every NewLeaf event."""
        return iter(self._events)


__all__ = ["Treasury", "POOL_KEY"]
