"""
SQLite persistence for the treasury ledger
==========================================

Schema
------
- leaves(idx, kind, px, py, qx, qy, value)   NewLeaf event log (see treasury.events)
- spent(idx)                                  spent leaf indices
- directory(idx, pkx, pky, label)             treasury directory
- balances(account, amount)                   released value per account; the pool under "pool"
- meta(k, v)                                  depth, zero_value, root

Field elements and amounts are stored as decimal TEXT (they exceed int64).

The in-memory ledger is authoritative while running; the store receives one
`Changeset` per successful transaction and writes it inside a single
BEGIN IMMEDIATE … COMMIT. A failed ledger transaction never reaches the store.

Pragmas follow the node's SQLite defaults: WAL journal, NORMAL sync.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

from core.errors import DatabaseError, DeserializationError

from .events import LEAVES_DDL, NewLeaf, SQLiteEventLog, insert_leaf_row
from .leaf import Point, TreasuryRecord

log = logging.getLogger("treasury.store")

DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
    "foreign_keys": "OFF",
}


def _apply_pragmas(conn: sqlite3.Connection, pragmas: Optional[dict] = None) -> None:
    p = dict(DEFAULT_PRAGMAS)
    if pragmas:
        p.update(pragmas)
    cur = conn.cursor()
    cur.execute("PRAGMA journal_mode=%s" % p["journal_mode"])
    cur.execute("PRAGMA synchronous=%s" % p["synchronous"])
    cur.execute("PRAGMA temp_store=%s" % p["temp_store"])
    cur.execute("PRAGMA foreign_keys=%s" % p["foreign_keys"])
    cur.close()


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute(LEAVES_DDL)
    conn.execute("CREATE TABLE IF NOT EXISTS spent (idx INTEGER PRIMARY KEY)")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS directory (
            idx   INTEGER PRIMARY KEY,
            pkx   TEXT NOT NULL,
            pky   TEXT NOT NULL,
            label TEXT NOT NULL
        )
        """
    )
    conn.execute(
        "CREATE TABLE IF NOT EXISTS balances (account TEXT PRIMARY KEY, amount TEXT NOT NULL)"
    )
    conn.execute("CREATE TABLE IF NOT EXISTS meta (k TEXT PRIMARY KEY, v TEXT NOT NULL)")


@dataclass
class Changeset:
    """Everything one ledger transaction wrote, in application order."""

    leaves: List[NewLeaf] = field(default_factory=list)
    spent: List[int] = field(default_factory=list)
    directory: List[Tuple[int, TreasuryRecord]] = field(default_factory=list)
    balances: Dict[str, int] = field(default_factory=dict)  # absolute values
    meta: Dict[str, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.leaves or self.spent or self.directory or self.balances or self.meta)


class LedgerStore:
    def __init__(self, conn: sqlite3.Connection, path: str = ":memory:") -> None:
        self._conn = conn
        self.path = path
        self.events = SQLiteEventLog(conn)

    @classmethod
    def open(
        cls, path: Union[str, "os.PathLike[str]"], *, pragmas: Optional[dict] = None
    ) -> "LedgerStore":
        path_str = os.fspath(path)
        try:
            conn = sqlite3.connect(
                path_str,
                isolation_level=None,  # autocommit; commits BEGIN explicitly
                check_same_thread=False,  # the ledger lock serializes access
            )
            if path_str != ":memory:":
                _apply_pragmas(conn, pragmas)
            _migrate(conn)
        except sqlite3.Error as e:
            raise DatabaseError(
                "cannot open ledger database", retryable=False, path=path_str
            ).with_cause(e)
        log.debug("opened ledger store at %s", path_str)
        return cls(conn, path_str)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "LedgerStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------- write --------

    def commit(self, cs: Changeset) -> None:
        if not cs:
            return
        conn = self._conn
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for ev in cs.leaves:
                    insert_leaf_row(conn, ev)
                conn.executemany("INSERT INTO spent(idx) VALUES(?)", [(i,) for i in cs.spent])
                conn.executemany(
                    "INSERT INTO directory(idx, pkx, pky, label) VALUES(?, ?, ?, ?)",
                    [
                        (i, str(r.public_key.x), str(r.public_key.y), r.label)
                        for i, r in cs.directory
                    ],
                )
                conn.executemany(
                    "INSERT INTO balances(account, amount) VALUES(?, ?) "
                    "ON CONFLICT(account) DO UPDATE SET amount=excluded.amount",
                    [(a, str(v)) for a, v in cs.balances.items()],
                )
                conn.executemany(
                    "INSERT INTO meta(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
                    list(cs.meta.items()),
                )
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise DatabaseError("ledger commit failed", leaves=len(cs.leaves)).with_cause(e)

    # -------- read --------

    def leaves(self) -> Iterator[NewLeaf]:
        return iter(self.events)

    def spent(self) -> List[int]:
        return [int(r[0]) for r in self._conn.execute("SELECT idx FROM spent ORDER BY idx")]

    def directory(self) -> List[TreasuryRecord]:
        out: List[TreasuryRecord] = []
        rows = self._conn.execute("SELECT idx, pkx, pky, label FROM directory ORDER BY idx")
        for expected, (idx, pkx, pky, label) in enumerate(rows):
            if idx != expected:
                raise DeserializationError("directory has a gap", index=idx)
            out.append(TreasuryRecord(Point(int(pkx), int(pky)), str(label)))
        return out

    def balances(self) -> Dict[str, int]:
        return {
            str(a): int(v) for a, v in self._conn.execute("SELECT account, amount FROM balances")
        }

    def meta(self) -> Dict[str, str]:
        return {str(k): str(v) for k, v in self._conn.execute("SELECT k, v FROM meta")}


__all__ = ["Changeset", "LedgerStore", "DEFAULT_PRAGMAS"]
