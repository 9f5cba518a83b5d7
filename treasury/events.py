"""
NewLeaf event log.

Every leaf written to the accumulator (deposit or withdrawal change) emits a
`NewLeaf` carrying the full record. The log is the only history the
off-ledger reconstructor reads, and it reads it front to back exactly once.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Protocol

from core.errors import DeserializationError

from .leaf import Leaf, Point

LEAF_KINDS = ("deposit", "change")


@dataclass(frozen=True)
class NewLeaf:
    index: int
    leaf: Leaf
    kind: str = "deposit"

    def __post_init__(self) -> None:
        if self.kind not in LEAF_KINDS:
            raise ValueError(f"unknown leaf kind {self.kind!r}")

    def to_json(self) -> dict:
        return {"index": self.index, "kind": self.kind, "leaf": self.leaf.to_json()}

    @classmethod
    def from_json(cls, obj: dict) -> "NewLeaf":
        try:
            return cls(index=int(obj["index"]), leaf=Leaf.from_json(obj["leaf"]), kind=obj.get("kind", "deposit"))
        except (KeyError, TypeError, ValueError) as e:
            raise DeserializationError(f"malformed NewLeaf event: {e}") from e


class EventLog(Protocol):
    def append(self, event: NewLeaf) -> None: ...

    def extend(self, events: Iterable[NewLeaf]) -> None: ...

    def __iter__(self) -> Iterator[NewLeaf]: ...

    def __len__(self) -> int: ...


def _check_next(expected: int, event: NewLeaf) -> None:
    if event.index != expected:
        raise ValueError(f"event index {event.index} out of order (expected {expected})")


class MemoryEventLog:
    def __init__(self, events: Iterable[NewLeaf] = ()) -> None:
        self._events: List[NewLeaf] = []
        self.extend(events)

    def append(self, event: NewLeaf) -> None:
        _check_next(len(self._events), event)
        self._events.append(event)

    def extend(self, events: Iterable[NewLeaf]) -> None:
        for ev in events:
            self.append(ev)

    def __iter__(self) -> Iterator[NewLeaf]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)


# ---------------------------------------------------------------------------
# SQLite-backed log (table `leaves`, shared with treasury.store)
# ---------------------------------------------------------------------------

LEAVES_DDL = """
CREATE TABLE IF NOT EXISTS leaves (
    idx   INTEGER PRIMARY KEY,
    kind  TEXT NOT NULL,
    px    TEXT NOT NULL,
    py    TEXT NOT NULL,
    qx    TEXT NOT NULL,
    qy    TEXT NOT NULL,
    value TEXT NOT NULL
)
"""


def insert_leaf_row(conn: sqlite3.Connection, event: NewLeaf) -> None:
    lf = event.leaf
    conn.execute(
        "INSERT INTO leaves(idx, kind, px, py, qx, qy, value) VALUES(?, ?, ?, ?, ?, ?, ?)",
        (
            event.index,
            event.kind,
            str(lf.P.x),
            str(lf.P.y),
            str(lf.Q.x),
            str(lf.Q.y),
            str(lf.value),
        ),
    )


def _row_to_event(row: tuple) -> NewLeaf:
    idx, kind, px, py, qx, qy, value = row
    try:
        leaf = Leaf(Point(int(px), int(py)), Point(int(qx), int(qy)), int(value))
    except (TypeError, ValueError) as e:
        raise DeserializationError("corrupt leaf row", index=idx) from e
    return NewLeaf(index=int(idx), leaf=leaf, kind=str(kind))


class SQLiteEventLog:
    """
    Event log over the `leaves` table. `append`/`extend` run in their own
    transaction; the ledger store writes the same table inside its commit.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        conn.execute(LEAVES_DDL)

    def append(self, event: NewLeaf) -> None:
        self.extend([event])

    def extend(self, events: Iterable[NewLeaf]) -> None:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            expected = len(self)
            for ev in events:
                _check_next(expected, ev)
                insert_leaf_row(self._conn, ev)
                expected += 1
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    def __iter__(self) -> Iterator[NewLeaf]:
        cur = self._conn.execute(
            "SELECT idx, kind, px, py, qx, qy, value FROM leaves ORDER BY idx"
        )
        try:
            for row in cur:
                yield _row_to_event(row)
        finally:
            cur.close()

    def __len__(self) -> int:
        (n,) = self._conn.execute("SELECT COUNT(*) FROM leaves").fetchone()
        return int(n)


__all__ = [
    "LEAF_KINDS",
    "NewLeaf",
    "EventLog",
    "MemoryEventLog",
    "SQLiteEventLog",
    "LEAVES_DDL",
    "insert_leaf_row",
]
