from __future__ import annotations

import sqlite3

import pytest

from core.errors import DatabaseError, DeserializationError
from treasury.events import MemoryEventLog, NewLeaf, SQLiteEventLog
from treasury.leaf import Leaf, Point, TreasuryRecord
from treasury.store import Changeset, LedgerStore

LEAF = Leaf(Point(1, 2), Point(3, 4), 5)


# -------------------------
# NewLeaf & event logs
# -------------------------


def test_newleaf_json_roundtrip():
    ev = NewLeaf(3, LEAF, "change")
    assert NewLeaf.from_json(ev.to_json()) == ev
    with pytest.raises(DeserializationError):
        NewLeaf.from_json({"index": 0, "leaf": {"P": ["1"], "Q": ["3", "4"], "value": "5"}})


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        NewLeaf(0, LEAF, "airdrop")


@pytest.mark.parametrize("make_log", [MemoryEventLog, lambda: SQLiteEventLog(sqlite3.connect(":memory:", isolation_level=None))])
def test_logs_enforce_sequential_indices(make_log):
    log = make_log()
    log.extend([NewLeaf(0, LEAF), NewLeaf(1, LEAF)])
    with pytest.raises(ValueError):
        log.append(NewLeaf(3, LEAF))
    assert len(log) == 2
    assert [ev.index for ev in log] == [0, 1]


def test_sqlite_log_extend_is_all_or_nothing():
    log = SQLiteEventLog(sqlite3.connect(":memory:", isolation_level=None))
    with pytest.raises(ValueError):
        log.extend([NewLeaf(0, LEAF), NewLeaf(2, LEAF)])
    assert len(log) == 0


# -------------------------
# LedgerStore
# -------------------------


def test_changeset_commit_and_read_back(tmp_db):
    rec = TreasuryRecord(Point(7, 8), "ops")
    with LedgerStore.open(tmp_db) as store:
        assert not Changeset()
        store.commit(
            Changeset(
                leaves=[NewLeaf(0, LEAF), NewLeaf(1, LEAF, "change")],
                spent=[0],
                directory=[(0, rec)],
                balances={"pool": 2**200, "manager": 3},
                meta={"root": "42"},
            )
        )
        store.commit(Changeset(balances={"manager": 9}))
        assert [ev.kind for ev in store.leaves()] == ["deposit", "change"]
        assert store.spent() == [0]
        assert store.directory() == [rec]
        assert store.balances() == {"pool": 2**200, "manager": 9}
        assert store.meta() == {"root": "42"}


def test_failed_commit_rolls_back_everything(tmp_db):
    with LedgerStore.open(tmp_db) as store:
        store.commit(Changeset(spent=[1]))
        with pytest.raises(DatabaseError) as ei:
            # second leaf collides with the first inside the same transaction
            store.commit(Changeset(leaves=[NewLeaf(0, LEAF), NewLeaf(0, LEAF)], spent=[2]))
        assert list(store.leaves()) == []
        assert store.spent() == [1]
        assert isinstance(ei.value.cause, sqlite3.IntegrityError)


def test_unopenable_path(tmp_path):
    with pytest.raises(DatabaseError) as ei:
        LedgerStore.open(tmp_path / "missing-dir" / "x.db")
    assert not ei.value.retryable
