"""
WithdrawalProtocol in isolation: a bare accumulator + spent-set and a stub
verifier, so each check can be driven independently of proof generation.
"""

from __future__ import annotations

import pytest

from treasury.accumulator import IncrementalTree
from treasury.errors import (AlreadySpent, IndexNotFilled, InsufficientValue, InvalidProof,
                             MalformedSignals, StaleRoot)
from treasury.leaf import Leaf, Point
from treasury.protocol import PublicSignals, WithdrawalProtocol, WithdrawRequest
from treasury.spent import SpentSet
from treasury.tests import AcceptAll, RejectAll
from treasury.terminator import ZeroValueTerminator

N = 3
CHANGE_P, CHANGE_Q = Point(1, 2), Point(3, 4)


@pytest.fixture
def tree(hasher):
    t = IncrementalTree(3, hasher)
    for value in (50, 70, 30):
        t.insert(Leaf(Point(5, 6), Point(7, 8), value).hash(hasher))
    return t


def req(root, values, indices, amount, proof="p"):
    return WithdrawRequest(
        amount=amount,
        change_P=CHANGE_P,
        change_Q=CHANGE_Q,
        proof=proof,
        public_signals=[root, *values, *indices],
    )


# -------------------------
# Public signals
# -------------------------


def test_signals_layout_roundtrip():
    sig = PublicSignals.from_list(["9", 50, 70, 50, 0, 1, 0], 3)
    assert sig.root == 9
    assert sig.values == (50, 70, 50)
    assert sig.indices == (0, 1, 0)
    assert sig.to_list() == [9, 50, 70, 50, 0, 1, 0]


@pytest.mark.parametrize("seq", [[1, 2, 3], [1, 2, 3, 4, 5, 6, 7, 8], [1, "x", 3, 4, 5, 6, 7]])
def test_malformed_signal_lists(seq):
    with pytest.raises(MalformedSignals):
        PublicSignals.from_list(seq, 3)


def test_signals_must_be_field_elements():
    with pytest.raises(MalformedSignals):
        PublicSignals(root=-1, values=(1,), indices=(0,))


def test_signal_batch_size_must_match_protocol(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    sig = PublicSignals(root=tree.root, values=(1, 1), indices=(0, 1))
    with pytest.raises(MalformedSignals):
        proto.signals(sig)


# -------------------------
# Check order
# -------------------------


def test_stale_root_is_checked_before_the_proof(tree):
    v = RejectAll()
    proto = WithdrawalProtocol(v, max_batch=N)
    with pytest.raises(StaleRoot) as ei:
        proto.validate(tree, SpentSet(), req(tree.root + 1, [50, 70, 50], [0, 1, 0], 10))
    assert ei.value.retryable
    assert ei.value.current == tree.root
    assert v.calls == 0


def test_invalid_proof(tree):
    proto = WithdrawalProtocol(RejectAll(), max_batch=N)
    with pytest.raises(InvalidProof):
        proto.validate(tree, SpentSet(), req(tree.root, [50, 70, 50], [0, 1, 0], 10))


def test_unfilled_index(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    with pytest.raises(IndexNotFilled):
        proto.validate(tree, SpentSet(), req(tree.root, [50, 70, 50], [0, 3, 0], 10))


def test_spent_index(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    with pytest.raises(AlreadySpent) as ei:
        proto.validate(tree, SpentSet([1]), req(tree.root, [50, 70, 50], [0, 1, 0], 10))
    assert ei.value.index == 1


def test_repeat_within_batch_is_a_double_spend(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=4)
    with pytest.raises(AlreadySpent):
        proto.validate(tree, SpentSet(), req(tree.root, [50, 70, 70, 50], [0, 1, 1, 0], 10))


def test_insufficient_value(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    with pytest.raises(InsufficientValue) as ei:
        proto.validate(tree, SpentSet(), req(tree.root, [50, 70, 50], [0, 1, 0], 200))
    assert ei.value.available == 120


def test_negative_amount_rejected(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    with pytest.raises(ValueError):
        proto.validate(tree, SpentSet(), req(tree.root, [50, 70, 50], [0, 1, 0], -1))


# -------------------------
# Walk & execute
# -------------------------


def test_walk_stops_at_terminator(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    consumed, total = proto.validate(tree, SpentSet(), req(tree.root, [50, 70, 50], [0, 1, 0], 0))
    assert consumed == [0, 1]
    assert total == 120


def test_zero_value_terminator_walk(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N, terminator=ZeroValueTerminator())
    consumed, total = proto.validate(tree, SpentSet(), req(tree.root, [30, 0, 0], [2, 0, 0], 5))
    assert consumed == [2]
    assert total == 30


def test_execute_marks_spent_and_appends_change(tree, hasher):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    spent = SpentSet()
    receipt = proto.execute(tree, spent, req(tree.root, [50, 70, 50], [0, 1, 0], 100))
    assert receipt.consumed == (0, 1)
    assert receipt.total_value == 120
    assert receipt.amount == 100
    assert receipt.change_index == 3
    assert receipt.change_leaf == Leaf(CHANGE_P, CHANGE_Q, 20)
    assert receipt.new_root == tree.root
    assert tree.leaf(3) == receipt.change_leaf.hash(hasher)
    assert list(spent) == [0, 1]


def test_exact_withdrawal_yields_zero_change(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    receipt = proto.execute(tree, SpentSet(), req(tree.root, [30, 30, 30], [2, 2, 2], 30))
    assert receipt.change_leaf.value == 0


def test_failed_validation_mutates_nothing(tree):
    proto = WithdrawalProtocol(AcceptAll(), max_batch=N)
    spent = SpentSet()
    root, n = tree.root, tree.next_index
    with pytest.raises(InsufficientValue):
        proto.execute(tree, spent, req(tree.root, [50, 70, 50], [0, 1, 0], 500))
    assert tree.root == root and tree.next_index == n
    assert len(spent) == 0


def test_max_batch_must_be_positive():
    with pytest.raises(ValueError):
        WithdrawalProtocol(AcceptAll(), max_batch=0)
