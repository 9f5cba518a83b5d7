from __future__ import annotations

import pytest

from treasury.errors import AlreadySpent
from treasury.spent import SpentSet


def test_mark_and_query():
    s = SpentSet()
    assert not s.is_spent(3)
    s.mark_spent(3)
    assert s.is_spent(3)
    assert 3 in s and len(s) == 1


def test_second_mark_is_a_replay():
    s = SpentSet([1])
    with pytest.raises(AlreadySpent) as ei:
        s.mark_spent(1)
    assert ei.value.index == 1
    assert not ei.value.retryable


def test_negative_index_rejected():
    with pytest.raises(ValueError):
        SpentSet().mark_spent(-1)


def test_rollback_undoes_marks_since_checkpoint():
    s = SpentSet([0, 2])
    cp = s.checkpoint()
    s.mark_spent(5)
    s.mark_spent(1)
    s.rollback(cp)
    assert list(s) == [0, 2]
    assert not s.is_spent(5)
    # rolled-back indices can be spent again
    s.mark_spent(5)
    assert list(s) == [0, 2, 5]
