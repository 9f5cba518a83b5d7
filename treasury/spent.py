"""Spent-set: leaf indices that have been withdrawn. Once spent, always spent."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Set

from .errors import AlreadySpent


class SpentSet:
    def __init__(self, indices: Optional[Iterable[int]] = None) -> None:
        self._spent: Set[int] = set()
        self._journal: List[int] = []  # marks in order, for transaction rollback
        for i in indices or ():
            self.mark_spent(i)

    def is_spent(self, index: int) -> bool:
        return index in self._spent

    def mark_spent(self, index: int) -> None:
        """Mark `index` spent. A second mark is a replay and raises AlreadySpent."""
        if index < 0:
            raise ValueError("leaf index must be non-negative")
        if index in self._spent:
            raise AlreadySpent(index)
        self._spent.add(index)
        self._journal.append(index)

    def checkpoint(self) -> int:
        return len(self._journal)

    def rollback(self, checkpoint: int) -> None:
        """Undo every mark made since `checkpoint`. Only ledger transactions call this."""
        for index in self._journal[checkpoint:]:
            self._spent.discard(index)
        del self._journal[checkpoint:]

    def __contains__(self, index: object) -> bool:
        return index in self._spent

    def __len__(self) -> int:
        return len(self._spent)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._spent))


__all__ = ["SpentSet"]
