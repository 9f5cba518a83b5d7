"""
Shared pytest fixtures for the treasury test-suite.

- `hasher`            Poseidon (placeholder parameter sets registered at import)
- `alpha`, `treasury_pub`   a fixed treasury key pair
- `make_treasury`     factory for small in-memory ledgers with the clear proof system
- `deposit_owned`     deposit helper producing leaves owned by `alpha`
- `tmp_db`            a per-test sqlite path

Pure-Python Poseidon and Baby Jubjub are slow; keep trees shallow (depth 3-4)
and batches small.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from treasury.capabilities import PoseidonHasher
from treasury.leaf import Point, make_deposit_material
from treasury.ledger import Treasury
from treasury.proving import ClearProofSystem
from treasury.terminator import BatchTerminator, DuplicateIndexTerminator
from zk.curves import babyjub

ALPHA = 0x2A5F_0C11_7E3D_9B41_66A2_D8F1_03C7_5E9A_1B2C_3D4E_5F60_7182_93A4_B5C6_D7E8_F901
OTHER_ALPHA = 0x1C0F_FEE5


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: long-running (deep trees, many hashes)")


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep tests away from the user's data dir and config.
    for k in list(os.environ):
        if k.startswith("UMBRA_") and not k.startswith("UMBRA_IT_"):
            monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("UMBRA_DATA_DIR", str(tmp_path / "umbra-data"))


@pytest.fixture(scope="session")
def hasher() -> PoseidonHasher:
    return PoseidonHasher()


@pytest.fixture(scope="session")
def alpha() -> int:
    return ALPHA % babyjub.SUBGROUP_ORDER


@pytest.fixture(scope="session")
def treasury_pub(alpha: int) -> Point:
    return Point(*babyjub.public_key(alpha))


@pytest.fixture(scope="session")
def other_alpha() -> int:
    return OTHER_ALPHA


@pytest.fixture(scope="session")
def other_pub(other_alpha: int) -> Point:
    return Point(*babyjub.public_key(other_alpha))


@pytest.fixture
def tmp_db(tmp_path: Path) -> Path:
    return tmp_path / "ledger.sqlite3"


@pytest.fixture
def make_treasury(hasher: PoseidonHasher) -> Callable[..., Treasury]:
    def _make(
        depth: int = 4,
        max_batch: int = 5,
        terminator: Optional[BatchTerminator] = None,
    ) -> Treasury:
        term = terminator or DuplicateIndexTerminator()
        clear = ClearProofSystem(depth, hasher, term)
        return Treasury(
            depth=depth, hasher=hasher, verifier=clear, max_batch=max_batch, terminator=term
        )

    return _make


@pytest.fixture
def deposit_owned(treasury_pub: Point) -> Callable[[Treasury, List[int]], List[int]]:
    """Deposit each value under fresh material for `treasury_pub`; returns leaf indices."""

    def _deposit(t: Treasury, values: List[int], pub: Optional[Point] = None) -> List[int]:
        out = []
        for k, v in enumerate(values):
            P, Q = make_deposit_material(pub or treasury_pub, 1000 + t.next_index * 7 + k)
            out.append(t.deposit(P, Q, v))
        return out

    return _deposit
