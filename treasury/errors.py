"""
Treasury error taxonomy.

Every ledger-side failure is raised *before* anything is committed (or rolls
the transaction back), so callers can rely on state being untouched when one
of these escapes `Treasury.deposit/withdraw/register`.

Retry guidance is carried in `retryable`:

- StaleRoot, InvalidProof        → regenerate the proof against current state
- InsufficientValue               → adjust the amount or the batch selection
- AlreadySpent, CapacityExceeded  → permanent for this attempt / this instance
- IndexNotFilled, MalformedSignals, BatchTooLarge → caller bugs
- RootMismatch                    → off-ledger history diverged; never swallow
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from core.errors import Severity, UmbraError, _jsonmap


class TreasuryErrorCode(str, Enum):
    CAPACITY_EXCEEDED = "TREASURY/CAPACITY_EXCEEDED"
    INDEX_NOT_FILLED = "TREASURY/INDEX_NOT_FILLED"
    STALE_ROOT = "TREASURY/STALE_ROOT"
    INVALID_PROOF = "TREASURY/INVALID_PROOF"
    ALREADY_SPENT = "TREASURY/ALREADY_SPENT"
    INSUFFICIENT_VALUE = "TREASURY/INSUFFICIENT_VALUE"
    ZERO_VALUE_DEPOSIT = "TREASURY/ZERO_VALUE_DEPOSIT"
    MALFORMED_SIGNALS = "TREASURY/MALFORMED_SIGNALS"
    ROOT_MISMATCH = "TREASURY/ROOT_MISMATCH"
    BATCH_TOO_LARGE = "TREASURY/BATCH_TOO_LARGE"
    INSUFFICIENT_LIQUIDITY = "TREASURY/INSUFFICIENT_LIQUIDITY"


class TreasuryError(UmbraError):
    """Base class for treasury protocol errors."""

    def __init__(
        self,
        code: TreasuryErrorCode,
        message: str,
        *,
        retryable: bool = False,
        severity: Severity = Severity.ERROR,
        cause: Optional[BaseException] = None,
        **data: Any,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            data=_jsonmap(data),
            severity=severity,
            retryable=retryable,
            cause=cause,
        )


class CapacityExceeded(TreasuryError):
    def __init__(self, capacity: int) -> None:
        super().__init__(
            TreasuryErrorCode.CAPACITY_EXCEEDED,
            "accumulator is full",
            capacity=capacity,
        )
        self.capacity = capacity


class IndexNotFilled(TreasuryError):
    def __init__(self, index: int, next_index: int) -> None:
        super().__init__(
            TreasuryErrorCode.INDEX_NOT_FILLED,
            "leaf index has not been written",
            index=index,
            next_index=next_index,
        )
        self.index = index
        self.next_index = next_index


class StaleRoot(TreasuryError):
    def __init__(self, claimed: int, current: int) -> None:
        super().__init__(
            TreasuryErrorCode.STALE_ROOT,
            "claimed root is not the current root",
            retryable=True,
            claimed=str(claimed),
            current=str(current),
        )
        self.claimed = claimed
        self.current = current


class InvalidProof(TreasuryError):
    def __init__(self, message: str = "proof rejected by verifier", **data: Any) -> None:
        super().__init__(
            TreasuryErrorCode.INVALID_PROOF, message, retryable=True, **data
        )


class AlreadySpent(TreasuryError):
    def __init__(self, index: int) -> None:
        super().__init__(
            TreasuryErrorCode.ALREADY_SPENT,
            "leaf already spent",
            index=index,
        )
        self.index = index


class InsufficientValue(TreasuryError):
    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            TreasuryErrorCode.INSUFFICIENT_VALUE,
            "requested amount exceeds batch value",
            retryable=True,
            requested=requested,
            available=available,
        )
        self.requested = requested
        self.available = available


class ZeroValueDeposit(TreasuryError):
    def __init__(self, value: int = 0) -> None:
        super().__init__(
            TreasuryErrorCode.ZERO_VALUE_DEPOSIT,
            "deposit value must be positive",
            value=value,
        )


class MalformedSignals(TreasuryError):
    def __init__(self, message: str = "malformed public signals", **data: Any) -> None:
        super().__init__(TreasuryErrorCode.MALFORMED_SIGNALS, message, **data)


class RootMismatch(TreasuryError):
    def __init__(self, rebuilt: int, expected: int, leaves: int) -> None:
        super().__init__(
            TreasuryErrorCode.ROOT_MISMATCH,
            "reconstructed root differs from ledger root",
            severity=Severity.CRITICAL,
            rebuilt=str(rebuilt),
            expected=str(expected),
            leaves=leaves,
        )
        self.rebuilt = rebuilt
        self.expected = expected


class BatchTooLarge(TreasuryError):
    def __init__(self, selected: int, max_batch: int) -> None:
        super().__init__(
            TreasuryErrorCode.BATCH_TOO_LARGE,
            "more targets selected than the batch size allows",
            selected=selected,
            max_batch=max_batch,
        )


class InsufficientLiquidity(TreasuryError):
    def __init__(self, requested: int, pool: int) -> None:
        super().__init__(
            TreasuryErrorCode.INSUFFICIENT_LIQUIDITY,
            "pool balance cannot cover the release",
            severity=Severity.CRITICAL,
            requested=requested,
            pool=pool,
        )


__all__ = [
    "TreasuryErrorCode",
    "TreasuryError",
    "CapacityExceeded",
    "IndexNotFilled",
    "StaleRoot",
    "InvalidProof",
    "AlreadySpent",
    "InsufficientValue",
    "ZeroValueDeposit",
    "MalformedSignals",
    "RootMismatch",
    "BatchTooLarge",
    "InsufficientLiquidity",
]
