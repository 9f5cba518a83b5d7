"""
Umbra — core.errors
-------------------

A small, consistent error system shared by the ledger, the off-chain
reconstructor and the tooling around them.

Design goals
------------
- One root `UmbraError` with machine-friendly `code` and optional `data`.
- Concrete subclasses for the cross-cutting domains (config, db, codec, state).
- Domain packages (e.g. `treasury.errors`) subclass these with their own codes.
- Safe JSON representation (`to_dict`) suitable for logs and CLI output.
- Clear separation of *retryable* vs *permanent* failures.

This module uses only stdlib to avoid import-time dependency cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Optional

# ---------------------------------------------------------------------------
# Error codes & classes
# ---------------------------------------------------------------------------


class Severity(IntEnum):
    """Optional severity hint for operators."""

    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


class CoreErrorCode(str, Enum):
    # Generic
    TIMEOUT = "CORE/TIMEOUT"

    # Config / environment
    CONFIG = "CORE/CONFIG"

    # Encoding / decoding
    DESERIALIZATION = "CORE/DESERIALIZATION"

    # DB / storage
    DB = "CORE/DB"

    # Ledger state
    STATE_INVARIANT = "CORE/STATE_INVARIANT"

    # External proving backend
    PROVER = "CORE/PROVER"


@dataclass(eq=False)
class UmbraError(Exception):
    """
    Root error for Umbra components.

    Attributes
    ----------
    code: str
        Machine-stable error code (see CoreErrorCode / TreasuryErrorCode).
    message: str
        Human hint suitable for logs; never include private scalars.
    data: dict
        Optional machine data (indices, roots, amounts). Must be JSON-serializable.
    severity: Severity
        Optional severity hint (default ERROR).
    retryable: bool
        Whether the operation may succeed on retry (possibly after refreshing
        inputs, e.g. regenerating a proof against the current root).
    cause: Optional[BaseException]
        Wrapped original exception; not included in equality comparison.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    severity: Severity = Severity.ERROR
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        code = self.code.value if isinstance(self.code, Enum) else self.code
        super().__init__(f"{code}: {self.message}")

    # ---------------- Public API ----------------

    def with_context(self, **ctx: Any) -> "UmbraError":
        """Return a copy of this error with extra context merged into `data`."""
        d = dict(self.data)
        for k, v in ctx.items():
            d[k] = _coerce_json(v)
        # Bypass subclass __init__ signatures; copy the instance state instead.
        err = type(self).__new__(type(self))
        err.__dict__.update(self.__dict__)
        err.args = self.args
        err.data = d
        return err

    def with_cause(self, exc: BaseException) -> "UmbraError":
        """Attach the causal exception (mutates and returns self for chaining)."""
        self.cause = exc
        self.__cause__ = exc
        return self

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """JSON-safe shape suitable for logs and CLI output."""
        out = {
            "code": str(self.code.value if isinstance(self.code, Enum) else self.code),
            "message": self.message,
            "data": _coerce_json(self.data),
            "severity": int(self.severity),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:  # pragma: no cover - human formatting
        code = self.code.value if isinstance(self.code, Enum) else self.code
        parts = [f"{code}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


class ConfigError(UmbraError):
    def __init__(self, message="invalid configuration", **data: Any) -> None:
        super().__init__(
            code=CoreErrorCode.CONFIG,
            message=message,
            data=_jsonmap(data),
            retryable=False,
        )


class DeserializationError(UmbraError):
    def __init__(self, message="deserialization failed", **data: Any) -> None:
        super().__init__(
            code=CoreErrorCode.DESERIALIZATION, message=message, data=_jsonmap(data)
        )


class DatabaseError(UmbraError):
    def __init__(
        self, message="database error", retryable: bool = True, **data: Any
    ) -> None:
        super().__init__(
            code=CoreErrorCode.DB,
            message=message,
            data=_jsonmap(data),
            retryable=retryable,
        )


class StateInvariant(UmbraError):
    def __init__(self, message="state invariant broken", **data: Any) -> None:
        super().__init__(
            code=CoreErrorCode.STATE_INVARIANT,
            message=message,
            data=_jsonmap(data),
            severity=Severity.CRITICAL,
            retryable=False,
        )


class ProverError(UmbraError):
    def __init__(
        self, message="proof generation failed", retryable: bool = True, **data: Any
    ) -> None:
        super().__init__(
            code=CoreErrorCode.PROVER,
            message=message,
            data=_jsonmap(data),
            retryable=retryable,
        )


class TimeoutErrorA(UmbraError):
    def __init__(self, message="operation timed out", **data: Any) -> None:
        super().__init__(
            code=CoreErrorCode.TIMEOUT,
            message=message,
            data=_jsonmap(data),
            retryable=True,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    # Keep JSON primitives; stringify the rest; hex-encode bytes.
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (list, tuple)):
        return [_coerce_json(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _coerce_json(x) for k, x in v.items()}
    if isinstance(v, (bytes, bytearray)):
        return v.hex()
    try:
        return str(v)
    except Exception:
        return "<unprintable>"


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "Severity",
    "CoreErrorCode",
    "UmbraError",
    "ConfigError",
    "DeserializationError",
    "DatabaseError",
    "StateInvariant",
    "ProverError",
    "TimeoutErrorA",
]
