"""
Umbra configuration loader.

Goals
-----
- Zero external deps (stdlib only).
- Layered config with clear precedence:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (UMBRA_*)
    3) Config file (TOML or JSON)
    4) Built-in defaults (lowest)
- Safe, typed dataclasses with validation.
- Sensible OS-specific defaults (XDG/APPDATA/~/Library).

This module configures:
  - accumulator shape (tree depth, empty-leaf constant)
  - withdrawal batching (max batch size, padding/termination policy)
  - data paths (ledger database)
  - proving backend (clear dev backend or snarkjs artifacts)
  - Poseidon parameter files matching the circuit
"""

from __future__ import annotations

import json
import os
import platform
import sys
import tomllib
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

# ------------------------------
# Defaults & helpers
# ------------------------------

# BN254 scalar field order (the SNARK field).
SNARK_FIELD = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# keccak256("Maci") mod SNARK_FIELD: a public constant nobody knows a Poseidon
# preimage for, used for every empty accumulator slot.
NOTHING_UP_MY_SLEEVE = (
    8370432830353022751713833565135785980866757267633941821328460903436894336785
)

DEFAULT_TREE_DEPTH = 32
MAX_TREE_DEPTH = 64
DEFAULT_MAX_BATCH = 5
DEFAULT_TERMINATOR = "duplicate-index"
TERMINATORS = ("duplicate-index", "zero-value")
PROVER_BACKENDS = ("clear", "snarkjs")

DEFAULT_DB_FILENAME = "treasury.db"


def _expand(p: str | Path) -> Path:
    return Path(p).expanduser().resolve()


def _xdg_data_home() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return _expand(xdg)
    return _expand("~/.local/share")


def _os_default_data_root() -> Path:
    system = platform.system()
    if system == "Darwin":
        return _expand("~/Library/Application Support")
    if system == "Windows":
        appdata = os.environ.get("APPDATA") or os.environ.get("LOCALAPPDATA")
        if appdata:
            return _expand(appdata)
        return _expand("~\\AppData\\Roaming")
    return _xdg_data_home()


def _default_data_dir() -> Path:
    override = os.environ.get("UMBRA_DATA_DIR")
    if override:
        return _expand(override)
    return _os_default_data_root() / "umbra"


def _env_int(name: str, default: int) -> int:
    v = os.environ.get(name)
    if v is None or v == "":
        return default
    try:
        return int(v, 0)
    except Exception as e:
        raise ConfigError(f"{name} must be int, got {v!r}", env=name) from e


def _env_float(name: str, default: float) -> float:
    v = os.environ.get(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except Exception as e:
        raise ConfigError(f"{name} must be a number, got {v!r}", env=name) from e


def _opt_path(v: Any) -> Optional[Path]:
    if v is None or v == "":
        return None
    return _expand(v)


# ------------------------------
# Typed configuration model
# ------------------------------


@dataclass
class TreeConfig:
    depth: int = DEFAULT_TREE_DEPTH
    zero_value: int = NOTHING_UP_MY_SLEEVE

    def validate(self) -> None:
        if not (1 <= self.depth <= MAX_TREE_DEPTH):
            raise ConfigError(
                f"tree depth must be in [1, {MAX_TREE_DEPTH}]", depth=self.depth
            )
        if not (0 <= self.zero_value < SNARK_FIELD):
            raise ConfigError("zero_value must be a field element")


@dataclass
class BatchConfig:
    max_batch: int = DEFAULT_MAX_BATCH
    terminator: str = DEFAULT_TERMINATOR

    def validate(self) -> None:
        if self.max_batch < 1:
            raise ConfigError("max_batch must be >= 1", max_batch=self.max_batch)
        if self.terminator not in TERMINATORS:
            raise ConfigError(
                f"unknown terminator {self.terminator!r}",
                supported=list(TERMINATORS),
            )


@dataclass
class PathsConfig:
    data_dir: Path
    db_path: Path

    @staticmethod
    def defaults() -> "PathsConfig":
        root = _default_data_dir()
        return PathsConfig(data_dir=root, db_path=root / DEFAULT_DB_FILENAME)


@dataclass
class ProverConfig:
    backend: str = "clear"  # "clear" (development, not zero-knowledge) | "snarkjs" (production)
    wasm: Optional[Path] = None
    zkey: Optional[Path] = None
    vkey: Optional[Path] = None
    snarkjs_bin: str = "snarkjs"
    timeout: float = 600.0

    def validate(self) -> None:
        if self.backend not in PROVER_BACKENDS:
            raise ConfigError(
                f"unknown prover backend {self.backend!r}",
                supported=list(PROVER_BACKENDS),
            )
        if self.backend == "snarkjs":
            missing = [n for n in ("wasm", "zkey", "vkey") if getattr(self, n) is None]
            if missing:
                raise ConfigError(
                    "snarkjs backend requires circuit artifacts", missing=missing
                )
        if self.timeout <= 0:
            raise ConfigError("prover timeout must be positive", timeout=self.timeout)


@dataclass
class HashConfig:
    # JSON parameter files (see zk.verifiers.poseidon.load_params_json). When
    # unset, the built-in placeholder parameters are used.
    poseidon_t3: Optional[Path] = None
    poseidon_t6: Optional[Path] = None


@dataclass
class Config:
    tree: TreeConfig
    batch: BatchConfig
    paths: PathsConfig
    prover: ProverConfig
    hash: HashConfig

    def ensure_dirs(self) -> None:
        self.paths.data_dir.mkdir(parents=True, exist_ok=True)
        self.paths.db_path.parent.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        def _normalize(obj: Any) -> Any:
            if isinstance(obj, Path):
                return str(obj)
            if isinstance(obj, list):
                return [_normalize(i) for i in obj]
            if isinstance(obj, dict):
                return {k: _normalize(v) for k, v in obj.items()}
            return obj

        return _normalize(asdict(self))


# ------------------------------
# File loader (TOML / JSON)
# ------------------------------


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("config file not found", path=str(path))
    suffix = path.suffix.lower()
    with path.open("rb") as f:
        try:
            if suffix in {".toml", ".tml"}:
                return tomllib.load(f)
            if suffix in {".json"}:
                return json.load(f)
        except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
            raise ConfigError("config file is not parseable", path=str(path)) from e
    raise ConfigError(
        f"unsupported config format: {suffix}. Use .toml or .json", path=str(path)
    )


def _merge_dict(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow + nested dict merge: values in b override a."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


# ------------------------------
# Main loader
# ------------------------------


def load(config_file: Optional[str | Path] = None, **overrides: Any) -> Config:
    """
    Load the treasury configuration.

    Precedence: overrides > env > file > defaults.

    Parameters
    ----------
    config_file : str | Path | None
        Optional path to a TOML or JSON file with keys:
          tree:   { depth, zero_value }
          batch:  { max_batch, terminator }
          paths:  { data_dir, db_path }
          prover: { backend, wasm, zkey, vkey, snarkjs_bin, timeout }
          hash:   { poseidon_t3, poseidon_t6 }

    overrides : Any
        Keyword overrides, e.g. load(tree={"depth": 4}, batch={"max_batch": 2})
    """
    paths = PathsConfig.defaults()
    base: Dict[str, Any] = {
        "tree": asdict(TreeConfig()),
        "batch": asdict(BatchConfig()),
        "paths": {"data_dir": str(paths.data_dir), "db_path": None},
        "prover": {
            "backend": "clear",
            "wasm": None,
            "zkey": None,
            "vkey": None,
            "snarkjs_bin": "snarkjs",
            "timeout": 600.0,
        },
        "hash": {"poseidon_t3": None, "poseidon_t6": None},
    }

    # File
    if config_file:
        base = _merge_dict(base, _load_file(_expand(config_file)))

    # Env
    if "UMBRA_TREE_DEPTH" in os.environ:
        base["tree"]["depth"] = _env_int("UMBRA_TREE_DEPTH", DEFAULT_TREE_DEPTH)
    if "UMBRA_ZERO_VALUE" in os.environ:
        base["tree"]["zero_value"] = _env_int("UMBRA_ZERO_VALUE", NOTHING_UP_MY_SLEEVE)
    if "UMBRA_MAX_BATCH" in os.environ:
        base["batch"]["max_batch"] = _env_int("UMBRA_MAX_BATCH", DEFAULT_MAX_BATCH)
    if "UMBRA_TERMINATOR" in os.environ:
        base["batch"]["terminator"] = os.environ["UMBRA_TERMINATOR"].strip().lower()
    if "UMBRA_DATA_DIR" in os.environ:
        base["paths"]["data_dir"] = os.environ["UMBRA_DATA_DIR"]
    if "UMBRA_DB_PATH" in os.environ:
        base["paths"]["db_path"] = os.environ["UMBRA_DB_PATH"]
    if "UMBRA_PROVER" in os.environ:
        base["prover"]["backend"] = os.environ["UMBRA_PROVER"].strip().lower()
    for key in ("wasm", "zkey", "vkey"):
        env = f"UMBRA_CIRCUIT_{key.upper()}"
        if env in os.environ:
            base["prover"][key] = os.environ[env]
    if "UMBRA_SNARKJS_BIN" in os.environ:
        base["prover"]["snarkjs_bin"] = os.environ["UMBRA_SNARKJS_BIN"]
    if "UMBRA_PROVER_TIMEOUT" in os.environ:
        base["prover"]["timeout"] = _env_float("UMBRA_PROVER_TIMEOUT", 600.0)
    if "UMBRA_POSEIDON_T3" in os.environ:
        base["hash"]["poseidon_t3"] = os.environ["UMBRA_POSEIDON_T3"]
    if "UMBRA_POSEIDON_T6" in os.environ:
        base["hash"]["poseidon_t6"] = os.environ["UMBRA_POSEIDON_T6"]

    # Overrides (highest)
    if overrides:
        base = _merge_dict(base, overrides)

    data_dir = _expand(base["paths"]["data_dir"])
    db_path = _opt_path(base["paths"].get("db_path")) or data_dir / DEFAULT_DB_FILENAME

    try:
        cfg = Config(
            tree=TreeConfig(
                depth=int(base["tree"]["depth"]),
                zero_value=int(str(base["tree"]["zero_value"]), 0),
            ),
            batch=BatchConfig(
                max_batch=int(base["batch"]["max_batch"]),
                terminator=str(base["batch"]["terminator"]),
            ),
            paths=PathsConfig(data_dir=data_dir, db_path=db_path),
            prover=ProverConfig(
                backend=str(base["prover"]["backend"]),
                wasm=_opt_path(base["prover"].get("wasm")),
                zkey=_opt_path(base["prover"].get("zkey")),
                vkey=_opt_path(base["prover"].get("vkey")),
                snarkjs_bin=str(base["prover"].get("snarkjs_bin") or "snarkjs"),
                timeout=float(base["prover"].get("timeout") or 600.0),
            ),
            hash=HashConfig(
                poseidon_t3=_opt_path(base["hash"].get("poseidon_t3")),
                poseidon_t6=_opt_path(base["hash"].get("poseidon_t6")),
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"malformed configuration: {e}") from e

    _validate_config(cfg)
    return cfg


def _validate_config(cfg: Config) -> None:
    cfg.tree.validate()
    cfg.batch.validate()
    cfg.prover.validate()
    for name in ("poseidon_t3", "poseidon_t6"):
        p = getattr(cfg.hash, name)
        if p is not None and not p.exists():
            raise ConfigError("poseidon parameter file not found", param=name, path=str(p))


# ------------------------------
# CLI helper
# ------------------------------


def main(argv: List[str] | None = None) -> int:
    """
    CLI usage:

        python -m core.config                      # load defaults/env; print JSON
        python -m core.config path/to/config.toml  # load file; print JSON
    """
    argv = list(argv or sys.argv[1:])
    path = argv[0] if argv else None
    try:
        cfg = load(path)
        print(json.dumps(cfg.to_dict(), indent=2, sort_keys=True))
        return 0
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
