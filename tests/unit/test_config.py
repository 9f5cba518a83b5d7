from __future__ import annotations

import json
from pathlib import Path

import pytest

from core import config as cconfig
from core.errors import ConfigError
from tests.unit import write_config


def test_defaults(tmp_path: Path):
    cfg = cconfig.load()
    assert cfg.tree.depth == cconfig.DEFAULT_TREE_DEPTH
    assert cfg.tree.zero_value == cconfig.NOTHING_UP_MY_SLEEVE
    assert cfg.batch.max_batch == 5
    assert cfg.batch.terminator == "duplicate-index"
    assert cfg.prover.backend == "clear"
    assert cfg.paths.db_path == cfg.paths.data_dir / cconfig.DEFAULT_DB_FILENAME
    assert cfg.paths.data_dir == (tmp_path / "umbra-data").resolve()


def test_precedence_overrides_env_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    f = write_config(
        tmp_path / "umbra.toml",
        {"tree": {"depth": 10}, "batch": {"max_batch": 3, "terminator": "zero-value"}},
    )
    cfg = cconfig.load(f)
    assert (cfg.tree.depth, cfg.batch.max_batch, cfg.batch.terminator) == (10, 3, "zero-value")

    monkeypatch.setenv("UMBRA_TREE_DEPTH", "12")
    monkeypatch.setenv("UMBRA_TERMINATOR", "Duplicate-Index")
    cfg = cconfig.load(f)
    assert (cfg.tree.depth, cfg.batch.max_batch, cfg.batch.terminator) == (12, 3, "duplicate-index")

    cfg = cconfig.load(f, tree={"depth": 4})
    assert cfg.tree.depth == 4
    assert cfg.tree.zero_value == cconfig.NOTHING_UP_MY_SLEEVE


def test_json_file_and_hex_ints(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    f = write_config(tmp_path / "umbra.json", {"tree": {"zero_value": "0x2a"}})
    assert cconfig.load(f).tree.zero_value == 42
    monkeypatch.setenv("UMBRA_MAX_BATCH", "0x8")
    assert cconfig.load(f).batch.max_batch == 8


def test_db_path_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("UMBRA_DB_PATH", str(tmp_path / "elsewhere" / "l.db"))
    cfg = cconfig.load()
    assert cfg.paths.db_path == (tmp_path / "elsewhere" / "l.db").resolve()
    cfg.ensure_dirs()
    assert cfg.paths.db_path.parent.is_dir()


@pytest.mark.parametrize(
    "overrides",
    [
        {"tree": {"depth": 0}},
        {"tree": {"depth": cconfig.MAX_TREE_DEPTH + 1}},
        {"tree": {"zero_value": cconfig.SNARK_FIELD}},
        {"batch": {"max_batch": 0}},
        {"batch": {"terminator": "sentinel"}},
        {"prover": {"backend": "rapidsnark"}},
        {"prover": {"timeout": -1}},
        {"tree": {"depth": "deep"}},
    ],
)
def test_invalid_values(overrides):
    with pytest.raises(ConfigError):
        cconfig.load(**overrides)


def test_bad_env_int(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("UMBRA_TREE_DEPTH", "twelve")
    with pytest.raises(ConfigError) as ei:
        cconfig.load()
    assert ei.value.data["env"] == "UMBRA_TREE_DEPTH"


def test_snarkjs_backend_needs_artifacts(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("UMBRA_PROVER", "snarkjs")
    monkeypatch.setenv("UMBRA_CIRCUIT_WASM", str(tmp_path / "c.wasm"))
    with pytest.raises(ConfigError) as ei:
        cconfig.load()
    assert ei.value.data["missing"] == ["zkey", "vkey"]

    monkeypatch.setenv("UMBRA_CIRCUIT_ZKEY", str(tmp_path / "c.zkey"))
    monkeypatch.setenv("UMBRA_CIRCUIT_VKEY", str(tmp_path / "vk.json"))
    monkeypatch.setenv("UMBRA_PROVER_TIMEOUT", "30")
    cfg = cconfig.load()
    assert cfg.prover.backend == "snarkjs"
    assert cfg.prover.timeout == 30.0


def test_missing_poseidon_params(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("UMBRA_POSEIDON_T3", str(tmp_path / "absent.json"))
    with pytest.raises(ConfigError, match="poseidon"):
        cconfig.load()


def test_file_errors(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        cconfig.load(tmp_path / "nope.toml")
    bad = tmp_path / "bad.toml"
    bad.write_text("[tree\ndepth = ", encoding="utf-8")
    with pytest.raises(ConfigError, match="parseable"):
        cconfig.load(bad)
    yml = tmp_path / "c.yaml"
    yml.write_text("tree: {}", encoding="utf-8")
    with pytest.raises(ConfigError, match="unsupported"):
        cconfig.load(yml)


def test_main_prints_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    f = write_config(tmp_path / "umbra.toml", {"tree": {"depth": 7}})
    assert cconfig.main([str(f)]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["tree"]["depth"] == 7
    assert isinstance(out["paths"]["db_path"], str)

    assert cconfig.main([str(tmp_path / "missing.toml")]) == 2
    assert "config error" in capsys.readouterr().err
