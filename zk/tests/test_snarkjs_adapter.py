from __future__ import annotations

import asyncio
import os
import stat
import sys
from pathlib import Path

import pytest

from core.errors import DeserializationError, ProverError, TimeoutErrorA
from zk.adapters import snarkjs

# -------------------------
# Normalization
# -------------------------


def test_normalize_numbers_handles_dec_hex_and_bigint_suffix():
    out = snarkjs.normalize_numbers({"a": "12", "b": ["0x10", "7n"], "c": "x", "d": True})
    assert out == {"a": 12, "b": [16, 7], "c": "x", "d": True}


def test_load_json_accepts_text_bytes_and_paths(tmp_path: Path):
    p = tmp_path / "x.json"
    p.write_text('{"k": 1}', encoding="utf-8")
    assert snarkjs.load_json(p) == {"k": 1}
    assert snarkjs.load_json(str(p)) == {"k": 1}
    assert snarkjs.load_json(b'[1, 2]') == [1, 2]
    assert snarkjs.load_json('{"k": 2}') == {"k": 2}


def test_load_json_rejects_garbage():
    with pytest.raises(DeserializationError):
        snarkjs.load_json("{not json")


def test_proof_bundle_and_projective_coordinates():
    bundle = {
        "proof": {
            "pi_a": ["1", "2", "1"],
            "pi_b": [["1", "2"], ["3", "4"], ["1", "0"]],
            "pi_c": ["5", "6", "1"],
            "protocol": "groth16",
        },
        "publicSignals": ["9", "0x0a"],
    }
    proof, publics = snarkjs.normalize_groth16_proof(bundle)
    assert proof["pi_a"] == [1, 2]
    assert proof["pi_b"] == [[1, 2], [3, 4]]
    assert proof["pi_c"] == [5, 6]
    assert publics == [9, 10]


def test_proof_missing_member_rejected():
    with pytest.raises(DeserializationError):
        snarkjs.normalize_groth16_proof({"pi_a": [1, 2], "pi_b": [[1, 2], [3, 4]]})


def test_vk_shape_detection():
    assert not snarkjs.is_groth16_vk({"IC": []})
    with pytest.raises(DeserializationError):
        snarkjs.normalize_groth16_vk({"IC": []})


# -------------------------
# fullprove subprocess driver
# -------------------------

FAKE_SNARKJS = """#!{python}
import json, sys, time
args = sys.argv[1:]
mode = {mode!r}
if mode == "fail":
    sys.stderr.write("constraint doesn't match")
    sys.exit(1)
if mode == "hang":
    time.sleep(30)
_, _, input_p, wasm, zkey, proof_p, public_p = args
inputs = json.load(open(input_p))
json.dump({{"pi_a": ["1", "2", "1"], "pi_b": [["1", "2"], ["3", "4"], ["1", "0"]],
           "pi_c": ["5", "6", "1"], "protocol": "groth16"}}, open(proof_p, "w"))
json.dump([inputs["root"], "7"], open(public_p, "w"))
"""


def _fake_bin(tmp_path: Path, mode: str) -> str:
    p = tmp_path / f"snarkjs-{mode}"
    p.write_text(FAKE_SNARKJS.format(python=sys.executable, mode=mode), encoding="utf-8")
    p.chmod(p.stat().st_mode | stat.S_IXUSR)
    return str(p)


posix_only = pytest.mark.skipif(os.name != "posix", reason="needs a shebang executable")


@posix_only
def test_fullprove_collects_proof_and_publics(tmp_path: Path):
    bin_ = _fake_bin(tmp_path, "ok")
    proof, publics = asyncio.run(
        snarkjs.fullprove({"root": "42"}, "c.wasm", "c.zkey", snarkjs_bin=bin_, timeout=30)
    )
    assert proof["pi_c"] == [5, 6]
    assert publics == [42, 7]


@posix_only
def test_fullprove_nonzero_exit_is_retryable_prover_error(tmp_path: Path):
    bin_ = _fake_bin(tmp_path, "fail")
    with pytest.raises(ProverError) as ei:
        asyncio.run(snarkjs.fullprove({}, "c.wasm", "c.zkey", snarkjs_bin=bin_, timeout=30))
    assert ei.value.retryable
    assert "constraint" in ei.value.data["stderr"]


@posix_only
def test_fullprove_timeout_kills_child(tmp_path: Path):
    bin_ = _fake_bin(tmp_path, "hang")
    with pytest.raises(TimeoutErrorA):
        asyncio.run(snarkjs.fullprove({}, "c.wasm", "c.zkey", snarkjs_bin=bin_, timeout=0.5))


def test_fullprove_missing_binary(tmp_path: Path):
    with pytest.raises(ProverError) as ei:
        asyncio.run(
            snarkjs.fullprove(
                {}, "c.wasm", "c.zkey", snarkjs_bin=str(tmp_path / "nope"), timeout=5
            )
        )
    assert not ei.value.retryable
