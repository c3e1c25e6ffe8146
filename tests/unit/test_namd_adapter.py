import os
from types import SimpleNamespace

import pytest

from revesicle.adapters.namd import NamdEngine, build_namd_command
from revesicle.errors import EngineError, MissingArtifactError


def test_command_layout():
    cmd = build_namd_command("namd3", "STEP-2_A.conf", launcher="srun -n 1", launch_args="+p8 +devices 0", extra_args="+setcpuaffinity")
    assert cmd == ["srun", "-n", "1", "namd3", "+p8", "+devices", "0", "+setcpuaffinity", "STEP-2_A.conf"]
    assert build_namd_command("namd3", "a.conf") == ["namd3", "a.conf"]


def test_from_config_uses_compress_fallback():
    section = SimpleNamespace(
        namd_bin="namd3", launcher="", launch_args="+p4", extra_args="",
        compress_bin=None, compress_launcher=None, compress_launch_args="+p1",
    )
    eng = NamdEngine.from_config(section)
    assert eng.compress_bin == "namd3"
    assert eng.launch_args == "+p4" and eng.compress_launch_args == "+p1"


def _engine(shim_bin):
    return NamdEngine(namd_bin=str(shim_bin / "namd3"), compress_bin=str(shim_bin / "namd3"), launch_args="+p2")


def test_run_writes_per_conf_log(tmp_path, shim_bin):
    (tmp_path / "STEP-2_A.conf").write_text("outputName STEP-2_A\n")
    log = _engine(shim_bin).run(tmp_path / "STEP-2_A.conf", tmp_path)
    assert log == tmp_path / "STEP-2_A.log"
    assert "namd shim: +p2 STEP-2_A.conf" in log.read_text()
    assert (tmp_path / "STEP-2_A.dcd").is_file()


def test_compress_log_name_override(tmp_path, shim_bin):
    (tmp_path / "compress_STEP-4.conf").write_text("outputName compressed\n")
    log = _engine(shim_bin).compress(tmp_path / "compress_STEP-4.conf", tmp_path, log_name="compress.log")
    assert log.name == "compress.log" and log.is_file()


def test_nonzero_exit_maps_to_engine_error(tmp_path, shim_bin, monkeypatch):
    monkeypatch.setenv("FAKE_NAMD_EXIT", "3")
    (tmp_path / "STEP-5.conf").write_text("outputName STEP-5\n")
    with pytest.raises(EngineError, match="exit 3"):
        _engine(shim_bin).run(tmp_path / "STEP-5.conf", tmp_path)


def test_missing_binary_and_conf(tmp_path):
    (tmp_path / "a.conf").write_text("\n")
    with pytest.raises(EngineError):
        NamdEngine(namd_bin=str(tmp_path / "no-such-namd")).run(tmp_path / "a.conf", tmp_path)
    with pytest.raises(MissingArtifactError):
        NamdEngine().run(tmp_path / "missing.conf", tmp_path)
