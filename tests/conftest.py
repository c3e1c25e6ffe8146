import os, stat, pytest
from pathlib import Path


@pytest.fixture(autouse=True)
def _clean_logging():
    """Every test starts and ends without file handlers left on the root logger."""
    from revesicle.infra.logging import reset_logging
    reset_logging()
    yield
    reset_logging()


@pytest.fixture(scope="session")
def shim_bin(tmp_path_factory):
    """Directory with a fake ``namd3`` that echoes its arguments.

    The shim writes ``<outputName>.dcd`` when the conf names one and exits
    with the status given in ``FAKE_NAMD_EXIT`` (default 0).
    """
    d = tmp_path_factory.mktemp("shims")
    namd = r"""#!/usr/bin/env bash
set -euo pipefail
conf="${@: -1}"
echo "namd shim: $*"
out="$(awk '$1=="outputName"{print $2}' "$conf" || true)"
if [[ -n "${out}" && "${out}" != "compressed" ]]; then
  touch "${out}.dcd"
fi
exit "${FAKE_NAMD_EXIT:-0}"
"""
    (d/"namd3").write_text(namd)
    os.chmod(d/"namd3", os.stat(d/"namd3").st_mode | stat.S_IEXEC)
    return d


@pytest.fixture
def vesicle_workdir(tmp_path):
    """Working directory with the test vesicle inputs, an .xst file and script/ confs."""
    from tests.helpers.vesicle import make_workdir
    return make_workdir(tmp_path / "work")


@pytest.fixture
def fake_engine_factory():
    from tests.helpers.engine import FakeEngine

    def make(settings, **kw):
        return FakeEngine(settings.workdir, settings.require_step1a_basename(), **kw)

    return make
