"""NAMD adapter.

Builds the command line ``[launcher] <namd> <launch args> <extra args> <conf>``
and runs it in the phase directory with stdout/stderr sent to a per-call log
file. Compression runs (``genCompressedPsf`` confs) may use a different binary,
launcher and launch arguments; some memory-optimised builds cannot compress.
"""
from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from revesicle.cli.run_commands import run_command
from revesicle.errors import EngineError, MissingArtifactError

__all__ = ["NamdEngine", "build_namd_command"]


def build_namd_command(binary: str, conf: str, launcher: str = "", launch_args: str = "", extra_args: str = "") -> list[str]:
    cmd: list[str] = []
    if launcher:
        cmd += shlex.split(launcher)
    cmd.append(binary)
    cmd += shlex.split(launch_args or "")
    cmd += shlex.split(extra_args or "")
    cmd.append(conf)
    return cmd


@dataclass(frozen=True)
class NamdEngine:
    namd_bin: str = "namd3"
    launcher: str = ""
    launch_args: str = ""
    extra_args: str = ""
    compress_bin: str = "namd3"
    compress_launcher: str = ""
    compress_launch_args: str = ""

    @classmethod
    def from_config(cls, engine) -> "NamdEngine":
        """Build from a loaded ``EngineSection`` (env defaults already applied)."""
        return cls(
            namd_bin=engine.namd_bin,
            launcher=engine.launcher or "",
            launch_args=engine.launch_args or "",
            extra_args=engine.extra_args or "",
            compress_bin=engine.compress_bin or engine.namd_bin,
            compress_launcher=engine.compress_launcher or "",
            compress_launch_args=engine.compress_launch_args or "",
        )

    def _execute(self, cmd: list[str], conf: Path, cwd: Path, log_name: str) -> Path:
        if not (cwd / conf.name).is_file():
            raise MissingArtifactError(f"missing NAMD config: {cwd / conf.name}")
        try:
            run_command(cmd, cwd=str(cwd), log_file=log_name)
        except subprocess.CalledProcessError as e:
            raise EngineError(f"NAMD failed on {conf.name} (exit {e.returncode}); see {cwd / log_name}") from e
        except OSError as e:
            raise EngineError(f"could not start NAMD for {conf.name}: {e}") from e
        return cwd / log_name

    def run(self, conf, cwd, log_name: str | None = None) -> Path:
        """Run a simulation configuration; return the log file path."""
        conf, cwd = Path(conf), Path(cwd)
        log_name = log_name or f"{conf.stem}.log"
        logging.info("[namd] %s (log: %s)", conf.name, log_name)
        cmd = build_namd_command(self.namd_bin, conf.name, self.launcher, self.launch_args, self.extra_args)
        return self._execute(cmd, conf, cwd, log_name)

    def compress(self, conf, cwd, log_name: str | None = None) -> Path:
        """Run a compressed-PSF generation configuration with the compress binary."""
        conf, cwd = Path(conf), Path(cwd)
        log_name = log_name or f"{conf.stem}.log"
        logging.info("[namd][compress] %s (log: %s)", conf.name, log_name)
        cmd = build_namd_command(
            self.compress_bin, conf.name, self.compress_launcher, self.compress_launch_args, self.extra_args
        )
        return self._execute(cmd, conf, cwd, log_name)
