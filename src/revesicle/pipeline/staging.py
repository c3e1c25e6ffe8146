"""Phase directory tree, staged configuration files and cell propagation.

Layout under the working directory::

    STEP-1-3_A/STEP-1_A  STEP-1-3_A/STEP-2_A  STEP-1-3_A/STEP-3_A
    STEP-1-3_B/STEP-1_B  STEP-1-3_B/STEP-2_B  STEP-1-3_B/STEP-3_B
    STEP-4
    STEP-5

Configuration files are copied from the scripts directory (overwriting) with
the ``@STEP1A_BASENAME@`` token replaced by the phase-1A structure basename.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from revesicle.errors import MissingArtifactError
from revesicle.io.cell import update_conf_files
from revesicle.pipeline.settings import PipelineSettings, RunMode

__all__ = [
    "BASENAME_TOKEN",
    "PhaseLayout",
    "PHASES",
    "phase_layout",
    "phase_dir",
    "create_tree",
    "staged_files",
    "stage_files",
    "cell_update_targets",
    "apply_cell_update",
]

BASENAME_TOKEN = "@STEP1A_BASENAME@"


@dataclass(frozen=True)
class PhaseLayout:
    name: str
    relpath: str
    conf: str | None
    # Staged confs that must reference the phase-1A basename through the token
    requires_token: bool = False


PHASES: dict[str, PhaseLayout] = {
    "STEP-1_A": PhaseLayout("STEP-1_A", "STEP-1-3_A/STEP-1_A", "compress_STEP-1_A.conf", requires_token=True),
    "STEP-2_A": PhaseLayout("STEP-2_A", "STEP-1-3_A/STEP-2_A", "STEP-2_A.conf", requires_token=True),
    "STEP-3_A": PhaseLayout("STEP-3_A", "STEP-1-3_A/STEP-3_A", "STEP-3_A.conf"),
    "STEP-1_B": PhaseLayout("STEP-1_B", "STEP-1-3_B/STEP-1_B", "compress_STEP-1_B.conf"),
    "STEP-2_B": PhaseLayout("STEP-2_B", "STEP-1-3_B/STEP-2_B", "STEP-2_B.conf"),
    "STEP-3_B": PhaseLayout("STEP-3_B", "STEP-1-3_B/STEP-3_B", "STEP-3_B.conf"),
    "STEP-4": PhaseLayout("STEP-4", "STEP-4", "compress_STEP-4.conf"),
    "STEP-5": PhaseLayout("STEP-5", "STEP-5", "STEP-5.conf"),
}

_PHASES_1_TO_4 = ("STEP-1_A", "STEP-2_A", "STEP-3_A", "STEP-1_B", "STEP-2_B", "STEP-3_B", "STEP-4")


def phase_layout(name: str) -> PhaseLayout:
    return PHASES[name]


def phase_dir(workdir, name: str) -> Path:
    return Path(workdir) / PHASES[name].relpath


def _phases_for(mode: RunMode) -> list[str]:
    names: list[str] = []
    if mode.runs_phases_1_to_4:
        names += list(_PHASES_1_TO_4)
    if mode.runs_phase_5:
        names.append("STEP-5")
    return names


def create_tree(settings: PipelineSettings) -> list[Path]:
    """Create the phase directories the run mode needs (mode 5: STEP-5 only; mode 1234: no STEP-5)."""
    created = []
    for name in _phases_for(settings.run_mode):
        d = phase_dir(settings.workdir, name)
        d.mkdir(parents=True, exist_ok=True)
        created.append(d)
    logging.info("[stage] folder structure ready in %s (%d phase dirs)", settings.workdir, len(created))
    return created


def staged_files(mode: RunMode) -> list[tuple[str, str]]:
    """(phase name, file name) pairs copied from the scripts directory for ``mode``."""
    return [(name, PHASES[name].conf) for name in _phases_for(mode) if PHASES[name].conf]


def _render(text: str, basename: str) -> str:
    return text.replace(BASENAME_TOKEN, basename)


def stage_files(settings: PipelineSettings) -> list[Path]:
    """Copy (overwrite) each phase's conf into its directory, rendering the basename token.

    Raises
    ------
    MissingArtifactError
        If a source file is missing, or a conf that must reference the
        phase-1A structure does not contain the token.
    """
    basename = settings.require_step1a_basename()
    out: list[Path] = []
    for name, filename in staged_files(settings.run_mode):
        src = settings.scripts_dir / filename
        if not src.is_file():
            raise MissingArtifactError(f"missing staged input {src}")
        text = src.read_text()
        if PHASES[name].requires_token:
            if BASENAME_TOKEN not in text:
                raise MissingArtifactError(
                    f"{src} does not reference {BASENAME_TOKEN}; a hard-coded phase-1A structure name likely remains"
                )
            logging.info("[stage] OK: %s uses %s -> %s", filename, BASENAME_TOKEN, basename)
        dest = phase_dir(settings.workdir, name) / filename
        dest.write_text(_render(text, basename))
        out.append(dest)
    logging.info("[stage] copied %d file(s) from %s into phase folders", len(out), settings.scripts_dir)
    return out


def cell_update_targets(settings: PipelineSettings) -> list[Path]:
    """Conf files whose cell lines are rewritten from the input ``.xst``."""
    w = settings.workdir
    targets: list[Path] = []
    if settings.run_mode.runs_phases_1_to_4:
        targets += [
            phase_dir(w, "STEP-1_A") / "compress_STEP-1_A.conf",
            phase_dir(w, "STEP-1_B") / "compress_STEP-1_B.conf",
            phase_dir(w, "STEP-4") / "compress_STEP-4.conf",
            phase_dir(w, "STEP-2_A") / "STEP-2_A.conf",
            phase_dir(w, "STEP-2_B") / "STEP-2_B.conf",
        ]
    if settings.run_mode.runs_phase_5:
        targets.append(phase_dir(w, "STEP-5") / "STEP-5.conf")
    return targets


def apply_cell_update(settings: PipelineSettings) -> list[Path]:
    targets = cell_update_targets(settings)
    for conf in targets:
        if not conf.is_file():
            raise MissingArtifactError(f"missing conf to update: {conf}")
    record = update_conf_files(settings.xst, targets)
    logging.info("[stage] cell dimensions (step %d) written to %d conf file(s)", record.step, len(targets))
    return targets
