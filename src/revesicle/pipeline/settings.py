"""Validated, immutable run settings.

``build_settings`` performs every check that must pass before any file is
created: offsets, flag values, run mode and input files. The resulting
:class:`PipelineSettings` also carries the canonical basename of the phase-1A
output structure, computed once from the lipid-removal flag; every later
phase reads it from here.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from pathlib import Path

from revesicle.errors import ValidationError

__all__ = [
    "RunMode",
    "PipelineSettings",
    "STEP1A_BASENAME_PLAIN",
    "STEP1A_BASENAME_LIPIDS",
    "parse_on_off",
    "parse_yes_no",
    "parse_offset",
    "build_settings",
]

STEP1A_BASENAME_PLAIN = "STEP-1_A_empty_holes"
STEP1A_BASENAME_LIPIDS = "STEP-1_A_empty_holes_lipids_charge"


class RunMode(str, enum.Enum):
    ALL = "all"
    STOP_AFTER_4 = "1234"
    PHASE_5_ONLY = "5"

    @classmethod
    def parse(cls, raw) -> "RunMode":
        if isinstance(raw, RunMode):
            return raw
        key = str(raw).strip().lower()
        mode = _RUN_MODE_ALIASES.get(key)
        if mode is None:
            raise ValidationError(
                f"run mode must be one of: all | 1234 | 5 (aliases: full, stop-after-4, phase-5-only); got {raw!r}"
            )
        return mode

    @property
    def runs_phases_1_to_4(self) -> bool:
        return self is not RunMode.PHASE_5_ONLY

    @property
    def runs_phase_5(self) -> bool:
        return self is not RunMode.STOP_AFTER_4


_RUN_MODE_ALIASES = {
    "all": RunMode.ALL,
    "full": RunMode.ALL,
    "1234": RunMode.STOP_AFTER_4,
    "stop-after-4": RunMode.STOP_AFTER_4,
    "stop-after-phase-4": RunMode.STOP_AFTER_4,
    "5": RunMode.PHASE_5_ONLY,
    "phase-5-only": RunMode.PHASE_5_ONLY,
}


def _parse_flag(raw, truthy: str, falsy: str, option: str) -> bool:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value == truthy:
        return True
    if value == falsy:
        return False
    raise ValidationError(f"{option} must be '{truthy}' or '{falsy}' (got: {raw})")


def parse_on_off(raw, option: str = "--remove-lipids") -> bool:
    return _parse_flag(raw, "on", "off", option)


def parse_yes_no(raw, option: str = "--striptraj") -> bool:
    return _parse_flag(raw, "yes", "no", option)


def parse_offset(raw, name: str) -> float:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(f"missing {name}")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number (got: {raw!r})") from None
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"{name} must be a finite number >= 0 (got: {raw!r})")
    return value


@dataclass(frozen=True)
class PipelineSettings:
    d1: float
    d2: float
    structure: Path
    trajectory: Path
    xst: Path
    workdir: Path
    scripts_dir: Path
    run_mode: RunMode = RunMode.ALL
    remove_lipids: bool = False
    d3: float | None = None
    d4: float | None = None
    strip_trajectories: bool = True
    seed: int | None = None
    step1a_basename: str | None = None

    def require_step1a_basename(self) -> str:
        """Return the post-phase-1A structure basename; raise when it was never set."""
        if not self.step1a_basename:
            raise ValidationError(
                "phase-1A structure basename is not set; settings must come from build_settings()"
            )
        return self.step1a_basename


def build_settings(
    *,
    d1,
    d2,
    structure,
    trajectory,
    xst,
    workdir=".",
    scripts_dir=None,
    run_mode="all",
    remove_lipids="off",
    d3=None,
    d4=None,
    striptraj="yes",
    seed=None,
) -> PipelineSettings:
    """Validate raw CLI values and return frozen settings.

    Raises
    ------
    ValidationError
        On any missing/invalid value or missing input file. Nothing is
        created on disk before this returns.
    """
    off1 = parse_offset(d1, "-d1")
    off2 = parse_offset(d2, "-d2")
    for value, option in ((structure, "--structure"), (trajectory, "--trajectory"), (xst, "--xst")):
        if value is None or not str(value).strip():
            raise ValidationError(f"missing {option}")
    mode = RunMode.parse(run_mode)
    lipids = parse_on_off(remove_lipids)
    strip = parse_yes_no(striptraj)
    off3 = off4 = None
    if lipids:
        if d3 is None or d4 is None:
            raise ValidationError("--remove-lipids on requires --d3 and --d4")
        off3 = parse_offset(d3, "-d3")
        off4 = parse_offset(d4, "-d4")
    if seed is not None:
        try:
            seed = int(seed)
        except (TypeError, ValueError):
            raise ValidationError(f"--seed must be an integer (got: {seed!r})") from None

    root = Path(workdir).resolve()
    structure_p = Path(structure).resolve()
    trajectory_p = Path(trajectory).resolve()
    xst_p = Path(xst).resolve()
    if not xst_p.is_file():
        raise ValidationError(f"XST file not found: {xst_p}")
    if mode.runs_phases_1_to_4:
        for p, what in ((structure_p, "structure"), (trajectory_p, "trajectory")):
            if not p.is_file():
                raise ValidationError(f"{what} file not found: {p}")
    scripts = Path(scripts_dir) if scripts_dir else root / "script"
    if not scripts.is_absolute():
        scripts = root / scripts
    if not scripts.is_dir():
        raise ValidationError(f"missing required scripts folder: {scripts}")

    return PipelineSettings(
        d1=off1,
        d2=off2,
        structure=structure_p,
        trajectory=trajectory_p,
        xst=xst_p,
        workdir=root,
        scripts_dir=scripts.resolve(),
        run_mode=mode,
        remove_lipids=lipids,
        d3=off3,
        d4=off4,
        strip_trajectories=strip,
        seed=seed,
        step1a_basename=STEP1A_BASENAME_LIPIDS if lipids else STEP1A_BASENAME_PLAIN,
    )
