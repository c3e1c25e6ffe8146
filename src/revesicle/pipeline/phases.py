"""One entry function per pipeline state.

Every entry function takes a :class:`PhaseContext` and returns a
:class:`PhaseResult`; workflow errors are captured into the result instead of
terminating the process. While a phase runs, its ``process.log`` is the active
log file; the orchestrator's ``step.log`` is restored afterwards.

Phase inputs are always reloaded from disk. The post-phase-1A structure name
comes from ``PipelineSettings.require_step1a_basename()``.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from revesicle.domain.charges import balance_charge
from revesicle.domain.editing import EditResult, split_structure
from revesicle.domain.fragments import compare_strategies, expand_fragments
from revesicle.domain.geometry import GeometryEstimate, estimate_geometry
from revesicle.domain.residues import ResidueClasses
from revesicle.domain.shells import MembershipRule, ShellSpec, ShellSplit, classify_residues, split_shell
from revesicle.domain.structure import Structure
from revesicle.errors import MissingArtifactError, ReVesicleError
from revesicle.infra.logging import log_run_header, setup_logging
from revesicle.infra.step_logging import log_relevant_config
from revesicle.io import index_files
from revesicle.io.structure import load_structure, snapshot_paths, write_snapshot
from revesicle.io.trajectory import strip_trajectory
from revesicle.pipeline.settings import PipelineSettings
from revesicle.pipeline.staging import phase_dir

__all__ = [
    "PhaseContext",
    "PhaseResult",
    "PHASE_FUNCTIONS",
    "remove_water_shell",
    "remove_lipid_shell",
    "neutralize",
    "run_phase_1a",
    "run_phase_2a",
    "run_phase_3a",
    "run_phase_1b",
    "run_phase_2b",
    "run_phase_3b",
    "run_phase_4",
    "run_phase_5",
]

WATER_REMOVED = "TOT_removed_water"
LIPIDS_REMOVED = "removed_lipids_STEP-1_A"
STEP1A_WATER = "STEP-1_A_empty_holes"
STEP1A_LIPIDS = "STEP-1_A_empty_holes_lipids"
STEP1A_CHARGE = "STEP-1_A_empty_holes_lipids_charge"
STEP1B_WATER = "STEP-1_B_empty_holes"
STEP4_WATER = "STEP-4_empty_holes"


@dataclass
class PhaseContext:
    settings: PipelineSettings
    engine: object
    classes: ResidueClasses = field(default_factory=ResidueClasses)
    fragment_strategy: str = "connectivity"
    offset_table: dict | None = None
    compare_fragment_strategies: bool = False
    seed: int | None = None
    log_console: bool = False
    step_log: Path | None = None

    def dir(self, name: str) -> Path:
        return phase_dir(self.settings.workdir, name)


@dataclass
class PhaseResult:
    name: str
    ok: bool
    artifacts: list[Path] = field(default_factory=list)
    error: ReVesicleError | None = None
    summary: dict = field(default_factory=dict)

    def describe(self) -> str:
        if self.ok:
            return f"{self.name}: ok ({len(self.artifacts)} artifact(s))"
        return f"{self.name}: FAILED ({type(self.error).__name__}: {self.error})"


@contextmanager
def _phase_logging(ctx: PhaseContext, name: str):
    setup_logging(ctx.dir(name) / "process.log", also_console=ctx.log_console, suppress_initial_message=True)
    log_run_header(name)
    try:
        yield
    finally:
        if ctx.step_log is not None:
            setup_logging(ctx.step_log, also_console=ctx.log_console, suppress_initial_message=True)


def _entry(name: str):
    """Wrap a phase body: per-phase logging and error capture into a PhaseResult."""

    def deco(body: Callable[[PhaseContext, PhaseResult], None]):
        def run(ctx: PhaseContext) -> PhaseResult:
            result = PhaseResult(name=name, ok=False)
            with _phase_logging(ctx, name):
                logging.info(f"[{name}] start")
                try:
                    body(ctx, result)
                except ReVesicleError as e:
                    logging.error(f"[{name}][abort] {type(e).__name__}: {e}")
                    result.error = e
                    return result
                result.ok = True
                logging.info(f"[{name}] done")
            return result

        run.__name__ = body.__name__
        run.__doc__ = body.__doc__
        run.phase_name = name
        return run

    return deco


def _write_lines(path: Path, lines: list[str]) -> Path:
    path.write_text("".join(f"{line}\n" for line in lines))
    return path


def _snapshot(structure: Structure, directory: Path, name: str) -> list[Path]:
    return [p for p in write_snapshot(structure, directory, name) if p.is_file()]


def _require(path: Path, what: str) -> Path:
    if not path.is_file():
        raise MissingArtifactError(f"{what} not found: {path}")
    return path


# ---------------------------------------------------------------------------
# Classification + editing building blocks
# ---------------------------------------------------------------------------

def _log_geometry(tag: str, geometry: GeometryEstimate) -> None:
    for line in geometry.log_lines():
        logging.info(f"[{tag}][geometry] {line}")


def remove_water_shell(
    structure: Structure,
    ctx: PhaseContext,
    out_dir: Path,
    retained_name: str,
    tag: str,
) -> tuple[EditResult, ShellSplit, list[Path]]:
    """Remove water residues with any atom between ``radius - d2`` and ``radius - d1``.

    Writes ``TOT_removed_water.{psf,coor}``, ``<retained_name>.{psf,coor}``,
    ``TOT_output_water.txt`` (sorted residue ids) and ``IN_OUT_output_water.txt``
    (total, inner and outer counts split at ``d_mid``).
    """
    s = ctx.settings
    spec = ShellSpec(d_inner=s.d1, d_outer=s.d2)
    logging.info(f"[{tag}][water] d1={s.d1} d2={s.d2} d_mid={spec.d_mid}")
    geometry = estimate_geometry(structure, ctx.classes.lipids())
    _log_geometry(tag, geometry)
    residues = classify_residues(structure, geometry, spec, ctx.classes.removable_waters(), MembershipRule.ANY_ATOM)
    split = split_shell(structure, geometry, spec, residues)
    edit = split_structure(structure, residues)
    logging.info(
        f"[{tag}][water] removing {edit.n_removed_residues} water residue(s) "
        f"(inner={len(split.inner)} outer={len(split.outer)})"
    )
    artifacts = [
        _write_lines(out_dir / "TOT_output_water.txt", [" ".join(str(r) for r in edit.removed_residues)]),
        _write_lines(out_dir / "IN_OUT_output_water.txt", [split.summary_line()]),
    ]
    artifacts += _snapshot(edit.removed, out_dir, WATER_REMOVED)
    artifacts += _snapshot(edit.retained, out_dir, retained_name)
    return edit, split, artifacts


def remove_lipid_shell(structure: Structure, ctx: PhaseContext, out_dir: Path, tag: str) -> tuple[EditResult, list[Path]]:
    """Remove flipped lipids whose head atom lies between ``radius - d4`` and ``radius - d3``.

    Phospholipids and cholesterol are detected by their head atom; glycolipids
    by their marker atom and then expanded to the whole bonded fragment.
    """
    s = ctx.settings
    spec = ShellSpec(d_inner=s.d3, d_outer=s.d4)
    logging.info(f"[{tag}][lipids] d3={s.d3} d4={s.d4}")
    geometry = estimate_geometry(structure, ctx.classes.lipids())
    _log_geometry(tag, geometry)
    heads = classify_residues(structure, geometry, spec, ctx.classes.lipid_heads(), MembershipRule.HEAD)
    glyco_heads = classify_residues(structure, geometry, spec, ctx.classes.glycolipid_heads(), MembershipRule.HEAD)
    glyco = expand_fragments(structure, glyco_heads, ctx.fragment_strategy, ctx.offset_table)
    if ctx.compare_fragment_strategies:
        compare_strategies(structure, glyco_heads, ctx.offset_table)
    total = heads | glyco
    edit = split_structure(structure, total)
    report = [
        "Geometry: " + "; ".join(geometry.log_lines()),
        "",
        f"Removing {len(heads)} phospholipids:",
        " ".join(str(r) for r in sorted(heads)),
        "",
        f"Removing {len(glyco_heads)} glycolipids (whole fragments):",
        " ".join(str(r) for r in sorted(glyco)),
        "",
        "Total residues removed:",
        " ".join(str(r) for r in edit.removed_residues),
    ]
    logging.info(
        f"[{tag}][lipids] removing {len(heads)} lipid(s) and {len(glyco_heads)} glycolipid(s) "
        f"({len(glyco)} residues, strategy={ctx.fragment_strategy})"
    )
    artifacts = [_write_lines(out_dir / "output_lipids_holes.txt", report)]
    artifacts += _snapshot(edit.removed, out_dir, LIPIDS_REMOVED)
    artifacts += _snapshot(edit.retained, out_dir, STEP1A_LIPIDS)
    return edit, artifacts


def neutralize(structure: Structure, ctx: PhaseContext, out_dir: Path, tag: str) -> tuple[Structure, list[Path]]:
    """Remove counter-ions until the net charge rounds to zero; write the charge snapshot."""
    balance = balance_charge(structure, ctx.classes, seed=ctx.seed)
    artifacts = [_write_lines(out_dir / "check_charge.txt", balance.check_charge_lines())]
    if balance.is_noop:
        logging.info(f"[{tag}][charge] no ions need to be removed")
        final = structure
    else:
        final = split_structure(structure, balance.removed_residues).retained
        artifacts.append(_write_lines(out_dir / "selected_CLA_SOD_indices.txt", balance.selection_lines()))
        logging.info(
            f"[{tag}][charge] removed {balance.n_removed} {balance.species}; "
            f"net charge {balance.state.net_charge:.4f} -> {balance.post_net_charge:.4f}"
        )
    artifacts += _snapshot(final, out_dir, STEP1A_CHARGE)
    return final, artifacts


def _run_engine(ctx: PhaseContext, name: str, conf: str, compress: bool = False) -> Path:
    d = ctx.dir(name)
    if compress:
        return ctx.engine.compress(d / conf, d)
    return ctx.engine.run(d / conf, d)


def _simulate(ctx: PhaseContext, result: PhaseResult, name: str, strip_psf: Path) -> None:
    d = ctx.dir(name)
    result.artifacts.append(_run_engine(ctx, name, f"{name}.conf"))
    dcd = d / f"{name}.dcd"
    if not dcd.is_file():
        raise MissingArtifactError(f"engine finished but {dcd.name} was not produced in {d}")
    result.artifacts.append(dcd)
    if ctx.settings.strip_trajectories:
        logging.info(f"[{name}] stripping trajectory")
        result.artifacts += strip_trajectory(strip_psf, dcd, d, name, ctx.classes)
    else:
        logging.info(f"[{name}] trajectory stripping disabled")


def _step1a_psf(ctx: PhaseContext) -> Path:
    psf, _ = snapshot_paths(ctx.dir("STEP-1_A"), ctx.settings.require_step1a_basename())
    return psf


# ---------------------------------------------------------------------------
# Phase entry functions
# ---------------------------------------------------------------------------

@_entry("STEP-1_A")
def run_phase_1a(ctx: PhaseContext, result: PhaseResult) -> None:
    """Water shell removal on the input system, optional lipid removal and neutralisation."""
    s = ctx.settings
    d = ctx.dir("STEP-1_A")
    log_relevant_config("STEP-1_A", s, ["d1", "d2", "remove_lipids", "d3", "d4", "structure", "trajectory"])
    structure = load_structure(s.structure, s.trajectory)
    edit, split, artifacts = remove_water_shell(structure, ctx, d, STEP1A_WATER, "STEP-1_A")
    result.artifacts += artifacts
    result.summary["water"] = split.counts()
    final = edit.retained
    if s.remove_lipids:
        lipid_edit, artifacts = remove_lipid_shell(edit.retained, ctx, d, "STEP-1_A")
        result.artifacts += artifacts
        result.summary["lipid_residues"] = lipid_edit.n_removed_residues
        final, artifacts = neutralize(lipid_edit.retained, ctx, d, "STEP-1_A")
        result.artifacts += artifacts
    else:
        logging.info("[STEP-1_A] lipid removal disabled")
    basename = s.require_step1a_basename()
    if not snapshot_paths(d, basename)[0].is_file():
        raise MissingArtifactError(f"phase-1A output {basename}.psf was not written in {d}")
    result.artifacts += [
        index_files.write_index_file(final, index_files.water_lipid_heads_selection(ctx.classes), d / "index_water_lipid_heads_A.dat"),
        index_files.write_index_file(final, index_files.water_selection(ctx.classes), d / "index_water_A.dat"),
    ]
    result.artifacts.append(_run_engine(ctx, "STEP-1_A", "compress_STEP-1_A.conf", compress=True))


@_entry("STEP-2_A")
def run_phase_2a(ctx: PhaseContext, result: PhaseResult) -> None:
    _simulate(ctx, result, "STEP-2_A", _step1a_psf(ctx))


@_entry("STEP-3_A")
def run_phase_3a(ctx: PhaseContext, result: PhaseResult) -> None:
    _simulate(ctx, result, "STEP-3_A", _step1a_psf(ctx))


@_entry("STEP-1_B")
def run_phase_1b(ctx: PhaseContext, result: PhaseResult) -> None:
    """Water shell removal on the last frame of the STEP-3_A trajectory."""
    d = ctx.dir("STEP-1_B")
    psf = _require(_step1a_psf(ctx), "phase-1A structure")
    dcd = _require(ctx.dir("STEP-3_A") / "STEP-3_A.dcd", "STEP-3_A trajectory")
    structure = load_structure(psf, dcd)
    edit, split, artifacts = remove_water_shell(structure, ctx, d, STEP1B_WATER, "STEP-1_B")
    result.artifacts += artifacts
    result.summary["water"] = split.counts()
    result.artifacts += [
        index_files.write_index_file(edit.retained, index_files.water_lipid_heads_selection(ctx.classes), d / "index_water_lipid_heads_B.dat"),
        index_files.write_index_file(edit.retained, index_files.water_selection(ctx.classes), d / "index_water_B.dat"),
    ]
    result.artifacts.append(_run_engine(ctx, "STEP-1_B", "compress_STEP-1_B.conf", compress=True))


@_entry("STEP-2_B")
def run_phase_2b(ctx: PhaseContext, result: PhaseResult) -> None:
    _simulate(ctx, result, "STEP-2_B", ctx.dir("STEP-1_B") / f"{STEP1B_WATER}.psf")


@_entry("STEP-3_B")
def run_phase_3b(ctx: PhaseContext, result: PhaseResult) -> None:
    _simulate(ctx, result, "STEP-3_B", ctx.dir("STEP-1_B") / f"{STEP1B_WATER}.psf")


@_entry("STEP-4")
def run_phase_4(ctx: PhaseContext, result: PhaseResult) -> None:
    """Final water shell removal on the last frame of the STEP-3_B trajectory."""
    d = ctx.dir("STEP-4")
    psf = _require(ctx.dir("STEP-1_B") / f"{STEP1B_WATER}.psf", "phase-1B structure")
    dcd = _require(ctx.dir("STEP-3_B") / "STEP-3_B.dcd", "STEP-3_B trajectory")
    structure = load_structure(psf, dcd)
    edit, split, artifacts = remove_water_shell(structure, ctx, d, STEP4_WATER, "STEP-4")
    result.artifacts += artifacts
    result.summary["water"] = split.counts()
    result.artifacts.append(
        index_files.write_index_file(edit.retained, index_files.lipid_heads_selection(ctx.classes), d / "index_lipid_heads.dat")
    )
    result.artifacts.append(_run_engine(ctx, "STEP-4", "compress_STEP-4.conf", compress=True))


@_entry("STEP-5")
def run_phase_5(ctx: PhaseContext, result: PhaseResult) -> None:
    """Production run on the STEP-4 system (possibly produced by a prior invocation)."""
    psf = _require(ctx.dir("STEP-4") / f"{STEP4_WATER}.psf", "STEP-4 structure")
    _simulate(ctx, result, "STEP-5", psf)


PHASE_FUNCTIONS: dict[str, Callable[[PhaseContext], PhaseResult]] = {
    "STEP-1_A": run_phase_1a,
    "STEP-2_A": run_phase_2a,
    "STEP-3_A": run_phase_3a,
    "STEP-1_B": run_phase_1b,
    "STEP-2_B": run_phase_2b,
    "STEP-3_B": run_phase_3b,
    "STEP-4": run_phase_4,
    "STEP-5": run_phase_5,
}
