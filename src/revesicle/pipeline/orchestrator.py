"""Pipeline state machine.

States run strictly in order::

    Init -> Staged -> STEP-1_A -> STEP-2_A -> STEP-3_A -> STEP-1_B -> STEP-2_B
         -> STEP-3_B -> STEP-4 -> STEP-5 -> Done

Run mode ``1234`` stops after STEP-4, run mode ``5`` goes from Staged
straight to STEP-5. Any failure moves the machine to ``Failed`` and no later
phase runs.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path

from revesicle.domain.residues import ResidueClasses
from revesicle.errors import MissingArtifactError, ReVesicleError
from revesicle.infra.decisions import build_run_plan
from revesicle.infra.logging import setup_logging
from revesicle.infra.step_logging import log_step_header
from revesicle.pipeline.phases import PHASE_FUNCTIONS, PhaseContext, PhaseResult
from revesicle.pipeline.settings import PipelineSettings, RunMode
from revesicle.pipeline.staging import apply_cell_update, create_tree, phase_dir, stage_files

__all__ = ["PipelineState", "PipelineReport", "plan_phases", "check_prerequisites", "run_pipeline"]

PHASE_ORDER = ("STEP-1_A", "STEP-2_A", "STEP-3_A", "STEP-1_B", "STEP-2_B", "STEP-3_B", "STEP-4", "STEP-5")


class PipelineState(str, enum.Enum):
    INIT = "Init"
    STAGED = "Staged"
    DONE = "Done"
    STOPPED = "Stopped"
    FAILED = "Failed"


def plan_phases(mode: RunMode) -> list[str]:
    """Phase names executed for ``mode``, in order."""
    mode = RunMode.parse(mode)
    if mode is RunMode.PHASE_5_ONLY:
        return ["STEP-5"]
    if mode is RunMode.STOP_AFTER_4:
        return list(PHASE_ORDER[:-1])
    return list(PHASE_ORDER)


@dataclass
class PipelineReport:
    phases: list[str]
    state: PipelineState = PipelineState.INIT
    results: list[PhaseResult] = field(default_factory=list)
    failed_at: str | None = None
    error: ReVesicleError | None = None

    @property
    def ok(self) -> bool:
        return self.state in (PipelineState.DONE, PipelineState.STOPPED)

    @property
    def completed(self) -> list[str]:
        return [r.name for r in self.results if r.ok]

    def fail(self, where: str, error: ReVesicleError) -> "PipelineReport":
        self.state = PipelineState.FAILED
        self.failed_at = where
        self.error = error
        return self


def check_prerequisites(settings: PipelineSettings) -> None:
    """Mode ``5`` reuses the STEP-4 system of an earlier run; it must already exist."""
    if settings.run_mode is RunMode.PHASE_5_ONLY:
        psf = phase_dir(settings.workdir, "STEP-4") / "STEP-4_empty_holes.psf"
        if not psf.is_file():
            raise MissingArtifactError(f"run mode 5 requires the STEP-4 structure of a prior run: {psf}")


def run_pipeline(
    settings: PipelineSettings,
    engine,
    classes: ResidueClasses | None = None,
    *,
    fragment_strategy: str = "connectivity",
    offset_table: dict | None = None,
    compare_fragment_strategies: bool = False,
    log_console: bool = False,
    step_log: Path | None = None,
) -> PipelineReport:
    """Drive the phase state machine for validated ``settings``.

    ``engine`` provides ``run(conf, cwd)`` and ``compress(conf, cwd)``
    (normally a :class:`revesicle.adapters.namd.NamdEngine`). Workflow errors
    end up in the returned report; programming errors propagate.
    """
    if step_log is not None:
        setup_logging(step_log, also_console=log_console, suppress_initial_message=True)
    phases = plan_phases(settings.run_mode)
    report = PipelineReport(phases=phases)
    plan = build_run_plan(settings, phases, fragment_strategy)
    plan.log("pipeline")

    try:
        check_prerequisites(settings)
    except ReVesicleError as e:
        logging.error(f"[pipeline][abort] {e}")
        return report.fail(PipelineState.INIT.value, e)

    try:
        create_tree(settings)
        stage_files(settings)
        apply_cell_update(settings)
    except ReVesicleError as e:
        logging.error(f"[pipeline][abort] staging failed: {e}")
        return report.fail(PipelineState.STAGED.value, e)
    report.state = PipelineState.STAGED

    ctx = PhaseContext(
        settings=settings,
        engine=engine,
        classes=classes or ResidueClasses(),
        fragment_strategy=fragment_strategy,
        offset_table=offset_table,
        compare_fragment_strategies=compare_fragment_strategies,
        seed=settings.seed,
        log_console=log_console,
        step_log=step_log,
    )
    for name in phases:
        log_step_header("pipeline", f"-> {name}")
        result = PHASE_FUNCTIONS[name](ctx)
        report.results.append(result)
        logging.info(f"[pipeline] {result.describe()}")
        if not result.ok:
            return report.fail(name, result.error)

    if settings.run_mode is RunMode.STOP_AFTER_4:
        report.state = PipelineState.STOPPED
        logging.info("[pipeline] stopped after STEP-4 (run mode 1234)")
    else:
        report.state = PipelineState.DONE
        logging.info("[pipeline] all phases completed")
    return report
