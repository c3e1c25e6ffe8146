"""Run-plan model: what a pipeline invocation will do, logged as a grouped table.

Built once after settings validation so the log states which phases run and
which optional sub-steps are gated on or off, before any side effect.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List
import logging
import os


@dataclass(slots=True)
class RunPlanModel:
    run_mode: str  # 'all' | '1234' | '5'
    phases: List[str]
    remove_lipids: bool
    strip_trajectories: bool
    fragment_strategy: str
    step1a_basename: str
    offsets: List[tuple[str, float]] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def kv_pairs(self) -> list[tuple[str, str]]:
        base = [
            ("run_mode", self.run_mode),
            ("phases", ' -> '.join(self.phases)),
            ("remove_lipids", str(self.remove_lipids)),
            ("strip_trajectories", str(self.strip_trajectories)),
            ("fragments.strategy", self.fragment_strategy),
            ("step1a_basename", self.step1a_basename),
        ]
        return base + [(k, str(v)) for k, v in self.offsets]

    def log(self, step: str) -> None:
        if os.environ.get('REVESICLE_LOG_TABLE', '1') not in {'0', 'false', 'False'}:
            sections = [
                ('plan', self.kv_pairs()),
                ('notes', [(f'note[{i}]', n) for i, n in enumerate(self.notes)]),
                ('warnings', [(f'warning[{i}]', w) for i, w in enumerate(self.warnings)]),
            ]
            rows = [r for _, sec in sections for r in sec]
            k_width = min(max(len(k) for k, _ in rows), 48)
            logging.info(f"[{step}][plan] ── run plan ──")
            for title, sec in sections:
                if not sec:
                    continue
                logging.info(f"[{step}][plan] ─ {title} ─")
                for k, v in sec:
                    logging.info(f"[{step}][plan] {k.ljust(k_width)} : {v}")
        for w in self.warnings:
            logging.warning(f"[{step}][warn] {w}")


def build_run_plan(settings, phases: list[str], fragment_strategy: str) -> RunPlanModel:
    """Derive the plan from validated ``PipelineSettings`` and the planned phase names."""
    notes: list[str] = []
    warnings: list[str] = []
    offsets = [("d1", settings.d1), ("d2", settings.d2)]
    if settings.remove_lipids:
        offsets += [("d3", settings.d3), ("d4", settings.d4)]
        notes.append('lipid and glycolipid shell removal followed by counter-ion balancing in phase 1A')
    if settings.run_mode.value == '1234':
        notes.append('stopping after phase 4; STEP-5 is not created')
    if settings.run_mode.value == '5':
        notes.append('phase 5 only: reusing STEP-4 artifacts of a prior run')
    if fragment_strategy == 'offset-table':
        warnings.append('fragment expansion uses the offset table; results may differ from bonded fragments')
    if settings.d1 >= settings.d2:
        warnings.append(f'd1={settings.d1} >= d2={settings.d2}: the water shell is empty')
    if settings.remove_lipids and settings.d3 >= settings.d4:
        warnings.append(f'd3={settings.d3} >= d4={settings.d4}: the lipid shell is empty')
    return RunPlanModel(
        run_mode=settings.run_mode.value,
        phases=list(phases),
        remove_lipids=settings.remove_lipids,
        strip_trajectories=settings.strip_trajectories,
        fragment_strategy=fragment_strategy,
        step1a_basename=settings.step1a_basename or '',
        offsets=offsets,
        notes=notes,
        warnings=warnings,
    )


__all__ = ["RunPlanModel", "build_run_plan"]
