"""Spherical shell classification.

A shell is the annulus between ``radius - d_outer`` and ``radius - d_inner``
around the estimated vesicle centre. Residues are classified with an explicit
:class:`MembershipRule` so that every caller states whether a single head atom,
any atom, or all atoms of a residue must lie in the shell.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import numpy as np

from revesicle.domain.geometry import GeometryEstimate
from revesicle.domain.selection import InShell, Selection
from revesicle.domain.structure import Structure
from revesicle.errors import DegenerateShellError, ValidationError

__all__ = [
    "MembershipRule",
    "ShellSpec",
    "ShellSplit",
    "shell_selection",
    "classify_residues",
    "split_shell",
]


class MembershipRule(str, enum.Enum):
    HEAD = "head"
    ANY_ATOM = "any"
    ALL_ATOMS = "all"


@dataclass(frozen=True)
class ShellSpec:
    d_inner: float
    d_outer: float

    def __post_init__(self):
        if self.d_inner < 0 or self.d_outer < 0:
            raise ValidationError(
                f"shell offsets must be >= 0 (got d_inner={self.d_inner}, d_outer={self.d_outer})"
            )

    @property
    def d_mid(self) -> float:
        return (self.d_outer - self.d_inner) / 2.0 + self.d_inner

    def radii(self, geometry: GeometryEstimate) -> tuple[float, float]:
        """Return ``(r_inner, r_outer)``; raise when either is not positive."""
        r_inner = geometry.radius - self.d_inner
        r_outer = geometry.radius - self.d_outer
        if r_inner <= 0 or r_outer <= 0:
            raise DegenerateShellError(
                f"derived shell radius <= 0 (radius={geometry.radius:.3f}, "
                f"d_inner={self.d_inner}, d_outer={self.d_outer} -> "
                f"r_inner={r_inner:.3f}, r_outer={r_outer:.3f}); offsets exceed the vesicle radius",
                radius=geometry.radius,
                offsets=(self.d_inner, self.d_outer),
            )
        return r_inner, r_outer

    def is_empty_band(self) -> bool:
        return self.d_inner >= self.d_outer


def shell_selection(geometry: GeometryEstimate, spec: ShellSpec) -> InShell:
    r_inner, r_outer = spec.radii(geometry)
    if spec.is_empty_band():
        logging.warning(
            "[shell] d_inner=%s >= d_outer=%s: shell (%.3f, %.3f) is empty",
            spec.d_inner,
            spec.d_outer,
            r_outer,
            r_inner,
        )
    return InShell(center=geometry.center, r_inner=r_inner, r_outer=r_outer)


def _residues_by_rule(structure: Structure, target: np.ndarray, in_shell: np.ndarray, rule: MembershipRule) -> frozenset[int]:
    if rule in (MembershipRule.HEAD, MembershipRule.ANY_ATOM):
        # Identical mask form; HEAD callers pass an atom-level head predicate,
        # ANY_ATOM callers a residue-level one.
        return structure.residues_of(target & in_shell)
    candidates = structure.residues_of(target)
    if not candidates:
        return frozenset()
    outside = structure.residues_of(target & ~in_shell)
    return frozenset(candidates - outside)


def classify_residues(
    structure: Structure,
    geometry: GeometryEstimate,
    spec: ShellSpec,
    target: Selection,
    rule: MembershipRule = MembershipRule.ANY_ATOM,
) -> frozenset[int]:
    """Residue ids of ``target`` residues that lie in the shell under ``rule``.

    A pure function of its inputs: repeated calls give identical sets.
    """
    in_shell = shell_selection(geometry, spec)(structure)
    return _residues_by_rule(structure, target(structure), in_shell, MembershipRule(rule))


@dataclass(frozen=True)
class ShellSplit:
    total: frozenset[int]
    inner: frozenset[int]
    outer: frozenset[int]
    d_mid: float
    r_mid: float

    def counts(self) -> tuple[int, int, int]:
        return len(self.total), len(self.inner), len(self.outer)

    def summary_line(self) -> str:
        return "%d %d %d" % self.counts()


def split_shell(
    structure: Structure,
    geometry: GeometryEstimate,
    spec: ShellSpec,
    residues: frozenset[int],
) -> ShellSplit:
    """Split already-classified shell residues into inner/outer halves at ``d_mid``.

    A residue counts as inner when any of its atoms is closer than
    ``radius - d_mid`` and as outer when any atom is farther; a residue
    straddling the midpoint is counted in both. Reporting only.
    """
    spec.radii(geometry)
    r_mid = geometry.radius - spec.d_mid
    members = structure.residue_mask(residues)
    delta = structure.positions - np.asarray(geometry.center, dtype=float)
    d2 = np.einsum("ij,ij->i", delta, delta)
    inner = structure.residues_of(members & (d2 < r_mid * r_mid))
    outer = structure.residues_of(members & (d2 > r_mid * r_mid))
    return ShellSplit(
        total=frozenset(residues),
        inner=inner,
        outer=outer,
        d_mid=spec.d_mid,
        r_mid=r_mid,
    )
