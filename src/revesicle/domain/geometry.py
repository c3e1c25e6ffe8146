"""Coarse spherical geometry estimate of a vesicle.

The centre is the unweighted centroid of the reference atoms and the radius
is half the mean of the three axis-aligned bounding-box extents. This is not
a fit; it tolerates non-perfect sphericity and is recomputed on every phase.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from revesicle.domain.selection import Selection
from revesicle.domain.structure import Structure
from revesicle.errors import EmptySelectionError

__all__ = ["GeometryEstimate", "estimate_geometry"]


@dataclass(frozen=True)
class GeometryEstimate:
    center: tuple[float, float, float]
    radius: float
    extents: tuple[float, float, float] = (0.0, 0.0, 0.0)
    n_reference_atoms: int = 0

    @property
    def diameter(self) -> float:
        return 2.0 * self.radius

    def log_lines(self) -> list[str]:
        cx, cy, cz = self.center
        ex, ey, ez = self.extents
        return [
            f"center = ({cx:.3f}, {cy:.3f}, {cz:.3f})",
            f"diam (x y z) = {ex:.3f} {ey:.3f} {ez:.3f}",
            f"diam_avg = {self.diameter:.3f}",
            f"radius = {self.radius:.3f} (from {self.n_reference_atoms} atoms)",
        ]


def estimate_geometry(structure: Structure, reference: Selection) -> GeometryEstimate:
    """Estimate centre and radius from the atoms matched by ``reference``.

    Raises
    ------
    EmptySelectionError
        If ``reference`` matches no atom; usually the residue-name set does
        not fit the topology.
    """
    mask = reference(structure)
    if not mask.any():
        raise EmptySelectionError(
            f"reference selection {reference!r} matched no atoms; check lipid residue names against the topology"
        )
    xyz = structure.positions[mask]
    center = xyz.mean(axis=0)
    extents = xyz.max(axis=0) - xyz.min(axis=0)
    radius = float(extents.mean() / 2.0)
    return GeometryEstimate(
        center=tuple(float(c) for c in center),
        radius=radius,
        extents=tuple(float(e) for e in extents),
        n_reference_atoms=int(mask.sum()),
    )
