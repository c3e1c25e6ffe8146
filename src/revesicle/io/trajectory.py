"""Trajectory stripping: drop solvent and counter-ions from a phase trajectory.

The stripped topology is written with ParmEd, the stripped DCD with mdtraj
(all frames, only the kept atoms are read).
"""
from __future__ import annotations

import logging
from pathlib import Path

import mdtraj as md
import numpy as np
import parmed as pmd

from revesicle.domain.residues import ResidueClasses
from revesicle.errors import EmptySelectionError, MissingArtifactError, TopologyError
from revesicle.io.structure import library_errors, strip_topology

__all__ = ["solute_mask", "strip_trajectory"]


def solute_mask(psf_path, classes: ResidueClasses | None = None) -> np.ndarray:
    """Boolean mask over the PSF atoms: True for atoms that are neither water nor ions."""
    classes = classes or ResidueClasses()
    solvent = set(classes.water) | {classes.cation, classes.anion}
    with library_errors(TopologyError, f"cannot parse {psf_path}"):
        psf = pmd.load_file(str(psf_path))
    return np.fromiter(
        (atom.residue.name not in solvent for atom in psf.atoms),
        dtype=bool,
        count=len(psf.atoms),
    )


def strip_trajectory(
    psf_path,
    dcd_path,
    out_dir,
    name: str,
    classes: ResidueClasses | None = None,
) -> tuple[Path, Path]:
    """Write ``<out_dir>/<name>_stripped.psf`` and ``<name>_stripped.dcd``."""
    psf_path = Path(psf_path)
    dcd_path = Path(dcd_path)
    for p, what in ((psf_path, "topology"), (dcd_path, "trajectory")):
        if not p.is_file():
            raise MissingArtifactError(f"{what} for stripping not found: {p}")
    keep = solute_mask(psf_path, classes)
    if not keep.any():
        raise EmptySelectionError(f"no non-solvent atoms in {psf_path}; nothing to keep")
    out_dir = Path(out_dir)
    out_psf = out_dir / f"{name}_stripped.psf"
    out_dcd = out_dir / f"{name}_stripped.dcd"
    strip_topology(psf_path, keep, out_psf)
    with library_errors(MissingArtifactError, f"cannot strip {dcd_path}"):
        traj = md.load_dcd(str(dcd_path), top=str(psf_path), atom_indices=np.flatnonzero(keep))
        traj.save_dcd(str(out_dcd))
    logging.info(
        "[strip] %s: kept %d/%d atoms over %d frame(s) -> %s, %s",
        name,
        int(keep.sum()),
        len(keep),
        traj.n_frames,
        out_psf.name,
        out_dcd.name,
    )
    return out_psf, out_dcd
