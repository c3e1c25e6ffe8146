"""Structure snapshot IO.

Reading uses MDAnalysis (PSF topology plus a DCD, NAMD binary ``.coor`` or
PDB coordinate file). Writing produces the pair ``<name>.psf`` and
``<name>.coor``: the topology is cut from the source PSF with ParmEd so that
parameters, bonds and segment names survive unchanged, and the coordinates
are written with MDAnalysis' NAMD binary writer.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path

import MDAnalysis as mda
import numpy as np
import parmed as pmd
from MDAnalysis.coordinates.memory import MemoryReader
from parmed.exceptions import ParmedError

from revesicle.domain.structure import Structure
from revesicle.errors import MissingArtifactError, ReVesicleError, TopologyError

__all__ = ["load_structure", "write_snapshot", "snapshot_paths", "strip_topology", "library_errors"]

# What MDAnalysis, ParmEd and mdtraj raise for unreadable or malformed files
_LIBRARY_ERRORS = (OSError, ValueError, EOFError, IndexError, ParmedError)


@contextmanager
def library_errors(error_cls, what: str):
    """Re-raise file errors of the MD libraries as ``error_cls`` prefixed with ``what``."""
    try:
        yield
    except ReVesicleError:
        raise
    except _LIBRARY_ERRORS as e:
        raise error_cls(f"{what}: {type(e).__name__}: {e}") from e


def _require(path: Path, what: str) -> Path:
    path = Path(path)
    if not path.is_file():
        raise MissingArtifactError(f"{what} not found: {path}")
    return path


def load_structure(topology, coordinates, frame: int = -1) -> Structure:
    """Load ``topology`` + one frame of ``coordinates`` (default: last frame).

    Residue ids are MDAnalysis residue indices (unique per residue even when
    segments repeat ``resid`` values). Fragment ids come from the bond graph.
    """
    top = _require(topology, "topology")
    crd = _require(coordinates, "coordinates")
    with library_errors(MissingArtifactError, f"cannot read {top} with {crd}"):
        u = mda.Universe(str(top), str(crd))
        n_frames = len(u.trajectory)
        if n_frames == 0:
            raise MissingArtifactError(f"coordinate file holds no frames: {crd}")
        u.trajectory[frame]
    atoms = u.atoms
    bonds = None
    fragments = None
    if hasattr(u, "bonds") and len(u.bonds):
        bonds = np.asarray(u.bonds.indices, dtype=np.int64)
        fragments = np.asarray(atoms.fragindices, dtype=np.int64)
    charges = atoms.charges if hasattr(atoms, "charges") else np.zeros(len(atoms))
    logging.debug(
        "[io] loaded %s + %s (frame %d/%d, %d atoms, %d residues)",
        top.name,
        crd.name,
        u.trajectory.frame + 1,
        n_frames,
        len(atoms),
        len(u.residues),
    )
    return Structure.from_columns(
        names=atoms.names,
        resnames=atoms.resnames,
        resids=atoms.resindices,
        segids=atoms.segids,
        positions=atoms.positions,
        charges=charges,
        indices=atoms.indices,
        fragments=fragments,
        bonds=bonds,
        topology_path=top,
    )


def snapshot_paths(directory, name: str) -> tuple[Path, Path]:
    directory = Path(directory)
    return directory / f"{name}.psf", directory / f"{name}.coor"


def _load_psf(source):
    path = _require(source, "topology")
    with library_errors(TopologyError, f"cannot parse {path}"):
        return pmd.load_file(str(path))


def _save_subset(psf, keep: np.ndarray, dest: Path, source) -> Path:
    keep = np.asarray(keep, dtype=bool)
    if len(keep) != len(psf.atoms):
        raise TopologyError(f"keep mask has {len(keep)} entries but {source} holds {len(psf.atoms)} atoms")
    dest = Path(dest)
    with library_errors(TopologyError, f"cannot write {dest} from {source}"):
        if not keep.all():
            psf.strip([not k for k in keep])
        psf.save(str(dest), format="psf", overwrite=True)
    return dest


def strip_topology(source, keep: np.ndarray, dest) -> Path:
    """Write the subset of PSF ``source`` flagged in the boolean ``keep`` mask to ``dest``."""
    psf = _load_psf(source)
    return _save_subset(psf, keep, Path(dest), source)


def _write_coor(psf_path: Path, positions: np.ndarray, coor_path: Path) -> None:
    frames = np.asarray(positions, dtype=np.float32).reshape(1, -1, 3)
    u = mda.Universe(str(psf_path), frames, format=MemoryReader)
    u.atoms.write(str(coor_path))


def write_snapshot(structure: Structure, directory, name: str) -> tuple[Path, Path]:
    """Persist ``structure`` as ``<directory>/<name>.psf`` and ``<name>.coor``.

    The structure must carry ``topology_path`` (the PSF it was loaded from);
    its ``indices`` column selects the atoms to keep. An empty structure
    writes nothing (a PSF needs at least one residue) and stale files of the
    same name are removed.
    """
    if structure.topology_path is None:
        raise TopologyError("structure has no source topology; cannot write a PSF subset")
    psf_path, coor_path = snapshot_paths(directory, name)
    psf_path.parent.mkdir(parents=True, exist_ok=True)
    if structure.n_atoms == 0:
        for stale in (psf_path, coor_path):
            stale.unlink(missing_ok=True)
        logging.warning("[io] %s is empty; no snapshot written", name)
        return psf_path, coor_path
    source = structure.topology_path
    psf = _load_psf(source)
    keep = np.zeros(len(psf.atoms), dtype=bool)
    keep[structure.indices] = True
    _save_subset(psf, keep, psf_path, source)
    # ParmEd keeps source order; positions are reordered to match.
    order = np.argsort(structure.indices, kind="stable")
    with library_errors(MissingArtifactError, f"cannot write {coor_path}"):
        _write_coor(psf_path, structure.positions[order], coor_path)
    logging.info("[io] wrote %s (%d atoms) and %s", psf_path.name, structure.n_atoms, coor_path.name)
    return psf_path, coor_path
