"""Atom index lists consumed by the engine's restraint/compression scripts.

One 0-based atom index per line, in topology order.
"""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from revesicle.domain.residues import ResidueClasses
from revesicle.domain.selection import Selection
from revesicle.domain.structure import Structure

__all__ = ["write_index_file", "water_selection", "water_lipid_heads_selection", "lipid_heads_selection"]


def water_selection(classes: ResidueClasses) -> Selection:
    return classes.solvent()


def water_lipid_heads_selection(classes: ResidueClasses) -> Selection:
    return classes.solvent() | classes.lipid_head_index_atoms()


def lipid_heads_selection(classes: ResidueClasses) -> Selection:
    return classes.lipid_head_index_atoms()


def write_index_file(structure: Structure, selection: Selection, path) -> Path:
    """Write the output-structure positions of atoms matched by ``selection``."""
    path = Path(path)
    picked = np.flatnonzero(selection(structure))
    path.write_text("".join(f"{i}\n" for i in picked))
    logging.info("[index] %s: %d atoms", path.name, len(picked))
    return path
