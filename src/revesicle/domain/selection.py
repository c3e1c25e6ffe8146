"""Typed atom-selection predicates.

Selections are small frozen dataclasses evaluated against a
:class:`~revesicle.domain.structure.Structure`; calling one returns a boolean
atom mask. They compose with ``&``, ``|`` and ``~``::

    heads = AtomNameIn({"P"}) | (AtomNameIn({"O3"}) & ResnameIn({"CHL1"}))
    mask = heads(structure)

:class:`InShell` implements the squared-distance range test used by the
shell classifier, and :class:`SameResidue` widens a selection to whole
residues.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from revesicle.domain.structure import Structure

__all__ = [
    "Selection",
    "Everything",
    "Nothing",
    "ResnameIn",
    "AtomNameIn",
    "SegidPrefix",
    "InShell",
    "SameResidue",
    "And",
    "Or",
    "Not",
    "names",
]


def names(values: Iterable[str]) -> frozenset[str]:
    return frozenset(str(v).strip() for v in values if str(v).strip())


def _member_mask(column: np.ndarray, wanted: frozenset[str]) -> np.ndarray:
    return np.fromiter((v in wanted for v in column), dtype=bool, count=len(column))


class Selection:
    """Base class; subclasses implement :meth:`mask`."""

    def mask(self, structure: Structure) -> np.ndarray:  # pragma: no cover - abstract
        raise NotImplementedError

    def __call__(self, structure: Structure) -> np.ndarray:
        return self.mask(structure)

    def __and__(self, other: "Selection") -> "Selection":
        return And(self, other)

    def __or__(self, other: "Selection") -> "Selection":
        return Or(self, other)

    def __invert__(self) -> "Selection":
        return Not(self)


@dataclass(frozen=True)
class Everything(Selection):
    def mask(self, structure):
        return np.ones(structure.n_atoms, dtype=bool)


@dataclass(frozen=True)
class Nothing(Selection):
    def mask(self, structure):
        return np.zeros(structure.n_atoms, dtype=bool)


@dataclass(frozen=True)
class ResnameIn(Selection):
    resnames: frozenset[str]

    def __init__(self, resnames: Iterable[str]):
        object.__setattr__(self, "resnames", names(resnames))

    def mask(self, structure):
        return _member_mask(structure.resnames, self.resnames)


@dataclass(frozen=True)
class AtomNameIn(Selection):
    atom_names: frozenset[str]

    def __init__(self, atom_names: Iterable[str]):
        object.__setattr__(self, "atom_names", names(atom_names))

    def mask(self, structure):
        return _member_mask(structure.names, self.atom_names)


@dataclass(frozen=True)
class SegidPrefix(Selection):
    prefix: str

    def mask(self, structure):
        return np.fromiter(
            (str(s).startswith(self.prefix) for s in structure.segids),
            dtype=bool,
            count=structure.n_atoms,
        )


@dataclass(frozen=True)
class InShell(Selection):
    """Atoms with ``r_outer**2 < |x - center|**2 < r_inner**2`` (strict)."""

    center: tuple[float, float, float]
    r_inner: float
    r_outer: float

    def squared_distances(self, structure: Structure) -> np.ndarray:
        delta = structure.positions - np.asarray(self.center, dtype=float)
        return np.einsum("ij,ij->i", delta, delta)

    def mask(self, structure):
        d2 = self.squared_distances(structure)
        return (d2 > self.r_outer * self.r_outer) & (d2 < self.r_inner * self.r_inner)


@dataclass(frozen=True)
class SameResidue(Selection):
    """Every atom of any residue containing at least one atom of ``inner``."""

    inner: Selection

    def mask(self, structure):
        hit = self.inner(structure)
        return structure.residue_mask(structure.residues_of(hit))


@dataclass(frozen=True)
class And(Selection):
    left: Selection
    right: Selection

    def mask(self, structure):
        return self.left(structure) & self.right(structure)


@dataclass(frozen=True)
class Or(Selection):
    left: Selection
    right: Selection

    def mask(self, structure):
        return self.left(structure) | self.right(structure)


@dataclass(frozen=True)
class Not(Selection):
    inner: Selection

    def mask(self, structure):
        return ~self.inner(structure)
