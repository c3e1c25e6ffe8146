"""In-memory molecular structure snapshot.

A :class:`Structure` is a column store over atoms (numpy arrays of equal
length). It is produced by :mod:`revesicle.io.structure` from a topology plus
one coordinate frame, consumed by one classification/edit step and never
mutated: editing returns new instances via :meth:`Structure.subset`.

The ``indices`` column holds each atom's position in the source topology so
that a subset can be written back through the source topology file.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

import numpy as np

__all__ = ["Structure"]


def _as_str_array(values) -> np.ndarray:
    return np.asarray([str(v) for v in values], dtype=object)


@dataclass(frozen=True, eq=False)
class Structure:
    names: np.ndarray
    resnames: np.ndarray
    resids: np.ndarray
    segids: np.ndarray
    positions: np.ndarray
    charges: np.ndarray
    indices: np.ndarray
    fragments: np.ndarray | None = None
    bonds: np.ndarray | None = None
    topology_path: Path | None = None
    _fragment_cache: dict = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self):
        n = len(self.names)
        for col in ("resnames", "resids", "segids", "charges", "indices"):
            if len(getattr(self, col)) != n:
                raise ValueError(f"column '{col}' has {len(getattr(self, col))} entries, expected {n}")
        if self.positions.shape != (n, 3):
            raise ValueError(f"positions must have shape ({n}, 3), got {self.positions.shape}")
        if self.fragments is not None and len(self.fragments) != n:
            raise ValueError("fragments column length does not match atom count")

    @classmethod
    def from_columns(
        cls,
        *,
        names: Iterable[str],
        resnames: Iterable[str],
        resids: Iterable[int],
        positions,
        charges: Iterable[float] | None = None,
        segids: Iterable[str] | None = None,
        indices: Iterable[int] | None = None,
        fragments: Iterable[int] | None = None,
        bonds=None,
        topology_path: str | Path | None = None,
    ) -> "Structure":
        """Build a structure from plain Python sequences (loader and test entry point)."""
        names_arr = _as_str_array(names)
        n = len(names_arr)
        pos = np.asarray(positions, dtype=float).reshape(n, 3)
        return cls(
            names=names_arr,
            resnames=_as_str_array(resnames),
            resids=np.asarray(list(resids), dtype=np.int64),
            segids=_as_str_array(segids) if segids is not None else np.full(n, "", dtype=object),
            positions=pos,
            charges=np.asarray(list(charges), dtype=float) if charges is not None else np.zeros(n),
            indices=np.asarray(list(indices), dtype=np.int64) if indices is not None else np.arange(n, dtype=np.int64),
            fragments=np.asarray(list(fragments), dtype=np.int64) if fragments is not None else None,
            bonds=np.asarray(bonds, dtype=np.int64).reshape(-1, 2) if bonds is not None else None,
            topology_path=Path(topology_path) if topology_path is not None else None,
        )

    @property
    def n_atoms(self) -> int:
        return len(self.names)

    def __len__(self) -> int:
        return self.n_atoms

    def residue_ids(self) -> frozenset[int]:
        return frozenset(int(r) for r in np.unique(self.resids))

    def residue_mask(self, residue_ids: Iterable[int]) -> np.ndarray:
        """Boolean atom mask selecting every atom of the given residues."""
        wanted = np.fromiter((int(r) for r in residue_ids), dtype=np.int64)
        return np.isin(self.resids, wanted)

    def residues_of(self, mask: np.ndarray) -> frozenset[int]:
        """Residue ids of the atoms flagged in ``mask``."""
        return frozenset(int(r) for r in np.unique(self.resids[np.asarray(mask, dtype=bool)]))

    def residue_order(self) -> list[int]:
        """Residue ids in order of first appearance (topology order)."""
        _, first = np.unique(self.resids, return_index=True)
        return [int(self.resids[i]) for i in sorted(first)]

    def subset(self, mask: np.ndarray) -> "Structure":
        """Return a new structure holding only the atoms flagged in ``mask``.

        Bonds are kept when both partners survive and are renumbered to the
        subset's local positions; source ``indices`` are preserved.
        """
        mask = np.asarray(mask, dtype=bool)
        bonds = None
        if self.bonds is not None:
            local = np.full(self.n_atoms, -1, dtype=np.int64)
            local[mask] = np.arange(int(mask.sum()))
            if len(self.bonds):
                mapped = local[self.bonds]
                bonds = mapped[(mapped >= 0).all(axis=1)]
            else:
                bonds = self.bonds.copy()
        return Structure(
            names=self.names[mask],
            resnames=self.resnames[mask],
            resids=self.resids[mask],
            segids=self.segids[mask],
            positions=self.positions[mask],
            charges=self.charges[mask],
            indices=self.indices[mask],
            fragments=self.fragments[mask] if self.fragments is not None else None,
            bonds=bonds,
            topology_path=self.topology_path,
        )

    def fragment_ids(self) -> np.ndarray | None:
        """Per-atom fragment ids, or ``None`` when no connectivity is known.

        Explicit ``fragments`` (from the loader) win; otherwise fragments are
        the connected components of the bond graph, computed once.
        """
        if self.fragments is not None:
            return self.fragments
        if self.bonds is None:
            return None
        if "ids" not in self._fragment_cache:
            from revesicle.domain.fragments import connected_fragments

            self._fragment_cache["ids"] = connected_fragments(self.n_atoms, self.bonds)
        return self._fragment_cache["ids"]
