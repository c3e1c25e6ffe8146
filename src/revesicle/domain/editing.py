"""Split a structure into removed and retained parts by residue id."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from revesicle.domain.structure import Structure

__all__ = ["EditResult", "split_structure"]


@dataclass(frozen=True)
class EditResult:
    removed: Structure
    retained: Structure
    removed_residues: tuple[int, ...]

    @property
    def n_removed_residues(self) -> int:
        return len(self.removed_residues)


def split_structure(structure: Structure, exclude: Iterable[int]) -> EditResult:
    """Return ``removed`` (residues in ``exclude``) and ``retained`` (the rest).

    The input is not modified. Residue ids in ``exclude`` that do not occur
    in the structure are ignored; ``removed_residues`` is sorted.
    """
    present = structure.residue_ids()
    wanted = frozenset(int(r) for r in exclude) & present
    mask = structure.residue_mask(wanted)
    return EditResult(
        removed=structure.subset(mask),
        retained=structure.subset(~mask),
        removed_residues=tuple(sorted(wanted)),
    )
