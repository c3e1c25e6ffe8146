"""Counter-ion balancing after lipid removal.

Removing charged lipids leaves the system with a non-zero net charge. It is
restored by deleting ``|round(net_charge)|`` counter-ions, halves rounding
away from zero: anions when the net charge is ``<= 0``, cations otherwise. The
ions are drawn uniformly at random without replacement from the full
candidate list of that species.
"""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field

import numpy as np

from revesicle.domain.residues import ResidueClasses
from revesicle.domain.structure import Structure
from revesicle.errors import InsufficientIonsError

__all__ = ["ChargeState", "ChargeBalance", "compute_charge_state", "draw_ions", "balance_charge"]


@dataclass(frozen=True)
class ChargeState:
    lipid_charge: float
    counter_ion_charge_by_species: dict[str, float]
    net_charge: float

    @property
    def n_to_remove(self) -> int:
        # half away from zero: -2.5 removes 3 ions
        return int(math.floor(abs(self.net_charge) + 0.5))

    def species_to_remove(self, classes: ResidueClasses) -> str:
        return classes.anion if self.net_charge <= 0 else classes.cation


def compute_charge_state(structure: Structure, classes: ResidueClasses | None = None) -> ChargeState:
    """Sum charges of lipids/glycans, each ion species, and all non-water atoms."""
    classes = classes or ResidueClasses()
    charges = structure.charges
    lipid = classes.lipids_or_glycans()(structure)
    non_water = ~classes.waters()(structure)
    by_species = {}
    for species in (classes.anion, classes.cation):
        by_species[species] = float(charges[structure.resnames == species].sum())
    return ChargeState(
        lipid_charge=float(charges[lipid].sum()),
        counter_ion_charge_by_species=by_species,
        net_charge=float(charges[non_water].sum()),
    )


def draw_ions(candidates: list[int], n: int, species: str, seed: int | None = None) -> list[int]:
    """Draw ``n`` distinct entries of ``candidates`` (bounded to the list, seedable)."""
    if n > len(candidates):
        raise InsufficientIonsError(species, n, len(candidates))
    if n <= 0:
        return []
    return random.Random(seed).sample(list(candidates), n)


@dataclass(frozen=True)
class ChargeBalance:
    state: ChargeState
    species: str
    removed_atoms: tuple[int, ...] = ()
    removed_residues: frozenset[int] = field(default_factory=frozenset)
    post_net_charge: float | None = None

    @property
    def n_removed(self) -> int:
        return len(self.removed_atoms)

    @property
    def is_noop(self) -> bool:
        return not self.removed_residues

    def check_charge_lines(self) -> list[str]:
        s = self.state
        lines = [f"Tot lipid charge is {s.lipid_charge:.6f}"]
        for species, value in s.counter_ion_charge_by_species.items():
            lines.append(f"Tot {species} charge is {value:.6f}")
        lines.append(f"net charge is = {s.net_charge:.6f}")
        lines.append(f"Number of ions of {self.species} to be removed: {s.n_to_remove}")
        if self.is_noop:
            lines.append("No ions need to be removed.")
        return lines

    def selection_lines(self) -> list[str]:
        ids = " ".join(str(i) for i in self.removed_atoms)
        return [
            f"Removing these {self.species} ions: index {ids}",
            f"New charge after removing {self.n_removed} {self.species} is {self.post_net_charge:.6f}",
        ]


def balance_charge(
    structure: Structure,
    classes: ResidueClasses | None = None,
    seed: int | None = None,
) -> ChargeBalance:
    """Pick the counter-ions whose removal zeroes the net charge.

    Returns the realised :class:`ChargeState`, the chosen atom indices (source
    topology numbering) and their residue ids. ``n == 0`` yields an empty
    removal; the caller passes the structure through unchanged.

    Raises
    ------
    InsufficientIonsError
        When fewer candidate ions of the chosen species exist than needed.
    """
    classes = classes or ResidueClasses()
    state = compute_charge_state(structure, classes)
    species = state.species_to_remove(classes)
    n = state.n_to_remove
    logging.info(
        "[charge] net=%.4f lipid=%.4f -> remove %d %s",
        state.net_charge,
        state.lipid_charge,
        n,
        species,
    )
    if n == 0:
        return ChargeBalance(state=state, species=species, post_net_charge=state.net_charge)
    candidates = [int(i) for i in np.flatnonzero(structure.resnames == species)]
    picked = sorted(draw_ions(candidates, n, species, seed=seed))
    picked_mask = np.zeros(structure.n_atoms, dtype=bool)
    picked_mask[picked] = True
    post = float(structure.charges[~picked_mask & ~classes.waters()(structure)].sum())
    return ChargeBalance(
        state=state,
        species=species,
        removed_atoms=tuple(int(structure.indices[i]) for i in picked),
        removed_residues=structure.residues_of(picked_mask),
        post_net_charge=post,
    )
