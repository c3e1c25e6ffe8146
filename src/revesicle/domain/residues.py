"""Residue classes (lipid, glycan, water, ions) and the selections built on them.

Defaults follow the CHARMM36 naming used by CHARMM-GUI vesicle builds. All
names can be overridden via the ``[selection]`` config section.
"""
from __future__ import annotations

from dataclasses import dataclass

from revesicle.domain.selection import AtomNameIn, ResnameIn, Selection, names

__all__ = [
    "LIPID_RESNAMES",
    "GLYCAN_RESNAMES",
    "WATER_RESNAMES",
    "ResidueClasses",
]

LIPID_RESNAMES = (
    "DLPE DMPC DPPC GPC LPPC PALM PC PGCL POPC POPE POPS POPI POPI2A POPI24 "
    "PI2A PI24 PI25 CHL1 PSM LSM NSM CER1 TLCL TLCL2 BMGP SOPE SOPS SAPC SAPE "
    "SAPS SLPE SLPS PLPI DHPC C160 C240 PLA2 PPEE"
).split()

GLYCAN_RESNAMES = (
    "NAG BGLN BGLCNA FUC AFUC BFUC AGAL BGAL MAN AMAN BMA BMAN BCNA ANE5 "
    "ANE5AC BNE5AC AGAN AGALNA AGALNAC BGLC BGAN"
).split()

# TIP3 is the removal target; the others only matter for charge sums and stripping.
WATER_RESNAMES = ["TIP3", "TIP3P", "SPC", "WAT", "HOH", "SOL"]


@dataclass(frozen=True)
class ResidueClasses:
    lipid: frozenset[str] = frozenset(LIPID_RESNAMES)
    glycan: frozenset[str] = frozenset(GLYCAN_RESNAMES)
    water: frozenset[str] = frozenset(WATER_RESNAMES)
    removal_water: frozenset[str] = frozenset({"TIP3"})
    cation: str = "SOD"
    anion: str = "CLA"
    phosphate_atom: str = "P"
    sterol_resname: str = "CHL1"
    sterol_head_atom: str = "O3"
    glycolipid_resnames: frozenset[str] = frozenset({"C160", "C240"})
    glycolipid_head_atom: str = "C1S"

    @classmethod
    def from_config(cls, section) -> "ResidueClasses":
        """Build from a ``SelectionSection``-like object (missing attributes keep defaults)."""
        base = cls()
        kwargs = {}
        for attr in ("lipid", "glycan", "water", "removal_water", "glycolipid_resnames"):
            value = getattr(section, attr, None)
            if value:
                kwargs[attr] = names(value)
        for attr in (
            "cation",
            "anion",
            "phosphate_atom",
            "sterol_resname",
            "sterol_head_atom",
            "glycolipid_head_atom",
        ):
            value = getattr(section, attr, None)
            if value:
                kwargs[attr] = str(value).strip()
        return cls(**{**base.__dict__, **kwargs})

    def lipids(self) -> Selection:
        return ResnameIn(self.lipid)

    def lipids_or_glycans(self) -> Selection:
        return ResnameIn(self.lipid | self.glycan)

    def waters(self) -> Selection:
        return ResnameIn(self.water)

    def removable_waters(self) -> Selection:
        return ResnameIn(self.removal_water)

    def ions(self) -> Selection:
        return ResnameIn({self.cation, self.anion})

    def solvent(self) -> Selection:
        """Water or counter-ions (the 'water or name CLA SOD' index set)."""
        return self.waters() | ResnameIn({self.cation, self.anion})

    def lipid_heads(self) -> Selection:
        """Phosphate atoms of any residue, or the sterol head oxygen."""
        return AtomNameIn({self.phosphate_atom}) | (
            AtomNameIn({self.sterol_head_atom}) & ResnameIn({self.sterol_resname})
        )

    def glycolipid_heads(self) -> Selection:
        return AtomNameIn({self.glycolipid_head_atom}) & ResnameIn(self.glycolipid_resnames)

    def lipid_head_index_atoms(self) -> Selection:
        """Lipid atoms named like a phosphate or sterol head (index files)."""
        return self.lipids() & AtomNameIn({self.phosphate_atom, self.sterol_head_atom})
