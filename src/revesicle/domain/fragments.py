"""Fragment expansion for multi-residue lipids.

Some lipid species (glycolipids) are modelled as several covalently linked
residues. When a marker atom flags one of them for removal, the whole bonded
component must go so no orphan fragments remain.

Two strategies are supported and selected explicitly:

``connectivity``
    Every residue sharing a bonded fragment with a head residue. Fragment ids
    come from the loader or from connected components of the bond graph.
``offset-table``
    A residue whose name or segment id starts with a table key is expanded by
    the ``n`` consecutive residue ids that follow it. Kept for topologies
    without bond information; it can disagree with connectivity, see
    :func:`compare_strategies`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

import networkx as nx
import numpy as np

from revesicle.domain.structure import Structure
from revesicle.errors import TopologyError, ValidationError

__all__ = [
    "CONNECTIVITY",
    "OFFSET_TABLE",
    "STRATEGIES",
    "DEFAULT_OFFSET_TABLE",
    "connected_fragments",
    "expand_by_connectivity",
    "expand_by_offset_table",
    "expand_fragments",
    "compare_strategies",
    "StrategyComparison",
]

CONNECTIVITY = "connectivity"
OFFSET_TABLE = "offset-table"
STRATEGIES = (CONNECTIVITY, OFFSET_TABLE)

# Glycolipid chains of the CHARMM-GUI builds: head residue plus N sugar residues.
DEFAULT_OFFSET_TABLE: dict[str, int] = {"C160": 3, "C240": 3}


def connected_fragments(n_atoms: int, bonds) -> np.ndarray:
    """Label each atom with the index of its connected component in the bond graph.

    Labels follow the order of each component's lowest atom index, so they
    are stable for a given topology.
    """
    graph = nx.Graph()
    graph.add_nodes_from(range(n_atoms))
    if bonds is not None and len(bonds):
        graph.add_edges_from((int(a), int(b)) for a, b in np.asarray(bonds).reshape(-1, 2))
    labels = np.empty(n_atoms, dtype=np.int64)
    components = sorted(nx.connected_components(graph), key=min)
    for label, component in enumerate(components):
        labels[list(component)] = label
    return labels


def expand_by_connectivity(structure: Structure, heads: frozenset[int]) -> frozenset[int]:
    if not heads:
        return frozenset()
    fragments = structure.fragment_ids()
    if fragments is None:
        raise TopologyError(
            "fragment expansion needs bond or fragment information; the topology has neither "
            "(use the offset-table strategy for such inputs)"
        )
    hit = np.unique(fragments[structure.residue_mask(heads)])
    expanded = structure.residues_of(np.isin(fragments, hit))
    return frozenset(heads) | expanded


def _table_key(structure: Structure, first_atom: int, table: Mapping[str, int]) -> str | None:
    resname = str(structure.resnames[first_atom])
    segid = str(structure.segids[first_atom])
    for prefix in table:
        if resname.startswith(prefix) or segid.startswith(prefix):
            return prefix
    return None


def expand_by_offset_table(
    structure: Structure,
    heads: frozenset[int],
    table: Mapping[str, int] | None = None,
) -> frozenset[int]:
    table = DEFAULT_OFFSET_TABLE if table is None else dict(table)
    for prefix, n in table.items():
        if int(n) < 0:
            raise ValidationError(f"offset table entry {prefix!r} must be >= 0, got {n}")
    order = structure.residue_order()
    position = {rid: i for i, rid in enumerate(order)}
    _, first_atoms = np.unique(structure.resids, return_index=True)
    first_of = {int(structure.resids[i]): int(i) for i in first_atoms}
    out = set(heads)
    for rid in heads:
        if rid not in position:
            continue
        key = _table_key(structure, first_of[rid], table)
        if key is None:
            continue
        start = position[rid]
        out.update(order[start + 1 : start + 1 + int(table[key])])
    return frozenset(out)


def expand_fragments(
    structure: Structure,
    heads: frozenset[int],
    strategy: str = CONNECTIVITY,
    table: Mapping[str, int] | None = None,
) -> frozenset[int]:
    """Expand ``heads`` with the chosen strategy. The result is a superset of ``heads``."""
    if strategy == CONNECTIVITY:
        return expand_by_connectivity(structure, heads)
    if strategy == OFFSET_TABLE:
        return expand_by_offset_table(structure, heads, table)
    raise ValidationError(f"unknown fragment strategy {strategy!r} (expected one of {', '.join(STRATEGIES)})")


@dataclass(frozen=True)
class StrategyComparison:
    connectivity: frozenset[int]
    offset_table: frozenset[int]

    @property
    def only_connectivity(self) -> frozenset[int]:
        return self.connectivity - self.offset_table

    @property
    def only_offset_table(self) -> frozenset[int]:
        return self.offset_table - self.connectivity

    @property
    def agree(self) -> bool:
        return self.connectivity == self.offset_table


def compare_strategies(
    structure: Structure,
    heads: frozenset[int],
    table: Mapping[str, int] | None = None,
) -> StrategyComparison | None:
    """Run both strategies and log any disagreement; ``None`` without connectivity."""
    if structure.fragment_ids() is None:
        return None
    result = StrategyComparison(
        connectivity=expand_by_connectivity(structure, heads),
        offset_table=expand_by_offset_table(structure, heads, table),
    )
    if not result.agree:
        logging.warning(
            "[fragments] strategies disagree: %d residue(s) only via connectivity %s, "
            "%d only via offset table %s",
            len(result.only_connectivity),
            sorted(result.only_connectivity)[:10],
            len(result.only_offset_table),
            sorted(result.only_offset_table)[:10],
        )
    return result
