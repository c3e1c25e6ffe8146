"""Domain logic for vesicle shell classification and structure editing.

Public API:
	* estimate_geometry(structure, reference) -> GeometryEstimate
	* classify_residues(structure, geometry, spec, target, rule) -> frozenset[int]
	* split_shell(structure, geometry, spec, residues) -> ShellSplit
	* expand_fragments(structure, heads, strategy, table) -> frozenset[int]
	* balance_charge(structure, classes, seed) -> ChargeBalance
	* split_structure(structure, exclude) -> EditResult
"""
from .charges import ChargeBalance, ChargeState, balance_charge, compute_charge_state
from .editing import EditResult, split_structure
from .fragments import compare_strategies, connected_fragments, expand_fragments
from .geometry import GeometryEstimate, estimate_geometry
from .residues import ResidueClasses
from .shells import MembershipRule, ShellSpec, ShellSplit, classify_residues, split_shell
from .structure import Structure

__all__ = [
	"ChargeBalance",
	"ChargeState",
	"EditResult",
	"GeometryEstimate",
	"MembershipRule",
	"ResidueClasses",
	"ShellSpec",
	"ShellSplit",
	"Structure",
	"balance_charge",
	"classify_residues",
	"compare_strategies",
	"compute_charge_state",
	"connected_fragments",
	"estimate_geometry",
	"expand_fragments",
	"split_shell",
	"split_structure",
]
