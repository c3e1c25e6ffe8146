import logging

import numpy as np
import pytest

from revesicle.domain.geometry import GeometryEstimate, estimate_geometry
from revesicle.domain.residues import ResidueClasses
from revesicle.domain.selection import AtomNameIn, ResnameIn
from revesicle.domain.shells import MembershipRule, ShellSpec, classify_residues, split_shell
from revesicle.domain.structure import Structure
from revesicle.errors import DegenerateShellError, ValidationError
from tests.helpers.vesicle import LIPIDS_FLIPPED, WATERS_IN_SHELL, build_vesicle, to_structure


def _spherical_solvent(n=1000, radius=50.0, seed=7):
    """``n`` single-atom TIP3 residues spread over a ball of ``1.2 * radius``, plus 6 lipid
    atoms on the axes that pin the estimate to centre 0 and radius ``radius``."""
    rng = np.random.default_rng(seed)
    dirs = rng.normal(size=(n, 3))
    dirs /= np.linalg.norm(dirs, axis=1)[:, None]
    dist = rng.uniform(0.0, 1.2 * radius, size=n)
    solvent = dirs * dist[:, None]
    axes = np.array([[1, 0, 0], [-1, 0, 0], [0, 1, 0], [0, -1, 0], [0, 0, 1], [0, 0, -1]], dtype=float) * radius
    positions = np.vstack([axes, solvent])
    s = Structure.from_columns(
        names=["P"] * 6 + ["OH2"] * n,
        resnames=["POPC"] * 6 + ["TIP3"] * n,
        resids=range(n + 6),
        positions=positions,
    )
    return s, dist


def test_scenario_a_exact_membership_against_reference():
    s, dist = _spherical_solvent()
    g = estimate_geometry(s, ResnameIn({"POPC"}))
    assert g.radius == pytest.approx(50.0)
    got = classify_residues(s, g, ShellSpec(16, 46), ResnameIn({"TIP3"}), MembershipRule.ANY_ATOM)
    expected = {i + 6 for i, d in enumerate(dist) if 4.0 < d < 34.0}
    assert got == expected
    assert 0 < len(got) < 1000


def test_scenario_b_equal_offsets_give_empty_result_and_warning(caplog):
    s, _ = _spherical_solvent()
    g = estimate_geometry(s, ResnameIn({"POPC"}))
    caplog.set_level(logging.WARNING)
    got = classify_residues(s, g, ShellSpec(20, 20), ResnameIn({"TIP3"}))
    assert got == frozenset()
    assert any("is empty" in r.getMessage() for r in caplog.records)


def test_inverted_offsets_give_empty_result():
    s, _ = _spherical_solvent()
    g = estimate_geometry(s, ResnameIn({"POPC"}))
    assert classify_residues(s, g, ShellSpec(30, 10), ResnameIn({"TIP3"})) == frozenset()


@pytest.mark.parametrize("d_inner,d_outer", [(2.0, 60.0), (50.0, 55.0), (10.0, 50.0)])
def test_offset_not_smaller_than_radius_raises(d_inner, d_outer):
    g = GeometryEstimate(center=(0.0, 0.0, 0.0), radius=50.0)
    with pytest.raises(DegenerateShellError) as exc:
        ShellSpec(d_inner, d_outer).radii(g)
    assert exc.value.radius == 50.0
    assert exc.value.offsets == (d_inner, d_outer)
    assert "radius" in str(exc.value)


def test_negative_offset_rejected():
    with pytest.raises(ValidationError):
        ShellSpec(-1.0, 5.0)


def test_boundaries_are_strict():
    s = Structure.from_columns(
        names=["OH2"] * 3,
        resnames=["TIP3"] * 3,
        resids=[0, 1, 2],
        positions=[[10, 0, 0], [20, 0, 0], [15, 0, 0]],
    )
    g = GeometryEstimate(center=(0.0, 0.0, 0.0), radius=30.0)
    # shell (10, 20): atoms exactly on either radius are outside
    assert classify_residues(s, g, ShellSpec(10, 20), ResnameIn({"TIP3"})) == {2}


def _two_atom_residue(inner_r, outer_r):
    return Structure.from_columns(
        names=["P", "C2"],
        resnames=["POPC", "POPC"],
        resids=[0, 0],
        positions=[[inner_r, 0, 0], [outer_r, 0, 0]],
    )


def test_membership_rules_differ_for_straddling_residue():
    g = GeometryEstimate(center=(0.0, 0.0, 0.0), radius=30.0)
    spec = ShellSpec(10, 20)  # shell (10, 20)
    s = _two_atom_residue(25.0, 15.0)  # head outside, tail inside
    lipids = ResnameIn({"POPC"})
    assert classify_residues(s, g, spec, lipids, MembershipRule.ANY_ATOM) == {0}
    assert classify_residues(s, g, spec, lipids, MembershipRule.ALL_ATOMS) == frozenset()
    assert classify_residues(s, g, spec, lipids & AtomNameIn({"P"}), MembershipRule.HEAD) == frozenset()
    inside = _two_atom_residue(12.0, 18.0)
    assert classify_residues(inside, g, spec, lipids, MembershipRule.ALL_ATOMS) == {0}


def test_classification_is_deterministic():
    s = to_structure(build_vesicle())
    g = estimate_geometry(s, ResidueClasses().lipids())
    target = ResidueClasses().removable_waters()
    first = classify_residues(s, g, ShellSpec(2, 6), target)
    assert first == classify_residues(s, g, ShellSpec(2, 6), target)


def test_vesicle_water_shell_and_split():
    b = build_vesicle()
    s = to_structure(b)
    g = estimate_geometry(s, ResidueClasses().lipids())
    spec = ShellSpec(2, 6)
    got = classify_residues(s, g, spec, ResidueClasses().removable_waters(), MembershipRule.ANY_ATOM)
    assert got == {b.labels[k] for k in WATERS_IN_SHELL}
    split = split_shell(s, g, spec, got)
    assert spec.d_mid == 4.0
    assert split.r_mid == pytest.approx(16.0)
    # w_shell straddles the midpoint and counts on both sides
    assert split.inner == {b.labels["w_shell"], b.labels["w_edge"]}
    assert split.outer == {b.labels["w_shell"], b.labels["w_outer"]}
    assert split.summary_line() == "3 2 2"


def test_vesicle_lipid_heads_in_lipid_shell():
    b = build_vesicle()
    s = to_structure(b)
    classes = ResidueClasses()
    g = estimate_geometry(s, classes.lipids())
    heads = classify_residues(s, g, ShellSpec(3, 8), classes.lipid_heads(), MembershipRule.HEAD)
    glyco = classify_residues(s, g, ShellSpec(3, 8), classes.glycolipid_heads(), MembershipRule.HEAD)
    assert heads == {b.labels["flipped"]}
    assert glyco == {b.labels["glyco"]}
    assert set(LIPIDS_FLIPPED) >= {"flipped", "glyco"}
