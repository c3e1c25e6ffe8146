import numpy as np
import pytest

from revesicle.domain.geometry import estimate_geometry
from revesicle.domain.residues import ResidueClasses
from revesicle.domain.selection import ResnameIn
from revesicle.domain.structure import Structure
from revesicle.errors import EmptySelectionError
from tests.helpers.vesicle import build_vesicle, to_structure


def test_radius_is_half_mean_extent_and_center_is_centroid():
    s = Structure.from_columns(
        names=["A"] * 4,
        resnames=["POPC"] * 4,
        resids=[0, 1, 2, 3],
        positions=[[0, 0, 0], [10, 0, 0], [0, 20, 0], [0, 0, 30]],
    )
    g = estimate_geometry(s, ResnameIn({"POPC"}))
    assert g.extents == (10.0, 20.0, 30.0)
    assert g.radius == pytest.approx(10.0)
    assert g.diameter == pytest.approx(20.0)
    assert g.center == pytest.approx((2.5, 5.0, 7.5))
    assert g.n_reference_atoms == 4


def test_reference_subset_only():
    s = Structure.from_columns(
        names=["A", "B", "O"],
        resnames=["POPC", "POPC", "TIP3"],
        resids=[0, 1, 2],
        positions=[[-4, -4, -4], [4, 4, 4], [100, 100, 100]],
    )
    g = estimate_geometry(s, ResnameIn({"POPC"}))
    assert g.radius == pytest.approx(8.0 / 2)
    assert g.center == pytest.approx((0.0, 0.0, 0.0))


def test_vesicle_fixture_geometry():
    s = to_structure(build_vesicle())
    g = estimate_geometry(s, ResidueClasses().lipids())
    assert g.radius == pytest.approx(20.0)
    assert np.allclose(g.center, 0.0, atol=1e-9)
    assert any(line.startswith("radius = 20.000") for line in g.log_lines())


def test_empty_reference_raises():
    s = Structure.from_columns(names=["OH2"], resnames=["TIP3"], resids=[0], positions=[[0, 0, 0]])
    with pytest.raises(EmptySelectionError):
        estimate_geometry(s, ResnameIn({"POPC"}))
