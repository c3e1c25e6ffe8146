from revesicle.domain.editing import split_structure
from revesicle.domain.residues import ResidueClasses
from revesicle.io import index_files
from tests.helpers.vesicle import build_vesicle, to_structure


def _read(path):
    return [int(x) for x in path.read_text().split()]


def test_index_files_use_output_positions(tmp_path):
    b = build_vesicle()
    s = to_structure(b)
    classes = ResidueClasses()
    # drop the first ring lipid so positions and source indices differ by two
    out = split_structure(s, [b.labels["ring0"]]).retained
    water = _read(index_files.write_index_file(out, index_files.water_selection(classes), tmp_path / "w.dat"))
    heads = _read(index_files.write_index_file(out, index_files.lipid_heads_selection(classes), tmp_path / "h.dat"))
    both = _read(index_files.write_index_file(out, index_files.water_lipid_heads_selection(classes), tmp_path / "wh.dat"))
    assert len(water) == 5 * 3 + 5
    assert all(out.resnames[i] in ("TIP3", "SOD", "CLA") for i in water)
    # five remaining ring P atoms plus the flipped POPS head; C1S is not a head index atom
    assert len(heads) == 6
    assert all(out.names[i] == "P" for i in heads)
    assert heads[0] == 0
    assert both == sorted(water + heads)
