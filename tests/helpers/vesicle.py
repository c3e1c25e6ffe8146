# tests/helpers/vesicle.py
"""A tiny vesicle-like test system written as PSF + DCD.

Six POPC lipids sit on the axes at radius 20 (so the estimated radius is 20
and the centre is the origin), one flipped POPS and one C160 glycolipid (with
three bonded BGLC sugars) point inwards at radius 15, five TIP3 waters sit at
known radii, and 3 SOD + 2 CLA ions at radius 30 balance the POPS charge.
"""
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np


@dataclass
class _Atom:
    segid: str
    resid: int
    resname: str
    name: str
    type: str
    charge: float
    mass: float
    pos: np.ndarray


@dataclass
class SystemBuilder:
    atoms: list = field(default_factory=list)
    bonds: list = field(default_factory=list)
    labels: dict = field(default_factory=dict)  # label -> residue index (MDAnalysis resindex)
    first_atom: dict = field(default_factory=dict)
    _seg_counter: dict = field(default_factory=dict)

    def residue(self, label, segid, resname, atoms, bonds=()):
        """``atoms``: iterable of (name, type, charge, mass, xyz); ``bonds``: local index pairs."""
        resid = self._seg_counter.get(segid, 0) + 1
        self._seg_counter[segid] = resid
        start = len(self.atoms)
        for name, typ, charge, mass, xyz in atoms:
            self.atoms.append(_Atom(segid, resid, resname, name, typ, charge, mass, np.asarray(xyz, dtype=float)))
        self.bonds += [(start + a, start + b) for a, b in bonds]
        self.labels[label] = len(self.labels)
        self.first_atom[label] = start
        return start

    def link(self, a: int, b: int):
        self.bonds.append((a, b))

    @property
    def positions(self) -> np.ndarray:
        return np.array([a.pos for a in self.atoms], dtype=float)

    def write_psf(self, path: Path) -> Path:
        lines = ["PSF NAMD", "", "       1 !NTITLE", " REMARKS revesicle test system", ""]
        lines.append(f"{len(self.atoms):8d} !NATOM")
        for i, a in enumerate(self.atoms, start=1):
            lines.append(
                f"{i:8d} {a.segid:<4s} {a.resid:<4d} {a.resname:<4s} {a.name:<4s} {a.type:<4s} "
                f"{a.charge:10.6f} {a.mass:13.4f}           0"
            )
        lines.append("")
        lines.append(f"{len(self.bonds):8d} !NBOND: bonds")
        for k in range(0, len(self.bonds), 4):
            lines.append("".join(f"{a + 1:8d}{b + 1:8d}" for a, b in self.bonds[k:k + 4]))
        lines.append("")
        for title in ("NTHETA: angles", "NPHI: dihedrals", "NIMPHI: impropers", "NDON: donors", "NACC: acceptors"):
            lines += [f"{0:8d} !{title}", ""]
        path = Path(path)
        path.write_text("\n".join(lines) + "\n")
        return path


def _at(direction, r):
    d = np.asarray(direction, dtype=float)
    return d / np.linalg.norm(d) * r


def _lipid(b, label, resname, direction, r_head, head_charge=0.0, segid="MEMB", head="P"):
    b.residue(
        label,
        segid,
        resname,
        [
            (head, "PL", head_charge, 30.97, _at(direction, r_head)),
            ("C2", "CTL2", 0.0, 12.011, _at(direction, r_head - 2.0)),
        ],
        bonds=[(0, 1)],
    )


def _water(b, label, direction, r):
    b.residue(
        label,
        "SOLV",
        "TIP3",
        [
            ("OH2", "OT", -0.834, 15.999, _at(direction, r)),
            ("H1", "HT", 0.417, 1.008, _at(direction, r + 0.6)),
            ("H2", "HT", 0.417, 1.008, _at(direction, r - 0.6)),
        ],
        bonds=[(0, 1), (0, 2)],
    )


def _ion(b, label, resname, direction, charge):
    b.residue(label, "IONS", resname, [(resname, resname, charge, 22.99, _at(direction, 30.0))])


AXES = [(1, 0, 0), (-1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, 1), (0, 0, -1)]

# Water offsets used by the tests: shell (radius - 6, radius - 2) = (14, 18), midpoint 16
WATERS_IN_SHELL = ("w_shell", "w_edge", "w_outer")
WATERS_KEPT = ("w_core", "w_out")
LIPIDS_FLIPPED = ("flipped", "glyco", "sugar0", "sugar1", "sugar2")


def build_vesicle() -> SystemBuilder:
    b = SystemBuilder()
    for i, axis in enumerate(AXES):
        _lipid(b, f"ring{i}", "POPC", axis, 20.0)
    _lipid(b, "flipped", "POPS", (1, 1, 0), 15.0, head_charge=-1.0)
    _lipid(b, "glyco", "C160", (-1, -1, 0), 15.0, segid="GLYC", head="C1S")
    prev = b.first_atom["glyco"] + 1
    for k, r in enumerate((11.0, 10.0, 9.0)):
        start = b.residue(f"sugar{k}", "GLYC", "BGLC", [("C1", "CC", 0.0, 12.011, _at((-1, -1, 0), r))])
        b.link(prev, start)
        prev = start
    b.residue("free_sugar", "GLYC", "BGLC", [("C1", "CC", 0.0, 12.011, _at((0, 1, 1), 15.0))])
    _water(b, "w_shell", (1, 0, 1), 16.0)
    _water(b, "w_core", (1, 0, 0), 5.0)
    _water(b, "w_out", (0, 1, 0), 26.0)
    _water(b, "w_edge", (0, 1, -1), 13.7)
    _water(b, "w_outer", (1, -1, 1), 17.0)
    for k, axis in enumerate([(1, 0, 0), (0, 1, 0), (0, 0, 1)]):
        _ion(b, f"sod{k}", "SOD", axis, 1.0)
    for k, axis in enumerate([(-1, 0, 0), (0, -1, 0)]):
        _ion(b, f"cla{k}", "CLA", axis, -1.0)
    return b


def write_dcd(psf: Path, frames: np.ndarray, dcd: Path) -> Path:
    """Write ``frames`` (n_frames, n_atoms, 3) as a DCD trajectory for ``psf``."""
    import MDAnalysis as mda
    from MDAnalysis.coordinates.memory import MemoryReader

    frames = np.asarray(frames, dtype=np.float32)
    u = mda.Universe(str(psf), frames, format=MemoryReader)
    with mda.Writer(str(dcd), u.atoms.n_atoms) as w:
        for ts in u.trajectory:
            ts.dimensions = [80.0, 80.0, 80.0, 90.0, 90.0, 90.0]
            w.write(u.atoms)
    return Path(dcd)


def write_vesicle_inputs(root: Path, builder: SystemBuilder | None = None) -> dict[str, Path]:
    """Write ``vesicle.psf`` and a two-frame ``vesicle.dcd`` (the first frame is shifted by 100 A)."""
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    b = builder or build_vesicle()
    psf = b.write_psf(root / "vesicle.psf")
    pos = b.positions
    dcd = write_dcd(psf, np.stack([pos + 100.0, pos]), root / "vesicle.dcd")
    return {"psf": psf, "dcd": dcd}


XST_TEXT = (
    "# NAMD extended system trajectory file\n"
    "#$LABELS step a_x a_y a_z b_x b_y b_z c_x c_y c_z o_x o_y o_z s_x s_y s_z s_u s_v s_w\n"
    "0 80 0 0 0 80 0 0 0 80 0 0 0 0 0 0 0 0 0\n"
    "5000 81.5 0 0 0 82.25 0 0 0 83 0.5 -0.25 1 0 0 0 0 0 0\n"
)

CONF_TEMPLATE = """structure          {structure}
coordinates        {coordinates}
cellBasisVector1   10 0 0
cellBasisVector2   0 10 0
cellBasisVector3   0 0 10
cellOrigin         0 0 0
outputName         {output}
"""


def write_scripts(script_dir: Path) -> Path:
    """Stage-ready NAMD conf files; 1A compress and STEP-2_A reference the basename token."""
    script_dir = Path(script_dir)
    script_dir.mkdir(parents=True, exist_ok=True)
    token = "@STEP1A_BASENAME@"
    confs = {
        "compress_STEP-1_A.conf": CONF_TEMPLATE.format(structure=f"{token}.psf", coordinates=f"{token}.coor", output="compressed"),
        "STEP-2_A.conf": CONF_TEMPLATE.format(structure=f"../STEP-1_A/{token}.psf", coordinates=f"../STEP-1_A/{token}.coor", output="STEP-2_A"),
        "STEP-3_A.conf": "# continues from STEP-2_A restart files\noutputName STEP-3_A\n",
        "compress_STEP-1_B.conf": CONF_TEMPLATE.format(structure="STEP-1_B_empty_holes.psf", coordinates="STEP-1_B_empty_holes.coor", output="compressed"),
        "STEP-2_B.conf": CONF_TEMPLATE.format(structure="../STEP-1_B/STEP-1_B_empty_holes.psf", coordinates="../STEP-1_B/STEP-1_B_empty_holes.coor", output="STEP-2_B"),
        "STEP-3_B.conf": "outputName STEP-3_B\n",
        "compress_STEP-4.conf": CONF_TEMPLATE.format(structure="STEP-4_empty_holes.psf", coordinates="STEP-4_empty_holes.coor", output="compressed"),
        "STEP-5.conf": CONF_TEMPLATE.format(structure="../STEP-4/STEP-4_empty_holes.psf", coordinates="../STEP-4/STEP-4_empty_holes.coor", output="STEP-5"),
    }
    for name, text in confs.items():
        (script_dir / name).write_text(text)
    return script_dir


def make_workdir(root: Path) -> dict[str, Path]:
    """Working directory with inputs, ``input.xst`` and ``script/``."""
    paths = write_vesicle_inputs(root / "inputs")
    xst = root / "inputs" / "input.xst"
    xst.write_text(XST_TEXT)
    paths["xst"] = xst
    paths["scripts"] = write_scripts(root / "script")
    paths["workdir"] = root
    return paths


def to_structure(b: SystemBuilder):
    """The same system as an in-memory ``Structure`` (residue ids = residue order)."""
    from revesicle.domain.structure import Structure

    resindex = []
    current = -1
    last = None
    for a in b.atoms:
        key = (a.segid, a.resid)
        if key != last:
            current += 1
            last = key
        resindex.append(current)
    return Structure.from_columns(
        names=[a.name for a in b.atoms],
        resnames=[a.resname for a in b.atoms],
        resids=resindex,
        segids=[a.segid for a in b.atoms],
        positions=b.positions,
        charges=[a.charge for a in b.atoms],
        bonds=b.bonds,
    )
