"""Periodic cell propagation from a NAMD extended-system (``.xst``) file.

The last record of the ``.xst`` file holds ``step a_x a_y a_z b_x b_y b_z
c_x c_y c_z o_x o_y o_z [...]``. The diagonal of the basis vectors and the
origin replace the ``cellBasisVector1/2/3`` and ``cellOrigin`` lines of a
NAMD configuration file. Pure text substitution; other lines are untouched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from revesicle.errors import MissingArtifactError, ValidationError

__all__ = ["CellRecord", "read_last_cell_record", "rewrite_cell_lines", "update_conf_files"]

_KEYS = ("cellBasisVector1", "cellBasisVector2", "cellBasisVector3", "cellOrigin")


def _fmt(value: float) -> str:
    return f"{value:.10g}"


@dataclass(frozen=True)
class CellRecord:
    step: int
    basis: tuple[float, ...]  # 9 components, row-major a, b, c
    origin: tuple[float, float, float]

    def conf_lines(self) -> dict[str, str]:
        a_x, b_y, c_z = self.basis[0], self.basis[4], self.basis[8]
        ox, oy, oz = self.origin
        return {
            "cellBasisVector1": f"cellBasisVector1 {_fmt(a_x)} 0 0",
            "cellBasisVector2": f"cellBasisVector2 0 {_fmt(b_y)} 0",
            "cellBasisVector3": f"cellBasisVector3 0 0 {_fmt(c_z)}",
            "cellOrigin": f"cellOrigin {_fmt(ox)} {_fmt(oy)} {_fmt(oz)}",
        }


def read_last_cell_record(xst_path) -> CellRecord:
    path = Path(xst_path)
    if not path.is_file():
        raise MissingArtifactError(f"cell file not found: {path}")
    last = None
    for line in path.read_text().splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            last = stripped
    if last is None:
        raise ValidationError(f"cell file {path} holds no data records")
    fields = last.split()
    if len(fields) < 13:
        raise ValidationError(f"last record of {path} has {len(fields)} columns, expected at least 13: {last!r}")
    try:
        step = int(float(fields[0]))
        values = [float(v) for v in fields[1:13]]
    except ValueError as e:
        raise ValidationError(f"non-numeric value in last record of {path}: {last!r}") from e
    return CellRecord(step=step, basis=tuple(values[:9]), origin=tuple(values[9:12]))


def rewrite_cell_lines(conf_path, record: CellRecord) -> int:
    """Replace the four cell lines of ``conf_path`` in place; return the number replaced."""
    path = Path(conf_path)
    if not path.is_file():
        raise MissingArtifactError(f"configuration file not found: {path}")
    replacements = record.conf_lines()
    out: list[str] = []
    replaced = 0
    for line in path.read_text().splitlines(keepends=True):
        key = next((k for k in _KEYS if line.startswith(k)), None)
        if key is None:
            out.append(line)
            continue
        newline = "\n" if line.endswith("\n") else ""
        out.append(replacements[key] + newline)
        replaced += 1
    path.write_text("".join(out))
    if replaced == 0:
        logging.warning("[cell] %s holds no cellBasisVector/cellOrigin lines; nothing replaced", path.name)
    else:
        logging.info("[cell] updated %s with cell info from step %d", path.name, record.step)
    return replaced


def update_conf_files(xst_path, conf_paths: Iterable) -> CellRecord:
    record = read_last_cell_record(xst_path)
    for conf in conf_paths:
        rewrite_cell_lines(conf, record)
    return record
