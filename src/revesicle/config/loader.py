
# src/revesicle/config/loader.py
from __future__ import annotations

import os
from dataclasses import dataclass, field, is_dataclass, fields
from pathlib import Path
import typing as t

try:
    import tomllib  # py>=3.11
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from revesicle.domain.fragments import DEFAULT_OFFSET_TABLE, STRATEGIES
from revesicle.domain.residues import GLYCAN_RESNAMES, LIPID_RESNAMES, WATER_RESNAMES
from revesicle.errors import ValidationError

"""TOML configuration loader (``revesicle.toml`` in the working directory)."""

CONFIG_FILENAME = "revesicle.toml"

# -----------------
# Dataclass schema
# -----------------

# NAMD invocation; None means "resolve from environment" (see _apply_env_defaults)
@dataclass
class EngineSection:
    namd_bin: str | None = None
    launcher: str | None = None
    launch_args: str | None = None
    extra_args: str | None = None
    compress_bin: str | None = None
    compress_launcher: str | None = None
    compress_launch_args: str | None = None

@dataclass
class PathsSection:
    scripts_dir: str = "script"

@dataclass
class SelectionSection:
    lipid: list[str] = field(default_factory=lambda: list(LIPID_RESNAMES))
    glycan: list[str] = field(default_factory=lambda: list(GLYCAN_RESNAMES))
    water: list[str] = field(default_factory=lambda: list(WATER_RESNAMES))
    removal_water: list[str] = field(default_factory=lambda: ["TIP3"])
    cation: str = "SOD"
    anion: str = "CLA"
    phosphate_atom: str = "P"
    sterol_resname: str = "CHL1"
    sterol_head_atom: str = "O3"
    glycolipid_resnames: list[str] = field(default_factory=lambda: ["C160", "C240"])
    glycolipid_head_atom: str = "C1S"

@dataclass
class FragmentsSection:
    strategy: str = "connectivity"
    offset_table: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_OFFSET_TABLE))
    # Log connectivity/offset-table disagreements when both can be computed
    compare: bool = False

@dataclass
class ChargeSection:
    seed: int | None = None

@dataclass
class Config:
    workdir: Path
    engine: EngineSection = field(default_factory=EngineSection)
    paths: PathsSection = field(default_factory=PathsSection)
    selection: SelectionSection = field(default_factory=SelectionSection)
    fragments: FragmentsSection = field(default_factory=FragmentsSection)
    charge: ChargeSection = field(default_factory=ChargeSection)

    @property
    def scripts_dir(self) -> Path:
        p = Path(self.paths.scripts_dir)
        return p if p.is_absolute() else self.workdir / p


# -----------------
# Helpers
# -----------------

def _load_toml(path: Path) -> dict:
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValidationError(f"invalid TOML in {path}: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _merge_into_dataclass(section, payload: dict):
    """Recursively merge a dict into a (possibly nested) dataclass instance."""
    for k, v in payload.items():
        if not hasattr(section, k):
            continue
        current = getattr(section, k)
        if is_dataclass(current) and isinstance(v, dict):
            _merge_into_dataclass(current, v)
        else:
            if v is not None:
                setattr(section, k, v)


def _flatten_dataclass(obj, prefix: str = ""):
    """Yield (key_path, value) for leaf attributes of nested dataclasses.

    Lists, dicts and non-dataclass objects are leaves. Field declaration order
    is preserved to keep dumps stable across runs.
    """
    if is_dataclass(obj):
        for f in fields(obj):
            val = getattr(obj, f.name)
            key = f"{prefix}.{f.name}" if prefix else f.name
            if is_dataclass(val):
                yield from _flatten_dataclass(val, key)
            else:
                yield key, val
    else:
        yield prefix or "value", obj


def dump_config(cfg: "Config", log_fn=print, header: bool = True):
    """Log all config settings (flattened) with a stable ordering.

    Format: [config] section.key = value
    """
    if header:
        log_fn("[config] -- begin full config dump --")
    for key, val in _flatten_dataclass(cfg):
        log_fn(f"[config] {key} = {val}")
    if header:
        log_fn("[config] -- end full config dump --")


def _env(name: str) -> str | None:
    value = os.environ.get(name)
    return value if value else None


def _apply_env_defaults(engine: EngineSection) -> None:
    """Fill unset engine fields from NAMD_* variables; compress knobs fall back to the regular ones."""
    if not engine.namd_bin:
        engine.namd_bin = _env("NAMD_BIN") or "namd3"
    if engine.launcher is None:
        engine.launcher = _env("NAMD_LAUNCHER") or ""
    if engine.launch_args is None:
        engine.launch_args = _env("NAMD_LAUNCH_ARGS") or ""
    if engine.extra_args is None:
        engine.extra_args = _env("NAMD_EXTRA_ARGS") or ""
    if not engine.compress_bin:
        engine.compress_bin = _env("NAMD_BIN_COMPRESS") or engine.namd_bin
    if engine.compress_launcher is None:
        engine.compress_launcher = _env("NAMD_LAUNCHER_COMPRESS") or engine.launcher
    if engine.compress_launch_args is None:
        engine.compress_launch_args = _env("NAMD_LAUNCH_ARGS_COMPRESS") or engine.launch_args


def _validate(cfg: Config) -> None:
    if cfg.fragments.strategy not in STRATEGIES:
        raise ValidationError(
            f"Invalid fragments.strategy '{cfg.fragments.strategy}'. Expected one of: " + ", ".join(STRATEGIES)
        )
    for prefix, n in cfg.fragments.offset_table.items():
        if not isinstance(n, int) or n < 0:
            raise ValidationError(f"fragments.offset_table.{prefix} must be a non-negative integer, got {n!r}")
    seed = cfg.charge.seed
    if seed is not None and not isinstance(seed, int):
        raise ValidationError(f"charge.seed must be an integer, got {seed!r}")
    for attr in ("lipid", "water", "removal_water"):
        if not getattr(cfg.selection, attr):
            raise ValidationError(f"selection.{attr} must list at least one residue name")


# -----------------
# Loader
# -----------------

def load_config(
    workdir: t.Union[str, Path],
    config_path: t.Union[str, Path, None] = None,
) -> Config:
    """Load ``<workdir>/revesicle.toml`` then ``config_path`` (higher precedence) over defaults."""
    root = Path(workdir).resolve()
    data: dict = {}

    tomls: list[Path] = []
    default_toml = root / CONFIG_FILENAME
    if default_toml.is_file():
        tomls.append(default_toml)
    if config_path:
        provided = Path(config_path).resolve()
        if not provided.is_file():
            raise ValidationError(f"config file not found: {provided}")
        if provided not in tomls:
            tomls.append(provided)

    for p in tomls:
        payload = _load_toml(p)
        data = _deep_merge(data, payload)

    cfg = Config(workdir=root)
    for section_name in ("engine", "paths", "selection", "fragments", "charge"):
        payload = data.get(section_name, {})
        section = getattr(cfg, section_name)
        if isinstance(payload, dict):
            _merge_into_dataclass(section, payload)
            setattr(cfg, section_name, section)

    _apply_env_defaults(cfg.engine)
    _validate(cfg)
    return cfg


__all__ = [
    "CONFIG_FILENAME",
    "Config",
    "EngineSection",
    "PathsSection",
    "SelectionSection",
    "FragmentsSection",
    "ChargeSection",
    "load_config",
    "dump_config",
]
