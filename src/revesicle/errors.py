"""Exception taxonomy shared by the domain, io and pipeline layers.

Every failure raised on purpose by revesicle derives from
:class:`ReVesicleError`, so the orchestrator can capture it into a phase
result and the CLI can map it onto exit status 1.
"""
from __future__ import annotations

__all__ = [
    "ReVesicleError",
    "ValidationError",
    "MissingArtifactError",
    "EmptySelectionError",
    "DegenerateShellError",
    "InsufficientIonsError",
    "TopologyError",
    "EngineError",
]


class ReVesicleError(Exception):
    """Base class for all workflow errors."""


class ValidationError(ReVesicleError, ValueError):
    """Bad or missing command-line / configuration input."""


class MissingArtifactError(ReVesicleError, FileNotFoundError):
    """An expected staged file or phase output does not exist or cannot be read."""


class EmptySelectionError(ReVesicleError):
    """A reference selection matched no atoms (macro/topology mismatch)."""


class DegenerateShellError(ReVesicleError, ValueError):
    """A shell offset is larger than the estimated assembly radius."""

    def __init__(self, message: str, *, radius: float | None = None, offsets: tuple[float, ...] = ()):
        super().__init__(message)
        self.radius = radius
        self.offsets = offsets


class InsufficientIonsError(ReVesicleError):
    """Not enough counter-ions of the required species to neutralise the system."""

    def __init__(self, species: str, requested: int, available: int):
        super().__init__(
            f"need to remove {requested} {species} ion(s) but only {available} present"
        )
        self.species = species
        self.requested = requested
        self.available = available


class TopologyError(ReVesicleError):
    """Topology or connectivity information is unavailable or cannot be parsed."""


class EngineError(ReVesicleError):
    """The external simulation engine exited with a non-zero status."""
