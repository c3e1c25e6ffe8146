"""ReVesicle: shell-based cleanup and re-equilibration workflow for lipid vesicles."""

__version__ = "0.1.0"

__all__ = ["__version__"]
