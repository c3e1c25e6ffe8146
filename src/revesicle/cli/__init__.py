"""ReVesicle CLI package.

Expose the ``main`` entry point for ``python -m revesicle`` execution.
"""
from .app import main as main  # explicit re-export for linters
