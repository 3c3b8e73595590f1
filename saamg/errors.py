"""Exceptions raised while building a smoothed aggregation hierarchy.

Every exception derives from `HierarchyError`, so callers can catch all
setup failures with a single clause. The concrete classes also derive from
the matching builtin (`ValueError` / `RuntimeError`) so code that already
catches those keeps working.

Classes
-------
InvalidConfigurationError
    Bad scalar controls (``max_levels``, ``min_level_size``) or an unknown
    strategy / format name.
InvalidShapeError
    Non-conforming dimensions between two setup steps, or an operator that a
    strategy cannot accept (e.g. a rectangular matrix for Jacobi smoothing).
CollaboratorFailure
    Any other exception raised by a strategy or matrix kernel. The name of
    the setup step is attached as ``step``.
"""

from __future__ import annotations


class HierarchyError(Exception):
    """Base class for hierarchy setup errors."""


class InvalidConfigurationError(HierarchyError, ValueError):
    """Raised for invalid options, strategy names or format tags."""


class InvalidShapeError(HierarchyError, ValueError):
    """Raised when matrix or vector dimensions do not conform."""


class CollaboratorFailure(HierarchyError, RuntimeError):
    """Raised when a strategy or kernel fails during a setup step.

    Parameters
    ----------
    step
        Name of the setup step that failed (``"strength"``, ``"aggregate"``, ...).
    level
        Index of the level being coarsened when the failure occurred.
    """

    def __init__(self, step: str, level: int, message: str = "") -> None:
        self.step = step
        self.level = level
        text = f"{step} failed on level {level}"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)
