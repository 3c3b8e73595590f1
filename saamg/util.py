"""Small helpers shared by the strategy adapters."""

from __future__ import annotations

from typing import Any

import numpy as np

from .errors import InvalidConfigurationError, InvalidShapeError


def unpack_arg(v: Any) -> tuple[Any, dict[str, Any]]:
    """Normalize a PyAMG-style method spec into (name, kwargs).

    Parameters
    ----------
    v
        Either:
          - a string name like "standard", "symmetric", ...
          - a pair (name, kwargs) like ("standard", {"theta": 0.0})
          - None

    Returns
    -------
    name, kwargs
        `name` is the method identifier, `kwargs` is a (copied) dict of keyword arguments.
    """
    if isinstance(v, tuple):
        if len(v) != 2 or not isinstance(v[1], dict):
            raise InvalidConfigurationError(f"Expected (name, kwargs) pair, got {v!r}")
        return v[0], dict(v[1])
    return v, {}


def check_partition(aggregates, n: int) -> np.ndarray:
    """Validate an aggregate id array and return it as int32.

    The array must have length `n`, non-negative ids, and use every id in
    ``0..max(aggregates)`` (contiguous numbering, no empty aggregate).

    Raises
    ------
    InvalidShapeError
        If any of the conditions above does not hold.
    """
    agg = np.asarray(aggregates)
    if agg.ndim != 1 or agg.shape[0] != n:
        raise InvalidShapeError(f"aggregates must have shape ({n},), got {agg.shape}")
    if n == 0:
        return agg.astype(np.int32, copy=False)
    if not np.issubdtype(agg.dtype, np.integer):
        raise InvalidShapeError(f"aggregates must be integer ids, got dtype {agg.dtype}")
    if agg.min() < 0:
        raise InvalidShapeError("aggregates contains unassigned (negative) rows")
    counts = np.bincount(agg)
    if np.any(counts == 0):
        raise InvalidShapeError("aggregate ids are not contiguous (empty aggregate)")
    return agg.astype(np.int32, copy=False)
