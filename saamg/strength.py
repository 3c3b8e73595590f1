"""Strength-of-connection strategies.

A strength strategy maps the level operator A to a filtered graph C of the
same shape that drives aggregation. The numerics are PyAMG's; this module
resolves a method spec into a callable and normalizes the result to CSR with
explicit zeros removed.

Supported methods
-----------------
- "symmetric"          : `pyamg.strength.symmetric_strength_of_connection` (default)
- "classical"          : `pyamg.strength.classical_strength_of_connection`
- "evolution" / "ode"  : `pyamg.strength.evolution_strength_of_connection`
- "energy_based"       : `pyamg.strength.energy_based_strength_of_connection`
- "distance"           : `pyamg.strength.distance_strength_of_connection` (needs ``V``)
- "algebraic_distance" : `pyamg.strength.algebraic_distance`
- "affinity"           : `pyamg.strength.affinity_distance`
- "predefined"         : a user supplied matrix passed as ``C``
- None                 : absolute value of A
"""

from __future__ import annotations

from functools import partial
from typing import Any

from scipy.sparse import csr_array

from pyamg.strength import (
    classical_strength_of_connection,
    symmetric_strength_of_connection,
    evolution_strength_of_connection,
    energy_based_strength_of_connection,
    distance_strength_of_connection,
    algebraic_distance,
    affinity_distance,
)

from .errors import InvalidConfigurationError, InvalidShapeError
from .types import MethodSpec, SparseLike, StrengthFn
from .util import unpack_arg

STRENGTH_METHODS = (
    "symmetric",
    "classical",
    "evolution",
    "ode",
    "energy_based",
    "distance",
    "algebraic_distance",
    "affinity",
    "predefined",
    None,
)


def build_strength(A: SparseLike, *, method: str | None = "symmetric", **kwargs: Any) -> csr_array:
    """Compute strength-of-connection matrix C from a method name.

    Parameters
    ----------
    A
        Operator on this level (CSR).
    method
        One of `STRENGTH_METHODS`.
    kwargs
        Passed through to the PyAMG strength routine.

    Returns
    -------
    C
        CSR strength-of-connection / adjacency matrix with the shape of A.
    """
    if method not in ("predefined", None) and A.shape[0] != A.shape[1]:
        raise InvalidShapeError(f"{method} strength of connection requires a square operator, got {A.shape}")

    if method == "symmetric":
        C = symmetric_strength_of_connection(A, **kwargs)
    elif method == "classical":
        C = classical_strength_of_connection(A, **kwargs)
    elif method == "distance":
        C = distance_strength_of_connection(A, **kwargs)
    elif method in ("ode", "evolution"):
        C = evolution_strength_of_connection(A, **kwargs)
    elif method == "energy_based":
        C = energy_based_strength_of_connection(A, **kwargs)
    elif method == "predefined":
        C = kwargs["C"]
    elif method == "algebraic_distance":
        C = algebraic_distance(A, **kwargs)
    elif method == "affinity":
        C = affinity_distance(A, **kwargs)
    elif method is None:
        C = abs(A)
    else:
        raise InvalidConfigurationError(f"Unrecognized strength-of-connection method: {method!r}")

    C = csr_array(C, copy=True)
    C.eliminate_zeros()
    if C.shape != A.shape:
        raise InvalidShapeError(f"strength matrix has shape {C.shape}, expected {A.shape}")
    return C


def make_strength(spec: MethodSpec | StrengthFn) -> StrengthFn:
    """Resolve a strength spec into a ``strength(A) -> C`` callable.

    Examples
    --------
    >>> from pyamg.gallery import poisson
    >>> strength = make_strength(("symmetric", {"theta": 0.25}))
    >>> C = strength(poisson((10,), format="csr"))
    >>> C.shape
    (10, 10)
    """
    if callable(spec):
        return spec
    name, kwargs = unpack_arg(spec)
    if name not in STRENGTH_METHODS:
        raise InvalidConfigurationError(f"Unrecognized strength-of-connection method: {name!r}")
    if name == "predefined" and "C" not in kwargs:
        raise InvalidConfigurationError("predefined strength requires a 'C' matrix")
    return partial(build_strength, method=name, **kwargs)
