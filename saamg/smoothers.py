"""Smoother specifications and coarse-solver factories.

The hierarchy builder treats smoothers and the coarse solver as opaque
objects built from a level operator.

Smoothers
---------
A smoother factory maps a level operator to a ``(presmoother, postsmoother)``
pair of PyAMG ``(name, kwargs)`` specs, consumed by
`pyamg.relaxation.smoothing.change_smoothers` when the hierarchy is handed
to `pyamg.multilevel.MultilevelSolver`.

- "gauss_seidel"       : forward pre-sweep, backward post-sweep (default)
- "sor"                : as "gauss_seidel", with relaxation weight ``omega``
- "block_gauss_seidel" : as "gauss_seidel", on diagonal blocks
- "jacobi"             : damped Jacobi, weight scaled by ``1 / rho(D^-1 A)``
- "block_jacobi", "richardson", "chebyshev" : same spec before and after
- None                 : no smoothing

An explicit ``sweep`` keyword overrides the forward/backward pairing.

Coarse solvers
--------------
`CoarseSolver` binds the coarsest operator to a solver from
`pyamg.multilevel.coarse_grid_solver` ("pinv" by default, "pinvh", "lu",
"cholesky", "splu"). The factorization is computed at construction.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Callable

import numpy as np

from pyamg.multilevel import coarse_grid_solver

from .errors import InvalidConfigurationError
from .types import MethodSpec, SparseLike
from .util import unpack_arg

SmootherSpec = tuple[str, dict[str, Any]]
SmootherFactory = Callable[[SparseLike], Any]
SolverFactory = Callable[[SparseLike], Any]

SWEEP_SMOOTHERS = ("gauss_seidel", "sor", "block_gauss_seidel")
SMOOTHER_METHODS = SWEEP_SMOOTHERS + ("jacobi", "block_jacobi", "richardson", "chebyshev")
COARSE_SOLVER_METHODS = ("pinv", "pinvh", "lu", "cholesky", "splu")


def smoother_specs(A: SparseLike, *, method: str = "gauss_seidel", **kwargs: Any) -> tuple[SmootherSpec, SmootherSpec]:
    """Return the ``(presmoother, postsmoother)`` PyAMG specs for one level.

    Parameters
    ----------
    A
        Level operator the smoother will relax on. PyAMG reads it again when
        the specs are applied (e.g. for the Jacobi spectral radius).
    method
        One of `SMOOTHER_METHODS`.
    kwargs
        Passed through to the PyAMG ``setup_<method>`` routine.

    Returns
    -------
    pre, post
        ``(name, kwargs)`` specs. Sweep-based methods relax forward before
        restriction and backward after prolongation unless ``sweep`` is given.
    """
    if method not in SMOOTHER_METHODS:
        raise InvalidConfigurationError(f"Unrecognized smoother: {method!r}")
    if method in SWEEP_SMOOTHERS and "sweep" not in kwargs:
        return (method, {**kwargs, "sweep": "forward"}), (method, {**kwargs, "sweep": "backward"})
    return (method, dict(kwargs)), (method, dict(kwargs))


class CoarseSolver:
    """Direct solver for the coarsest level operator.

    Wraps the solver object of `pyamg.multilevel.coarse_grid_solver`, which
    is called as ``solver(A, b)``, and keeps the operator it was built for.
    """

    def __init__(self, A: SparseLike, method: MethodSpec = "pinv") -> None:
        name, kwargs = unpack_arg(method)
        if name not in COARSE_SOLVER_METHODS:
            raise InvalidConfigurationError(f"Unrecognized coarse solver: {name!r}")
        self.method = name
        self.A = A
        self.shape = A.shape
        self._solver = coarse_grid_solver((name, kwargs))
        # factor now so failures surface during setup
        self._solver(A, np.zeros(A.shape[0], dtype=A.dtype))

    def solve(self, b: np.ndarray) -> np.ndarray:
        """Return the solution of ``A x = b``, shaped like `b`."""
        return self._solver(self.A, np.asarray(b))

    def __call__(self, A: SparseLike, b: np.ndarray) -> np.ndarray:
        return self.solve(b)

    def name(self) -> str:
        """Short method name, as shown in multilevel summaries."""
        return self.method

    def __repr__(self) -> str:
        return self.method


def make_smoother_factory(spec: MethodSpec | SmootherFactory) -> SmootherFactory | None:
    """Resolve a smoother spec into a ``factory(A) -> (pre, post)`` callable (or None)."""
    if callable(spec):
        return spec
    name, kwargs = unpack_arg(spec)
    if name is None:
        return None
    if name not in SMOOTHER_METHODS:
        raise InvalidConfigurationError(f"Unrecognized smoother: {name!r}")
    return partial(smoother_specs, method=name, **kwargs)


def make_coarse_solver_factory(spec: MethodSpec | SolverFactory) -> SolverFactory:
    """Resolve a coarse solver spec into a ``factory(A) -> solver`` callable."""
    if callable(spec):
        return spec
    name, kwargs = unpack_arg(spec)
    if name not in COARSE_SOLVER_METHODS:
        raise InvalidConfigurationError(f"Unrecognized coarse solver: {name!r}")
    return partial(CoarseSolver, method=(name, kwargs))
