"""Smoothed aggregation hierarchy construction.

This module provides:
  - `SmoothedAggregationHierarchy`, which owns the solve-phase `Level` records
    and the construction-time `SetupLevel` records and builds them by
    repeated coarsening,
  - `smoothed_aggregation_hierarchy`, a one-call entry point taking
    PyAMG-style method specs.

One coarsening step (`extend_hierarchy`) runs, strictly in this order:

    C            = strength_of_connection(A)
    aggregates   = aggregate(C)
    T, B_coarse  = fit_candidates(aggregates, B)
    P, rho       = smooth_prolongator(A, T, rho)
    R            = form_restriction(P)
    RAP          = galerkin_product(R, A, P)

after which the current records receive (aggregates, R, P, residual) and a
new pair of records holding (RAP, B_coarse) is appended. Termination is
decided only by `initialize`, which also stops once a step fails to
reduce the number of unknowns.

Any failure clears the hierarchy; a partially built hierarchy is never left
behind.
"""

from __future__ import annotations

import time
from contextlib import contextmanager, nullcontext
from dataclasses import replace
from typing import Any
from warnings import warn

import numpy as np
from scipy.sparse import SparseEfficiencyWarning, csr_array, issparse

from pyamg.multilevel import MultilevelSolver
from pyamg.relaxation.smoothing import change_smoothers
from pyamg.util.utils import asfptype

from .errors import CollaboratorFailure, HierarchyError, InvalidConfigurationError, InvalidShapeError
from .formats import check_format, setup_level_matrix
from .options import SAOptions
from .smoothers import make_coarse_solver_factory, make_smoother_factory
from .stats import (
    LevelStats,
    finalize_level_stats,
    format_hierarchy_table,
    print_level_summary,
    print_setup_summary,
)
from .types import HierarchySummary, Level, MethodSpec, SetupLevel, SparseLike
from .util import check_partition

_KEEP: Any = object()


@contextmanager
def _collaborator_step(name: str, level: int, stats: LevelStats | None = None):
    """Time one setup step and wrap foreign exceptions in `CollaboratorFailure`.

    Exceptions that already belong to the `HierarchyError` taxonomy propagate
    unchanged.
    """
    timer = stats.timer(name) if stats is not None else nullcontext()
    try:
        with timer:
            yield
    except HierarchyError:
        raise
    except Exception as e:
        raise CollaboratorFailure(name, level, str(e)) from e


def _check_shape(step: str, actual: tuple[int, ...], expected: tuple[int, ...]) -> None:
    """Raise `InvalidShapeError` if a step produced an operator of the wrong shape."""
    if tuple(actual) != tuple(expected):
        raise InvalidShapeError(f"{step} produced shape {tuple(actual)}, expected {tuple(expected)}")


def _solve_ready(M: SparseLike) -> SparseLike:
    """Return M in a format PyAMG's cycling accepts (CSR or BSR)."""
    return M if M.format in ("csr", "bsr") else csr_array(M)


class SmoothedAggregationHierarchy:
    """Multilevel smoothed aggregation hierarchy.

    Parameters
    ----------
    A
        Fine-level sparse operator. If given, `initialize` is called at once.
    B
        Near-null-space candidate(s), shape (n,) or (n, k). Defaults to the
        all-ones vector for scalar problems.
    options
        Strategy bundle; a default `SAOptions()` if None. The bundle is never
        mutated and may be shared between hierarchies.
    smoother
        Smoother spec or ``factory(A)`` callable (see `saamg.smoothers`).
        None disables smoothing.
    coarse_solver
        Coarse solver spec or ``factory(A)`` callable.
    solve_format
        SciPy sparse format of the operators stored in the `Level` records.
    print_info
        If True, print per-level diagnostics during setup.

    Attributes
    ----------
    levels
        Solve-phase `Level` records, finest first.
    setup_levels
        Construction-time `SetupLevel` records, one per level.
    solver
        Coarse solver built from the coarsest operator.
    summary
        `HierarchySummary` of the fine operator.

    Examples
    --------
    >>> from pyamg.gallery import poisson
    >>> A = poisson((100,), format="csr")
    >>> ml = SmoothedAggregationHierarchy(A, options=SAOptions(min_level_size=10))
    >>> sizes = [lvl.A.shape[0] for lvl in ml.levels]
    >>> sizes[0], sizes[-1] <= 10
    (100, True)
    """

    def __init__(
        self,
        A: Any = None,
        B: Any = None,
        options: SAOptions | None = None,
        *,
        smoother: MethodSpec | Any = "gauss_seidel",
        coarse_solver: MethodSpec | Any = "pinv",
        solve_format: str = "csr",
        print_info: bool = False,
    ) -> None:
        if options is None:
            options = SAOptions()
        if not isinstance(options, SAOptions):
            raise InvalidConfigurationError(f"options must be SAOptions, got {type(options).__name__}")
        self.options = options
        self.smoother_factory = make_smoother_factory(smoother)
        self.solver_factory = make_coarse_solver_factory(coarse_solver)
        self.solve_format = check_format(solve_format)
        self.print_info = print_info

        self.levels: list[Level] = []
        self.setup_levels: list[SetupLevel] = []
        self.solver: Any = None
        self.summary: HierarchySummary | None = None

        if A is not None:
            self.initialize(A, B)

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------
    def initialize(self, A: Any, B: Any = None) -> "SmoothedAggregationHierarchy":
        """Build the hierarchy for `A` from scratch, discarding any previous levels.

        Raises
        ------
        TypeError
            If `A` cannot be converted to a sparse CSR array.
        InvalidShapeError
            If `B` does not match `A`, or a strategy rejects an operator.
        InvalidConfigurationError
            If `A` is a block matrix and no candidates `B` are given.
        CollaboratorFailure
            If a strategy, smoother or solver factory fails.
        """
        self._clear()
        try:
            A, B = self._prepare_input(A, B)
            self._build(A, B)
        except Exception:
            self._clear()
            raise
        return self

    def extend_hierarchy(self, A: SparseLike | None = None) -> bool:
        """Append one coarser level below the current coarsest level.

        `A` defaults to the coarsest setup operator and must match its shape.
        The new level's solve operator, the smoothers and the coarse solver
        are refreshed afterwards, so the hierarchy stays ready for the solve
        phase.

        Returns False, leaving the levels as they were, if the aggregation
        step produced no fewer aggregates than `A` has rows.
        """
        if not self.setup_levels:
            raise InvalidConfigurationError("hierarchy has not been initialized")
        try:
            if A is None:
                A = self.setup_levels[-1].A
            else:
                _check_shape("extend_hierarchy", A.shape, self.setup_levels[-1].A.shape)
            extended = self._extend(A)
            self._finalize()
        except Exception:
            self._clear()
            raise
        return extended

    def _clear(self) -> None:
        self.levels = []
        self.setup_levels = []
        self.solver = None
        self.summary = None

    def _prepare_input(self, A: Any, B: Any) -> tuple[SparseLike, np.ndarray]:
        blocksize = 1
        if issparse(A) and A.format == "bsr":
            blocksize = A.blocksize[0]

        if not issparse(A) or A.format != "csr":
            try:
                A = csr_array(A)
                warn("Implicit conversion of A to CSR", SparseEfficiencyWarning)
            except Exception as e:
                raise TypeError("Argument A must be a sparse matrix/array or be "
                                "convertible to csr_array") from e
        A = asfptype(A)

        n = A.shape[0]
        if B is None:
            if blocksize > 1:
                raise InvalidConfigurationError(
                    f"A has blocksize {blocksize}; near-null-space candidates B "
                    "must be given explicitly for block systems"
                )
            B = np.ones(n, dtype=A.dtype)
        else:
            B = np.asarray(B)
            B = np.array(B, dtype=np.result_type(A.dtype, B.dtype))
            if B.ndim not in (1, 2) or B.shape[0] != n:
                raise InvalidShapeError(f"B has shape {B.shape}, expected ({n},) or ({n}, k)")
        return A, B

    def _build(self, A: SparseLike, B: np.ndarray) -> None:
        opts = self.options
        self.summary = HierarchySummary(
            num_rows=int(A.shape[0]),
            num_cols=int(A.shape[1]),
            num_entries=int(A.nnz),
        )

        self.levels.append(Level(A=setup_level_matrix(A, self.solve_format)))
        self.setup_levels.append(SetupLevel(A=A, B=B))

        smoother_time = 0.0
        if A.shape[0] > opts.min_level_size and opts.max_levels > 1 and self._extend(A):
            t0 = time.perf_counter()
            self.levels[0].smoother = self._make_smoother(0)
            smoother_time += time.perf_counter() - t0

            while (self.setup_levels[-1].A.shape[0] > opts.min_level_size
                   and len(self.setup_levels) < opts.max_levels):
                if not self._extend(self.setup_levels[-1].A):
                    break

        solver_time, more_smoother_time = self._finalize()
        print_setup_summary(
            smoother_setup_time=smoother_time + more_smoother_time,
            solver_setup_time=solver_time,
            print_info=self.print_info,
        )

    def _extend(self, A: SparseLike) -> bool:
        """Run one coarsening step on `A`; return False if it did not coarsen.

        A step whose prolongator has as many columns as `A` has rows leaves
        the records untouched, so the current level stays the coarsest.
        """
        opts = self.options
        lvl = len(self.setup_levels) - 1
        current = self.setup_levels[-1]
        n = A.shape[0]
        stats = LevelStats(level=lvl, n_fine=n)

        with _collaborator_step("strength", lvl, stats):
            C = opts.strength_of_connection(A)
        _check_shape("strength", C.shape, A.shape)

        with _collaborator_step("aggregate", lvl, stats):
            aggregates = opts.aggregate(C)
        aggregates = check_partition(aggregates, n)

        with _collaborator_step("fit_candidates", lvl, stats):
            T, B_coarse = opts.fit_candidates(aggregates, current.B)
        if T.shape[0] != n or np.shape(B_coarse)[0] != T.shape[1]:
            raise InvalidShapeError(
                f"fit_candidates produced T {T.shape} and B_coarse {np.shape(B_coarse)} "
                f"for {n} rows"
            )

        with _collaborator_step("smooth_P", lvl, stats):
            P, rho = opts.smooth_prolongator(A, T, current.rho_DinvA)
        _check_shape("smooth_P", P.shape, T.shape)
        current.rho_DinvA = float(rho)

        n_coarse = P.shape[1]
        if n_coarse >= n:
            return False
        with _collaborator_step("restriction", lvl, stats):
            R = opts.form_restriction(P)
        _check_shape("restriction", R.shape, (n_coarse, n))

        with _collaborator_step("galerkin", lvl, stats):
            RAP = opts.galerkin_product(R, A, P)
        _check_shape("galerkin", RAP.shape, (n_coarse, n_coarse))

        finalize_level_stats(stats, aggregates=aggregates, P=P, rho=current.rho_DinvA,
                             n_coarse=n_coarse)
        print_level_summary(stats, print_info=self.print_info)

        # Setup components for next level in hierarchy
        current.aggregates = aggregates
        current.stats = stats
        self.setup_levels.append(SetupLevel(A=RAP, B=B_coarse))

        level = self.levels[-1]
        level.R = setup_level_matrix(R, self.solve_format)
        level.P = setup_level_matrix(P, self.solve_format)
        level.residual = np.zeros(n, dtype=A.dtype)

        self.levels.append(Level(
            x=np.zeros(n_coarse, dtype=RAP.dtype),
            b=np.zeros(n_coarse, dtype=RAP.dtype),
        ))
        return True

    def _make_smoother(self, lvl: int) -> Any:
        if self.smoother_factory is None:
            return None
        with _collaborator_step("smoother", lvl):
            return self.smoother_factory(self.levels[lvl].A)

    def _finalize(self) -> tuple[float, float]:
        """Build the coarse solver, solve operators and missing smoothers.

        Returns the time spent on the coarse solver and on smoothers.
        """
        t0 = time.perf_counter()
        with _collaborator_step("coarse_solver", len(self.setup_levels) - 1):
            self.solver = self.solver_factory(self.setup_levels[-1].A)
        solver_time = time.perf_counter() - t0

        t0 = time.perf_counter()
        for lvl in range(1, len(self.setup_levels)):
            level = self.levels[lvl]
            if level.A is None:
                level.A = setup_level_matrix(self.setup_levels[lvl].A, self.solve_format)
            if level.smoother is None:
                level.smoother = self._make_smoother(lvl)
        if len(self.levels) > 1 and self.levels[0].smoother is None:
            self.levels[0].smoother = self._make_smoother(0)
        smoother_time = time.perf_counter() - t0

        fine = self.levels[0].A
        _check_shape("initialize", fine.shape, (self.summary.num_rows, self.summary.num_cols))
        return solver_time, smoother_time

    # ------------------------------------------------------------------
    # copy / rebind
    # ------------------------------------------------------------------
    def clone(
        self,
        *,
        solve_format: str | None = None,
        smoother: Any = _KEEP,
        coarse_solver: Any = _KEEP,
    ) -> "SmoothedAggregationHierarchy":
        """Return an independent copy, optionally in another representation.

        The strategy bundle is copied by value and every setup record is
        deep-copied in order; coarsening is not re-run. Level operators are
        converted to `solve_format` (default: the current one), work vectors
        are re-allocated, and smoothers and the coarse solver are rebuilt
        with the given factories (default: the current ones).
        """
        other = SmoothedAggregationHierarchy(
            options=replace(self.options),
            smoother=self.smoother_factory if smoother is _KEEP else smoother,
            coarse_solver=self.solver_factory if coarse_solver is _KEEP else coarse_solver,
            solve_format=self.solve_format if solve_format is None else solve_format,
            print_info=self.print_info,
        )
        if not self.setup_levels:
            return other

        fmt = other.solve_format
        other.summary = self.summary
        other.setup_levels = [setup.copy() for setup in self.setup_levels]
        for lvl, level in enumerate(self.levels):
            other.levels.append(Level(
                A=setup_level_matrix(level.A, fmt, copy=True),
                P=None if level.P is None else setup_level_matrix(level.P, fmt, copy=True),
                R=None if level.R is None else setup_level_matrix(level.R, fmt, copy=True),
                x=None if level.x is None else np.zeros_like(level.x),
                b=None if level.b is None else np.zeros_like(level.b),
                residual=None if level.residual is None else np.zeros_like(level.residual),
            ))
            if level.smoother is not None:
                other.levels[lvl].smoother = other._make_smoother(lvl)
        with _collaborator_step("coarse_solver", len(other.setup_levels) - 1):
            other.solver = other.solver_factory(other.setup_levels[-1].A)
        return other

    def __copy__(self) -> "SmoothedAggregationHierarchy":
        return self.clone()

    def __deepcopy__(self, memo: dict) -> "SmoothedAggregationHierarchy":
        return self.clone()

    # ------------------------------------------------------------------
    # diagnostics and solve hand-off
    # ------------------------------------------------------------------
    def _level_sizes(self) -> list[tuple[int, int]]:
        rows = [(self.summary.num_rows, self.summary.num_entries)]
        for setup in self.setup_levels[1:]:
            rows.append((int(setup.A.shape[0]), int(setup.A.nnz)))
        return rows

    def operator_complexity(self) -> float:
        """Total nonzeros of all level operators divided by the fine nonzeros."""
        if self.summary is None:
            raise InvalidConfigurationError("hierarchy has not been initialized")
        rows = self._level_sizes()
        return sum(nnz for _, nnz in rows) / max(rows[0][1], 1)

    def grid_complexity(self) -> float:
        """Total unknowns of all levels divided by the fine unknowns."""
        if self.summary is None:
            raise InvalidConfigurationError("hierarchy has not been initialized")
        rows = self._level_sizes()
        return sum(n for n, _ in rows) / max(rows[0][0], 1)

    def __len__(self) -> int:
        return len(self.levels)

    def __repr__(self) -> str:
        if self.summary is None:
            return "SmoothedAggregationHierarchy (empty)"
        return format_hierarchy_table(
            rows=self._level_sizes(),
            operator_complexity=self.operator_complexity(),
            grid_complexity=self.grid_complexity(),
            coarse_solver=self.solver,
        )

    def as_multilevel_solver(self) -> MultilevelSolver:
        """Hand the hierarchy to PyAMG's `MultilevelSolver` for the solve phase.

        The returned solver shares the level operators, transfer operators,
        smoothers and coarse solver of this hierarchy.
        """
        if self.summary is None:
            raise InvalidConfigurationError("hierarchy has not been initialized")

        ml_levels = []
        for level in self.levels:
            ml_level = MultilevelSolver.Level()
            ml_level.A = _solve_ready(level.A)
            if level.P is not None:
                ml_level.P = _solve_ready(level.P)
                ml_level.R = _solve_ready(level.R)
            ml_levels.append(ml_level)

        ml = MultilevelSolver(ml_levels)
        if len(self.levels) > 1:
            # None selects PyAMG's no-op relaxation
            pre = [None if lvl.smoother is None else lvl.smoother[0] for lvl in self.levels[:-1]]
            post = [None if lvl.smoother is None else lvl.smoother[1] for lvl in self.levels[:-1]]
            change_smoothers(ml, pre, post)
        ml.coarse_solver = self.solver
        return ml


def smoothed_aggregation_hierarchy(
    A: Any,
    B: Any = None,
    *,
    max_levels: int = 10,
    min_level_size: int = 10,
    strength: MethodSpec = "symmetric",
    aggregate: MethodSpec = "standard",
    fit_candidates: MethodSpec = "qr",
    smooth: MethodSpec = "jacobi",
    restriction: MethodSpec = "hermitian",
    galerkin: MethodSpec = "rap",
    smoother: MethodSpec = "gauss_seidel",
    coarse_solver: MethodSpec = "pinv",
    solve_format: str = "csr",
    print_info: bool = False,
) -> SmoothedAggregationHierarchy:
    """Build a smoothed aggregation hierarchy from PyAMG-style method specs.

    Parameters
    ----------
    A
        Fine-level sparse operator.
    B
        Near-null-space candidate(s); all ones if None (scalar problems only).
    max_levels, min_level_size
        Termination controls, see `SAOptions`.
    strength, aggregate, fit_candidates, smooth, restriction, galerkin
        Method specs, see `SAOptions.from_specs`.
    smoother, coarse_solver
        Smoother and coarse solver specs, see `saamg.smoothers`.
    solve_format
        Storage format of the solve-phase operators.
    print_info
        Print per-level diagnostics during setup.

    Returns
    -------
    SmoothedAggregationHierarchy

    Examples
    --------
    >>> from pyamg.gallery import poisson
    >>> ml = smoothed_aggregation_hierarchy(poisson((32, 32), format="csr"))
    >>> ml.levels[-1].A.shape[0] <= 10
    True
    """
    options = SAOptions.from_specs(
        max_levels=max_levels,
        min_level_size=min_level_size,
        strength=strength,
        aggregate=aggregate,
        fit_candidates=fit_candidates,
        smooth=smooth,
        restriction=restriction,
        galerkin=galerkin,
    )
    return SmoothedAggregationHierarchy(
        A,
        B,
        options,
        smoother=smoother,
        coarse_solver=coarse_solver,
        solve_format=solve_format,
        print_info=print_info,
    )
