"""Typed per-level data containers used throughout the SA setup.

This module defines small dataclasses that group "level state" into coherent
parcels, plus the structural types of the pluggable strategies.

Containers
----------
Level
    Solve-phase record for one level of the hierarchy:
      - A        : level operator in the solve format
      - P, R     : prolongation / restriction to the next-coarser level
      - smoother : (presmoother, postsmoother) PyAMG spec pair built from A
      - x, b     : work vectors sized to A's rows (levels created by coarsening)
      - residual : work vector sized to A's rows (levels owning P/R)

SetupLevel
    Construction-only record for one level:
      - A          : setup-format (CSR) operator
      - B          : near-null-space candidate(s), one row per row of A
      - aggregates : fine row -> aggregate id (set once the level is coarsened)
      - rho_DinvA  : spectral radius estimate used by the prolongation smoother,
                     rho(D^{-1} A) for Jacobi and rho(A) for Richardson
                     (0.0 = not estimated)
      - stats      : per-level diagnostics (`saamg.stats.LevelStats`)

HierarchySummary
    Fine-level shape and entry count recorded at the start of `initialize`.

Invariants
----------
- ``aggregates`` is an int32 array with values in ``0..n_aggs-1``, every id used.
- ``levels[k + 1].A.shape[0] == levels[k].P.shape[1]``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from typing import TypeAlias

import numpy as np
from numpy.typing import NDArray

from scipy.sparse import spmatrix
from scipy.sparse import sparray

SparseLike = spmatrix | sparray
MethodSpec = str | tuple[str, dict[str, Any]] | None

IndexArray: TypeAlias = NDArray[np.int32]


class StrengthFn(Protocol):
    """Strength-of-connection strategy: ``C = strength(A)``."""

    def __call__(self, A: SparseLike) -> SparseLike: ...


class AggregateFn(Protocol):
    """Aggregation strategy: ``aggregates = aggregate(C)``."""

    def __call__(self, C: SparseLike) -> IndexArray: ...


class FitCandidatesFn(Protocol):
    """Candidate fitting strategy: ``T, B_coarse = fit(aggregates, B)``."""

    def __call__(self, aggregates: IndexArray, B: np.ndarray) -> tuple[SparseLike, np.ndarray]: ...


class SmoothProlongatorFn(Protocol):
    """Prolongation smoothing strategy: ``P, rho = smooth(A, T, rho)``."""

    def __call__(self, A: SparseLike, T: SparseLike, rho: float) -> tuple[SparseLike, float]: ...


class RestrictionFn(Protocol):
    """Restriction strategy: ``R = form_restriction(P)``."""

    def __call__(self, P: SparseLike) -> SparseLike: ...


class GalerkinFn(Protocol):
    """Coarse operator strategy: ``RAP = galerkin(R, A, P)``."""

    def __call__(self, R: SparseLike, A: SparseLike, P: SparseLike) -> SparseLike: ...


@dataclass(slots=True)
class Level:
    """Solve-phase storage for one level of the hierarchy.

    Attributes
    ----------
    A
        Level operator in the hierarchy's solve format.
    P, R
        Transfer operators to the next-coarser level; None on the coarsest level.
    smoother
        ``(presmoother, postsmoother)`` specs produced by the smoother factory
        from ``A``, or None for no smoothing.
    x, b, residual
        Zero-filled work vectors. See the module docstring for which levels
        carry which vectors.
    """

    A: Optional[SparseLike] = None
    P: Optional[SparseLike] = None
    R: Optional[SparseLike] = None
    smoother: Any = None
    x: Optional[np.ndarray] = None
    b: Optional[np.ndarray] = None
    residual: Optional[np.ndarray] = None


@dataclass(slots=True)
class SetupLevel:
    """Construction-time storage for one level of the hierarchy."""

    A: Optional[SparseLike] = None
    B: Optional[np.ndarray] = None
    aggregates: Optional[IndexArray] = None
    rho_DinvA: float = 0.0
    stats: Any = None

    def copy(self) -> "SetupLevel":
        """Return a deep copy; no array or matrix is shared with `self`."""
        return SetupLevel(
            A=None if self.A is None else self.A.copy(),
            B=None if self.B is None else np.array(self.B, copy=True),
            aggregates=None if self.aggregates is None else self.aggregates.copy(),
            rho_DinvA=float(self.rho_DinvA),
            stats=copy.deepcopy(self.stats),
        )


@dataclass(slots=True, frozen=True)
class HierarchySummary:
    """Fine-level shape and stored-entry count of the operator passed to `initialize`."""

    num_rows: int
    num_cols: int
    num_entries: int
