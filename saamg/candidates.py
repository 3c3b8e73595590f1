"""Tentative prolongator construction from aggregates and candidates.

For each aggregate, the rows of the near-null-space candidate block B that
belong to the aggregate are orthonormalized with a local QR factorization.
The Q factors become the columns of the tentative prolongator T (one column
per aggregate and candidate, nonzero pattern = aggregate membership) and the
R factors stack into the coarse candidates, so that ``T @ B_coarse == B``.

The local QR is PyAMG's `fit_candidates`; this module builds the aggregation
operator it expects from the compact id array and keeps 1-D candidates 1-D.
"""

from __future__ import annotations

from functools import partial

import numpy as np
from scipy.sparse import csr_array

from pyamg.aggregation.tentative import fit_candidates

from .errors import InvalidConfigurationError, InvalidShapeError
from .types import FitCandidatesFn, IndexArray, MethodSpec
from .util import unpack_arg

FIT_METHODS = ("qr",)


def aggregates_to_aggop(aggregates: IndexArray) -> csr_array:
    """Return the (n_fine x n_aggs) 0/1 aggregation operator of an id array."""
    aggregates = np.asarray(aggregates, dtype=np.int32)
    n = aggregates.shape[0]
    n_aggs = int(aggregates.max()) + 1 if n > 0 else 0
    return csr_array(
        (np.ones(n), (np.arange(n, dtype=np.int32), aggregates)),
        shape=(n, n_aggs),
    )


def fit_candidates_qr(aggregates: IndexArray, B: np.ndarray, *, tol: float = 1e-10):
    """Fit the candidates B locally on each aggregate.

    Parameters
    ----------
    aggregates
        Contiguous aggregate ids, one per fine row.
    B
        Candidate vector of shape (n_fine,) or candidate block of shape
        (n_fine, k).
    tol
        Columns of a local block with norm below `tol` are treated as zero.

    Returns
    -------
    T
        CSR tentative prolongator of shape (n_fine, n_aggs * k).
    B_coarse
        Coarse candidates with shape (n_aggs,) for 1-D input, else (n_aggs * k, k).
    """
    B = np.asarray(B)
    n = len(aggregates)
    if B.ndim not in (1, 2) or B.shape[0] != n:
        raise InvalidShapeError(f"B has shape {B.shape}, expected ({n},) or ({n}, k)")

    AggOp = aggregates_to_aggop(aggregates)
    T, B_coarse = fit_candidates(AggOp, B.reshape(n, -1), tol=tol)

    T = csr_array(T)
    T.sort_indices()
    if B.ndim == 1:
        B_coarse = np.ravel(B_coarse)
    return T, B_coarse


def make_fit_candidates(spec: MethodSpec | FitCandidatesFn) -> FitCandidatesFn:
    """Resolve a candidate-fitting spec into a ``fit(aggregates, B)`` callable."""
    if callable(spec):
        return spec
    name, kwargs = unpack_arg(spec)
    if name not in FIT_METHODS:
        raise InvalidConfigurationError(f"Unrecognized candidate fitting method: {name!r}")
    return partial(fit_candidates_qr, **kwargs)
