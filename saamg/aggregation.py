"""Aggregation strategies.

An aggregation strategy partitions the rows of the strength matrix C into
disjoint aggregates and returns the partition as an int32 id array:

    aggregates[i] = id of the aggregate containing fine row i

Ids are contiguous (``0..n_aggs-1``) and every row is assigned.

Main responsibilities
---------------------
1) Aggregation:
   Builds an aggregation operator AggOp (n_fine x n_aggs, at most one nonzero
   per row) with the requested PyAMG routine (standard, naive, lloyd) or a
   predefined partition.

2) Cleanup of unaggregated rows:
   PyAMG leaves isolated rows (no strong off-diagonal connection) out of every
   aggregate. The ``isolated`` policy decides what happens to them:
     - "singleton" : each such row becomes its own aggregate (default)
     - "neighbor"  : assign to the neighbouring aggregate with the largest
                     weighted vote in C, then singletons for any leftovers
     - "error"     : raise `InvalidShapeError`

3) Conversion of AggOp into the compact id array, dropping empty aggregates.
"""

from __future__ import annotations

from functools import partial
from typing import Any

import numpy as np
from scipy.sparse import csr_array, coo_array, hstack, issparse

from pyamg.aggregation.aggregate import (
    standard_aggregation,
    naive_aggregation,
    lloyd_aggregation,
)

from .errors import InvalidConfigurationError, InvalidShapeError
from .types import AggregateFn, IndexArray, MethodSpec, SparseLike
from .util import check_partition, unpack_arg

AGGREGATION_METHODS = ("standard", "naive", "lloyd", "predefined")
ISOLATED_POLICIES = ("singleton", "neighbor", "error")


def fill_unaggregated(
    Adj,
    AggOp,
    *,
    isolated: str = "singleton",
    use_weights: bool = True,
    iterate: bool = False,
):
    """Assign unaggregated fine rows according to the `isolated` policy.

    A fine row is unaggregated if its row in AggOp has no nonzeros.

    With ``isolated="neighbor"`` the procedure is:
      1) Form a nonnegative adjacency/weight matrix W from Adj.
      2) Compute V = W @ AggOp, which gives, for each fine row, a weighted vote
         for each aggregate based on its neighbors' aggregate assignments.
      3) For each unassigned row i, assign it to the aggregate with the largest vote.
      4) Optionally repeat one pass (`iterate=True`) to let newly assigned rows help.
    Rows still unassigned afterwards (and all unassigned rows under
    ``isolated="singleton"``) become singleton aggregates appended after the
    existing columns.

    Parameters
    ----------
    Adj
        CSR sparse matrix/array of shape (n_fine, n_fine) used as a neighbor graph.
    AggOp
        CSR sparse matrix/array of shape (n_fine, n_aggs) with one nonzero per
        assigned row.
    isolated
        One of `ISOLATED_POLICIES`.
    use_weights
        If True, weight votes by abs(Adj) values. If False, treat the graph as
        unweighted (all ones on nonzeros).
    iterate
        If True, perform a second voting pass after the first assignments.

    Returns
    -------
    AggOp_filled
        CSR sparse aggregation operator with all rows assigned. The number of
        columns may increase if singleton aggregates are created.

    Raises
    ------
    InvalidShapeError
        With ``isolated="error"`` if any row is unaggregated.
    """
    if (not issparse(Adj)) or Adj.format != "csr":
        raise TypeError("Adj must be CSR sparse")

    if (not issparse(AggOp)) or AggOp.format != "csr":
        raise TypeError("AggOp must be CSR sparse")

    if isolated not in ISOLATED_POLICIES:
        raise InvalidConfigurationError(f"Unrecognized isolated-row policy: {isolated!r}")

    AggOp = csr_array(AggOp, dtype=float)
    n_fine, n_aggs = AggOp.shape

    def _unassigned(A):
        nnz_row = A.indptr[1:] - A.indptr[:-1]
        return np.flatnonzero(nnz_row == 0)

    def _single_pass(A, W):
        unassigned = _unassigned(A)
        if unassigned.size == 0:
            return A, 0

        V = W @ A  # weighted votes per aggregate

        new_rows: list[int] = []
        new_cols: list[int] = []
        for i in unassigned:
            s, e = V.indptr[i], V.indptr[i + 1]
            if e <= s:
                continue
            cols_i = V.indices[s:e]
            vals_i = V.data[s:e]
            new_rows.append(int(i))
            new_cols.append(int(cols_i[int(np.argmax(vals_i))]))

        if new_rows:
            add = coo_array(
                (np.ones(len(new_rows)), (np.asarray(new_rows), np.asarray(new_cols))),
                shape=A.shape,
            )
            A = csr_array(A + add)

        return A, len(new_rows)

    if isolated == "neighbor":
        # Nonnegative weights without self-votes
        W = csr_array(Adj, dtype=float, copy=True)
        W.setdiag(0)
        W.eliminate_zeros()
        if use_weights:
            W.data = np.abs(W.data)
        else:
            W.data[:] = 1.0

        AggOp, n_new = _single_pass(AggOp, W)
        if iterate and n_new > 0:
            AggOp, _ = _single_pass(AggOp, W)

    still_unassigned = _unassigned(AggOp)

    if still_unassigned.size > 0:
        if isolated == "error":
            raise InvalidShapeError(
                f"{still_unassigned.size} rows were left out of every aggregate"
            )
        k = int(still_unassigned.size)

        # Pad AggOp with k empty columns and then add one 1 per remaining row.
        AggOp = hstack([AggOp, csr_array((n_fine, k), dtype=AggOp.dtype)], format="csr")

        new_cols = np.arange(n_aggs, n_aggs + k, dtype=np.int32)
        add = coo_array(
            (np.ones(k, dtype=AggOp.dtype), (still_unassigned.astype(np.int32), new_cols)),
            shape=AggOp.shape,
        )
        AggOp = csr_array(AggOp + add)

    AggOp.eliminate_zeros()
    return AggOp


def aggop_to_aggregates(AggOp) -> IndexArray:
    """Convert an aggregation operator into a contiguous aggregate id array.

    Every row of AggOp must hold exactly one nonzero. Columns without any
    nonzero (empty aggregates) are dropped and the remaining ids renumbered
    in increasing column order.
    """
    AggOp = csr_array(AggOp)
    AggOp.eliminate_zeros()
    nnz_row = np.diff(AggOp.indptr)
    if np.any(nnz_row != 1):
        raise InvalidShapeError("each row of AggOp must belong to exactly one aggregate")
    _, aggregates = np.unique(AggOp.indices, return_inverse=True)
    return np.ravel(aggregates).astype(np.int32)


def build_aggregates(
    C: SparseLike,
    *,
    method: str = "standard",
    isolated: str = "singleton",
    **kwargs: Any,
) -> IndexArray:
    """Partition the rows of C into aggregates.

    Parameters
    ----------
    C
        Strength-of-connection / adjacency matrix (CSR).
    method
        One of `AGGREGATION_METHODS`. For "predefined" pass either ``AggOp``
        (sparse, n_fine x n_aggs) or ``aggregates`` (id array) as keyword.
    isolated
        Policy for rows left unaggregated; see `fill_unaggregated`.
    kwargs
        Passed through to the PyAMG aggregation routine.

    Returns
    -------
    aggregates
        int32 array of length C.shape[0] with contiguous aggregate ids.
    """
    C = csr_array(C)
    C.eliminate_zeros()
    n = C.shape[0]

    if method == "predefined" and "aggregates" in kwargs:
        AggOp = csr_array(
            (np.ones(n), (np.arange(n), np.asarray(kwargs["aggregates"]))),
        )
    elif method == "predefined":
        AggOp = csr_array(kwargs["AggOp"])
    elif method == "standard":
        AggOp, _ = standard_aggregation(C, **kwargs)
    elif method == "naive":
        AggOp, _ = naive_aggregation(C, **kwargs)
    elif method == "lloyd":
        # Lloyd treats the entries as distances
        AggOp = lloyd_aggregation(abs(C), **kwargs)[0]
    else:
        raise InvalidConfigurationError(f"Unrecognized aggregation method: {method!r}")

    AggOp = csr_array(AggOp)
    if AggOp.shape[0] != n:
        raise InvalidShapeError(f"AggOp has {AggOp.shape[0]} rows, expected {n}")

    AggOp = fill_unaggregated(C, AggOp, isolated=isolated)
    return check_partition(aggop_to_aggregates(AggOp), n)


def make_aggregate(spec: MethodSpec | AggregateFn) -> AggregateFn:
    """Resolve an aggregation spec into an ``aggregate(C) -> aggregates`` callable.

    The isolated-row policy is given as the ``isolated`` keyword of the spec,
    e.g. ``("standard", {"isolated": "neighbor"})``.
    """
    if callable(spec):
        return spec
    name, kwargs = unpack_arg(spec)
    if name not in AGGREGATION_METHODS:
        raise InvalidConfigurationError(f"Unrecognized aggregation method: {name!r}")
    isolated = kwargs.pop("isolated", "singleton")
    if isolated not in ISOLATED_POLICIES:
        raise InvalidConfigurationError(f"Unrecognized isolated-row policy: {isolated!r}")
    if name == "predefined" and not ({"AggOp", "aggregates"} & kwargs.keys()):
        raise InvalidConfigurationError("predefined aggregation requires 'AggOp' or 'aggregates'")
    return partial(build_aggregates, method=name, isolated=isolated, **kwargs)
