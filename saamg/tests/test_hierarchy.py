"""Behavioural tests for `SmoothedAggregationHierarchy`.

The operators come from `pyamg.gallery`; every hierarchy is small enough for
the whole module to run in a few seconds.
"""

from __future__ import annotations

import copy

import numpy as np
import pytest
from scipy.sparse import SparseEfficiencyWarning, csr_array, diags

from pyamg.gallery import linear_elasticity, poisson

from saamg import (
    CollaboratorFailure,
    HierarchyError,
    InvalidConfigurationError,
    InvalidShapeError,
    SAOptions,
    SmoothedAggregationHierarchy,
    smoothed_aggregation_hierarchy,
)
from saamg.strength import make_strength


def _sizes(h: SmoothedAggregationHierarchy) -> list[int]:
    return [setup.A.shape[0] for setup in h.setup_levels]


@pytest.fixture
def A1d():
    return poisson((100,), format="csr")


@pytest.fixture
def A2d():
    return poisson((20, 20), format="csr")


def test_poisson_1d_coarsens_to_min_level_size(A1d) -> None:
    h = SmoothedAggregationHierarchy(A1d, options=SAOptions(min_level_size=10))
    sizes = _sizes(h)

    assert sizes[0] == 100
    assert all(a > b for a, b in zip(sizes, sizes[1:]))
    assert sizes[-1] <= 10
    assert len(h.levels) == len(h.setup_levels) == len(sizes)
    assert h.solver.shape == (sizes[-1], sizes[-1])


def test_level_shapes_conform(A2d) -> None:
    h = SmoothedAggregationHierarchy(A2d)
    sizes = _sizes(h)

    for k, level in enumerate(h.levels[:-1]):
        assert level.A.shape == (sizes[k], sizes[k])
        assert level.P.shape == (sizes[k], sizes[k + 1])
        assert level.R.shape == (sizes[k + 1], sizes[k])
        assert level.residual.shape == (sizes[k],)
        assert level.smoother is not None
    coarse = h.levels[-1]
    assert coarse.P is None and coarse.R is None
    assert coarse.A.shape == (sizes[-1], sizes[-1])

    # level 0 has no work vectors; every coarse level has x and b
    assert h.levels[0].x is None and h.levels[0].b is None
    for k, level in enumerate(h.levels[1:], start=1):
        assert level.x.shape == (sizes[k],)
        assert level.b.shape == (sizes[k],)
        assert not np.any(level.x) and not np.any(level.b)


def test_aggregates_partition_rows(A2d) -> None:
    h = SmoothedAggregationHierarchy(A2d)
    sizes = _sizes(h)

    for k, setup in enumerate(h.setup_levels[:-1]):
        agg = setup.aggregates
        assert agg.dtype == np.int32
        assert agg.shape == (sizes[k],)
        # scalar candidates: one coarse dof per aggregate, every id used
        np.testing.assert_array_equal(np.unique(agg), np.arange(sizes[k + 1]))
        assert setup.stats.n_aggs == sizes[k + 1]
        assert setup.rho_DinvA > 0.0
    assert h.setup_levels[-1].aggregates is None


def test_termination_rule(A2d) -> None:
    opts = SAOptions(max_levels=3, min_level_size=4)
    h = SmoothedAggregationHierarchy(A2d, options=opts)
    sizes = _sizes(h)

    assert len(h.levels) <= 3
    assert all(n > opts.min_level_size for n in sizes[:-1])
    assert sizes[-1] <= opts.min_level_size or len(h.levels) == opts.max_levels


def test_one_strength_call_per_coarsening_step(A2d) -> None:
    calls: list[int] = []
    symmetric = make_strength("symmetric")

    def recording_strength(A):
        calls.append(A.shape[0])
        return symmetric(A)

    h = SmoothedAggregationHierarchy(A2d, options=SAOptions(strength_of_connection=recording_strength))

    assert calls == _sizes(h)[:-1]
    assert len(calls) == len(h.levels) - 1


def test_level_records_grow_together(A2d) -> None:
    counts: list[tuple[int, int]] = []
    symmetric = make_strength("symmetric")

    def record(A):
        counts.append((len(h.levels), len(h.setup_levels)))
        return symmetric(A)

    h = SmoothedAggregationHierarchy(options=SAOptions(strength_of_connection=record))
    h.initialize(A2d)

    assert len(counts) > 1
    assert all(n_levels == n_setup for n_levels, n_setup in counts)
    assert [n for n, _ in counts] == list(range(1, len(counts) + 1))
    assert len(h.levels) == len(h.setup_levels) == len(counts) + 1


def test_max_levels_one_does_not_coarsen(A1d) -> None:
    h = SmoothedAggregationHierarchy(A1d, options=SAOptions(max_levels=1))

    assert len(h.levels) == len(h.setup_levels) == 1
    assert h.levels[0].P is None and h.levels[0].R is None
    assert h.levels[0].smoother is None
    assert h.setup_levels[0].aggregates is None
    assert h.solver.shape == A1d.shape


def test_fine_size_at_min_level_size_does_not_coarsen() -> None:
    A = poisson((10,), format="csr")
    h = SmoothedAggregationHierarchy(A, options=SAOptions(min_level_size=10))

    assert len(h.levels) == 1
    assert h.solver.shape == (10, 10)


def test_extend_hierarchy_appends_one_level(A1d) -> None:
    h = SmoothedAggregationHierarchy(A1d, options=SAOptions(max_levels=2))
    assert len(h.levels) == len(h.setup_levels) == 2
    n1 = h.setup_levels[1].A.shape[0]

    h.extend_hierarchy()

    assert len(h.levels) == len(h.setup_levels) == 3
    n2 = h.setup_levels[2].A.shape[0]
    assert n2 < n1
    assert h.levels[1].P.shape == (n1, n2)
    assert h.levels[1].smoother is not None
    assert h.levels[2].A.shape == (n2, n2)
    assert h.solver.shape == (n2, n2)


def test_extend_hierarchy_requires_initialize() -> None:
    h = SmoothedAggregationHierarchy()
    with pytest.raises(InvalidConfigurationError):
        h.extend_hierarchy()


def test_extend_hierarchy_shape_mismatch_clears(A1d) -> None:
    h = SmoothedAggregationHierarchy(A1d, options=SAOptions(max_levels=2))
    with pytest.raises(InvalidShapeError):
        h.extend_hierarchy(poisson((7,), format="csr"))
    assert len(h) == 0
    assert h.setup_levels == [] and h.solver is None and h.summary is None


def test_stalled_coarsening_stops() -> None:
    # no off-diagonal entries: every row is its own aggregate
    A = csr_array(diags(np.arange(1.0, 41.0)))
    h = SmoothedAggregationHierarchy(A)

    assert _sizes(h) == [40]
    assert len(h.levels) == 1
    assert h.levels[0].P is None and h.levels[0].smoother is None
    assert h.setup_levels[0].aggregates is None
    assert h.solver.shape == (40, 40)

    assert h.extend_hierarchy() is False
    assert _sizes(h) == [40]
    assert h.solver.shape == (40, 40)


def test_extend_hierarchy_reports_progress(A1d) -> None:
    h = SmoothedAggregationHierarchy(A1d, options=SAOptions(max_levels=2))
    assert h.extend_hierarchy() is True


def test_reinitialize_is_idempotent(A2d) -> None:
    h = SmoothedAggregationHierarchy(A2d)
    first_sizes = _sizes(h)
    first_aggs = [s.aggregates.copy() for s in h.setup_levels[:-1]]
    first_P = [lvl.P.toarray() for lvl in h.levels[:-1]]

    h.initialize(A2d)

    assert _sizes(h) == first_sizes
    for setup, agg in zip(h.setup_levels[:-1], first_aggs):
        np.testing.assert_array_equal(setup.aggregates, agg)
    for level, P in zip(h.levels[:-1], first_P):
        np.testing.assert_allclose(level.P.toarray(), P)


def test_shared_options_give_identical_hierarchies(A2d) -> None:
    opts = SAOptions(min_level_size=20)
    h1 = SmoothedAggregationHierarchy(A2d, options=opts)
    h2 = SmoothedAggregationHierarchy(A2d, options=opts)

    assert h1.options is h2.options
    assert _sizes(h1) == _sizes(h2)


def test_clone_outlives_original(A1d) -> None:
    h = SmoothedAggregationHierarchy(A1d, options=SAOptions(max_levels=2))
    sizes = _sizes(h)
    c = h.clone()
    del h

    assert _sizes(c) == sizes
    c.extend_hierarchy()
    assert len(c.levels) == len(c.setup_levels) == 3


def test_clone_shares_no_storage(A2d) -> None:
    h = SmoothedAggregationHierarchy(A2d)
    c = h.clone()

    for lo, lc in zip(h.levels, c.levels):
        assert lo.A is not lc.A
    for so, sc in zip(h.setup_levels, c.setup_levels):
        assert so.A is not sc.A
        assert so.B is not sc.B
    assert c.options == h.options and c.options is not h.options

    c.setup_levels[1].A.data[:] = 0.0
    assert np.any(h.setup_levels[1].A.data)


def test_clone_into_csc(A2d) -> None:
    h = SmoothedAggregationHierarchy(A2d)
    c = h.clone(solve_format="csc")

    assert c.solve_format == "csc"
    assert all(level.A.format == "csc" for level in c.levels)
    assert all(level.P.format == "csc" and level.R.format == "csc" for level in c.levels[:-1])
    assert all(setup.A.format == "csr" for setup in c.setup_levels)
    for lo, lc in zip(h.levels, c.levels):
        np.testing.assert_allclose(lo.A.toarray(), lc.A.toarray())


def test_deepcopy_uses_clone(A1d) -> None:
    h = SmoothedAggregationHierarchy(A1d)
    c = copy.deepcopy(h)
    assert isinstance(c, SmoothedAggregationHierarchy)
    assert _sizes(c) == _sizes(h)
    assert c.levels[0].A is not h.levels[0].A


def test_clone_of_empty_hierarchy() -> None:
    c = SmoothedAggregationHierarchy().clone()
    assert len(c) == 0 and c.summary is None


def test_collaborator_failure_clears_hierarchy(A2d) -> None:
    symmetric = make_strength("symmetric")
    calls = {"n": 0}

    def flaky_strength(A):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("boom")
        return symmetric(A)

    h = SmoothedAggregationHierarchy(A2d)
    h.options = SAOptions(strength_of_connection=flaky_strength)
    with pytest.raises(CollaboratorFailure) as excinfo:
        h.initialize(A2d)

    err = excinfo.value
    assert err.step == "strength"
    assert err.level == 1
    assert isinstance(err.__cause__, RuntimeError)
    assert isinstance(err, RuntimeError) and isinstance(err, HierarchyError)
    assert len(h) == 0
    assert h.setup_levels == [] and h.solver is None and h.summary is None


def test_bad_partition_propagates_as_shape_error(A2d) -> None:
    def short_aggregate(C):
        return np.zeros(C.shape[0] - 1, dtype=np.int32)

    h = SmoothedAggregationHierarchy(options=SAOptions(aggregate=short_aggregate))
    with pytest.raises(InvalidShapeError):
        h.initialize(A2d)
    assert len(h) == 0


def test_coarse_solver_failure_is_wrapped(A1d) -> None:
    def broken_solver(A):
        raise np.linalg.LinAlgError("singular")

    with pytest.raises(CollaboratorFailure) as excinfo:
        SmoothedAggregationHierarchy(A1d, coarse_solver=broken_solver)
    assert excinfo.value.step == "coarse_solver"


@pytest.mark.parametrize("kwargs", [
    {"max_levels": 0},
    {"min_level_size": 0},
    {"max_levels": 2.5},
    {"max_levels": True},
    {"aggregate": "standard"},
])
def test_invalid_options(kwargs) -> None:
    with pytest.raises(InvalidConfigurationError):
        SAOptions(**kwargs)


def test_invalid_constructor_arguments() -> None:
    with pytest.raises(InvalidConfigurationError):
        SmoothedAggregationHierarchy(options={"max_levels": 3})
    with pytest.raises(InvalidConfigurationError):
        SmoothedAggregationHierarchy(solve_format="lil")
    with pytest.raises(InvalidConfigurationError):
        SmoothedAggregationHierarchy(smoother="sor_bogus")
    with pytest.raises(InvalidConfigurationError):
        SmoothedAggregationHierarchy(coarse_solver="cholmod_bogus")


def test_candidate_shape_mismatch(A1d) -> None:
    with pytest.raises(InvalidShapeError):
        SmoothedAggregationHierarchy(A1d, B=np.ones(99))
    with pytest.raises(InvalidShapeError):
        SmoothedAggregationHierarchy(A1d, B=np.ones((100, 2, 1)))


def test_rectangular_operator_is_rejected() -> None:
    A = csr_array(np.eye(30, 20))
    h = SmoothedAggregationHierarchy()
    with pytest.raises(InvalidShapeError):
        h.initialize(A)
    assert len(h) == 0


def test_non_sparse_input() -> None:
    with pytest.raises(TypeError):
        SmoothedAggregationHierarchy(object())

    A = poisson((30,), format="csr")
    with pytest.warns(SparseEfficiencyWarning):
        h = SmoothedAggregationHierarchy(A.toarray())
    assert _sizes(h) == _sizes(SmoothedAggregationHierarchy(A))


@pytest.mark.filterwarnings("ignore::scipy.sparse.SparseEfficiencyWarning")
def test_block_operator_requires_candidates() -> None:
    A, B = linear_elasticity((8, 8), format="bsr")
    assert A.blocksize[0] > 1

    with pytest.raises(InvalidConfigurationError):
        SmoothedAggregationHierarchy(A)

    h = SmoothedAggregationHierarchy(A, B=B)
    k = B.shape[1]
    assert len(h.levels) > 1
    for setup in h.setup_levels[1:]:
        assert setup.A.shape[0] % k == 0
        assert setup.B.shape == (setup.A.shape[0], k)


def test_block_operator_is_aggregated_per_row() -> None:
    A, B = linear_elasticity((8, 8), format="bsr")
    with pytest.warns(SparseEfficiencyWarning):
        h = SmoothedAggregationHierarchy(A, B=B, options=SAOptions(max_levels=2))

    # the block structure is dropped: one aggregate id per scalar row
    assert h.setup_levels[0].A.format == "csr"
    assert h.levels[0].A.format == "csr"
    assert h.setup_levels[0].aggregates.shape == (A.shape[0],)


def test_richardson_rho_is_spectral_radius_of_A(A1d) -> None:
    jacobi = smoothed_aggregation_hierarchy(A1d, max_levels=2)
    richardson = smoothed_aggregation_hierarchy(A1d, max_levels=2, smooth="richardson")

    # D = 2I for 1D Poisson, so rho(A) is twice rho(D^-1 A)
    rho_dinva = jacobi.setup_levels[0].rho_DinvA
    rho_a = richardson.setup_levels[0].rho_DinvA
    assert 1.5 < rho_dinva <= 2.0 + 1e-8
    assert rho_a == pytest.approx(2.0 * rho_dinva, rel=1e-4)


def test_complexities_and_repr(A2d) -> None:
    h = SmoothedAggregationHierarchy(A2d)
    sizes = _sizes(h)
    nnz = [A2d.nnz] + [s.A.nnz for s in h.setup_levels[1:]]

    assert h.grid_complexity() == pytest.approx(sum(sizes) / sizes[0])
    assert h.operator_complexity() == pytest.approx(sum(nnz) / nnz[0])
    assert h.summary.num_rows == 400 and h.summary.num_entries == A2d.nnz

    text = repr(h)
    assert text.startswith("SmoothedAggregationHierarchy\n")
    assert f"Number of Levels:     {len(sizes)}" in text
    assert "pinv" in text

    empty = SmoothedAggregationHierarchy()
    assert repr(empty) == "SmoothedAggregationHierarchy (empty)"
    with pytest.raises(InvalidConfigurationError):
        empty.operator_complexity()


def test_print_info(A1d, capsys) -> None:
    SmoothedAggregationHierarchy(A1d, print_info=False)
    assert capsys.readouterr().out == ""

    SmoothedAggregationHierarchy(A1d, print_info=True)
    out = capsys.readouterr().out
    assert "level=0" in out
    assert "coarse_solver" in out


@pytest.mark.parametrize("solve_format", ["csr", "csc"])
def test_multilevel_solver_converges(A2d, solve_format) -> None:
    h = smoothed_aggregation_hierarchy(A2d, solve_format=solve_format)
    ml = h.as_multilevel_solver()
    assert len(ml.levels) == len(h.levels)

    b = np.random.default_rng(0).random(A2d.shape[0])
    residuals: list[float] = []
    x = ml.solve(b, maxiter=50, residuals=residuals)

    assert x.shape == b.shape
    assert residuals[-1] < 1e-4 * residuals[0]


def test_multilevel_solver_without_smoother(A2d) -> None:
    h = SmoothedAggregationHierarchy(A2d, smoother=None)
    assert all(level.smoother is None for level in h.levels)

    ml = h.as_multilevel_solver()
    b = np.ones(A2d.shape[0])
    x = ml.solve(b, maxiter=2)
    assert np.all(np.isfinite(x))


def test_multilevel_solver_gets_pyamg_smoothers(A2d) -> None:
    h = SmoothedAggregationHierarchy(A2d)
    assert h.levels[0].smoother[0] == ("gauss_seidel", {"sweep": "forward"})

    ml = h.as_multilevel_solver()
    for level in ml.levels[:-1]:
        assert callable(level.presmoother) and callable(level.postsmoother)
    assert ml.coarse_solver is h.solver


def test_multilevel_solver_requires_initialize() -> None:
    with pytest.raises(InvalidConfigurationError):
        SmoothedAggregationHierarchy().as_multilevel_solver()
