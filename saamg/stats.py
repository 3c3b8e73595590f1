"""Timing and diagnostic reporting for the SA setup.

`LevelStats` collects the wall time of each coarsening step and a few
derived numbers for one level. The hierarchy fills it while running a step:

    stats = LevelStats(level=lvl, n_fine=A.shape[0])
    with stats.timer("aggregate"):
        aggregates = aggregate(C)
    finalize_level_stats(stats, aggregates=aggregates, P=P, rho=rho, n_coarse=n_c)
    print_level_summary(stats, print_info=print_info)

All printing of the package is confined to this module.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import numpy as np

# coarsening steps, in the order they run
STEPS = ("strength", "aggregate", "fit_candidates", "smooth_P", "restriction", "galerkin")


@dataclass(slots=True)
class LevelStats:
    """Per-level setup timings and summary statistics.

    Attributes
    ----------
    level
        Multigrid level index (0 = finest).
    n_fine
        Number of rows of the operator on this level.
    n_aggs, n_coarse
        Aggregate count and coarse dimension, set by `finalize_level_stats`.
    timings
        Seconds spent per step name.
    extra
        Derived metrics: ``cr``, ``rho``, ``P_nnz``, ``singletons`` and
        ``agg_sizes`` (smallest, median and largest aggregate).
    """

    level: int
    n_fine: int
    n_aggs: int | None = None
    n_coarse: int | None = None
    timings: dict[str, float] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @contextmanager
    def timer(self, step: str):
        """Add the wall time of the ``with`` body to ``timings[step]``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timings[step] = self.timings.get(step, 0.0) + time.perf_counter() - start

    def total_time(self) -> float:
        """Seconds spent in all timed steps of this level."""
        return sum(self.timings.values())


def finalize_level_stats(
    stats: LevelStats,
    *,
    aggregates: np.ndarray,
    P,
    rho: float,
    n_coarse: int,
) -> None:
    """Fill in the derived metrics of a completed coarsening step (in place)."""
    sizes = np.bincount(aggregates)
    stats.n_aggs = int(sizes.size)
    stats.n_coarse = int(n_coarse)
    stats.extra["cr"] = stats.n_fine / n_coarse if n_coarse > 0 else float("inf")
    stats.extra["rho"] = float(rho)
    stats.extra["P_nnz"] = int(P.nnz)
    stats.extra["singletons"] = int(np.count_nonzero(sizes == 1))
    if sizes.size:
        stats.extra["agg_sizes"] = (int(sizes.min()), float(np.median(sizes)), int(sizes.max()))


def _seconds(t: float) -> str:
    """Format a duration as milliseconds below one second, else seconds."""
    if t < 1.0:
        return f"{1e3 * t:.1f}ms"
    return f"{t:.2f}s"


def print_level_summary(stats: LevelStats, *, print_info: bool, indent: str = "") -> None:
    """Print a three-line summary of one finalized level if `print_info` is set."""
    if not print_info:
        return
    extra = stats.extra
    n_c = "?" if stats.n_coarse is None else stats.n_coarse
    print(f"{indent}SA  level={stats.level}  n={stats.n_fine} -> {n_c}"
          f"  cr={extra.get('cr', float('nan')):.3g}"
          f"  rho={extra.get('rho', float('nan')):.4g}"
          f"  P_nnz={extra.get('P_nnz', '?')}")

    if "agg_sizes" in extra:
        lo, med, hi = extra["agg_sizes"]
        size = f"{lo}/{med:g}/{hi}"
    else:
        size = "n/a"
    print(f"{indent}    aggregates  count={stats.n_aggs}  size(min/med/max)={size}"
          f"  singletons={extra.get('singletons', '?')}")

    steps = "  ".join(f"{s}={_seconds(stats.timings[s])}" for s in STEPS if s in stats.timings)
    print(f"{indent}    timing      {steps}  total={_seconds(stats.total_time())}")


def print_setup_summary(
    *,
    smoother_setup_time: float,
    solver_setup_time: float,
    print_info: bool,
    indent: str = "",
) -> None:
    """Print the smoother and coarse solver setup times if `print_info` is set."""
    if not print_info:
        return
    print(f"{indent}SA  smoother_setup={_seconds(smoother_setup_time)}"
          f"  coarse_solver={_seconds(solver_setup_time)}")


def format_hierarchy_table(
    *,
    rows: list[tuple[int, int]],
    operator_complexity: float,
    grid_complexity: float,
    coarse_solver: Any,
) -> str:
    """Return the multilevel summary table.

    Parameters
    ----------
    rows
        ``(unknowns, nonzeros)`` per level, finest first.
    operator_complexity, grid_complexity
        Complexities of the hierarchy.
    coarse_solver
        Coarse solver object (its ``repr`` is shown).
    """
    total_nnz = sum(nnz for _, nnz in rows) or 1
    output = "SmoothedAggregationHierarchy\n"
    output += f"Number of Levels:     {len(rows)}\n"
    output += f"Operator Complexity: {operator_complexity:6.3f}\n"
    output += f"Grid Complexity:     {grid_complexity:6.3f}\n"
    output += f"Coarse Solver:        {coarse_solver!r}\n"
    output += "  level   unknowns     nonzeros\n"
    for n, (unknowns, nnz) in enumerate(rows):
        output += f"{n:>6} {unknowns:>11} {nnz:>12} [{100 * nnz / total_nnz:2.2f}%]\n"
    return output
