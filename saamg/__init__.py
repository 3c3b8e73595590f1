"""Smoothed aggregation algebraic multigrid hierarchy construction.

The setup phase coarsens a sparse operator level by level:

    strength -> aggregate -> fit_candidates -> smooth_P -> restriction -> galerkin

and stores the result as solve-phase `Level` records plus construction-time
`SetupLevel` records. The numerical kernels are PyAMG's; the finished
hierarchy can be handed to `pyamg.multilevel.MultilevelSolver` with
`SmoothedAggregationHierarchy.as_multilevel_solver`.

Main entry points
-----------------
- `smoothed_aggregation_hierarchy` : one-call builder taking method specs
- `SmoothedAggregationHierarchy`   : the hierarchy object
- `SAOptions`                      : immutable strategy bundle
"""

from .errors import (
    CollaboratorFailure,
    HierarchyError,
    InvalidConfigurationError,
    InvalidShapeError,
)
from .hierarchy import SmoothedAggregationHierarchy, smoothed_aggregation_hierarchy
from .options import SAOptions
from .types import HierarchySummary, Level, SetupLevel

__all__ = [
    "CollaboratorFailure",
    "HierarchyError",
    "HierarchySummary",
    "InvalidConfigurationError",
    "InvalidShapeError",
    "Level",
    "SAOptions",
    "SetupLevel",
    "SmoothedAggregationHierarchy",
    "smoothed_aggregation_hierarchy",
]
