"""Strategy bundle for smoothed aggregation setup.

`SAOptions` holds the scalar termination controls and the six pluggable
algorithms used by `SmoothedAggregationHierarchy.extend_hierarchy`:

    strength_of_connection(A)            -> C
    aggregate(C)                         -> aggregates
    fit_candidates(aggregates, B)        -> (T, B_coarse)
    smooth_prolongator(A, T, rho)        -> (P, rho)
    form_restriction(P)                  -> R
    galerkin_product(R, A, P)            -> RAP

The bundle is immutable and holds no per-hierarchy state, so one instance may
be shared by any number of hierarchies. `SAOptions.from_specs` resolves
PyAMG-style method specs (``"name"`` or ``("name", {kwargs})``) into the
default strategy callables.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass, field, fields
from functools import partial
from typing import Any

from .aggregation import make_aggregate
from .candidates import make_fit_candidates
from .errors import InvalidConfigurationError
from .smooth import make_prolongation_smoother
from .strength import make_strength
from .transfer import make_galerkin_product, make_restriction
from .types import (
    AggregateFn,
    FitCandidatesFn,
    GalerkinFn,
    MethodSpec,
    RestrictionFn,
    SmoothProlongatorFn,
    StrengthFn,
)


_STRATEGY_SLOTS = (
    "strength_of_connection",
    "aggregate",
    "fit_candidates",
    "smooth_prolongator",
    "form_restriction",
    "galerkin_product",
)


@dataclass(slots=True, frozen=True)
class SAOptions:
    """Configuration for building a smoothed aggregation hierarchy.

    Attributes
    ----------
    max_levels : int
        Maximum number of levels in the hierarchy (>= 1). A value of 1 means
        no coarsening: the coarse solver is built directly on the fine operator.
    min_level_size : int
        Coarsening continues only while the coarsest operator has more rows
        than this (>= 1).
    strength_of_connection, aggregate, fit_candidates, smooth_prolongator,
    form_restriction, galerkin_product
        Strategy callables; see the module docstring for their signatures.

    Raises
    ------
    InvalidConfigurationError
        If a scalar control is not a positive integer or a strategy slot is
        not callable.
    """

    max_levels: int = 10
    min_level_size: int = 10
    strength_of_connection: StrengthFn = field(default_factory=partial(make_strength, "symmetric"))
    aggregate: AggregateFn = field(default_factory=partial(make_aggregate, "standard"))
    fit_candidates: FitCandidatesFn = field(default_factory=partial(make_fit_candidates, "qr"))
    smooth_prolongator: SmoothProlongatorFn = field(
        default_factory=partial(make_prolongation_smoother, "jacobi"))
    form_restriction: RestrictionFn = field(default_factory=partial(make_restriction, "hermitian"))
    galerkin_product: GalerkinFn = field(default_factory=partial(make_galerkin_product, "rap"))

    def __post_init__(self) -> None:
        for name in ("max_levels", "min_level_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 1:
                raise InvalidConfigurationError(
                    f"{name} must be a positive integer, got {value!r}"
                )
        for name in _STRATEGY_SLOTS:
            if not callable(getattr(self, name)):
                raise InvalidConfigurationError(f"Strategy {name!r} must be callable")

    @classmethod
    def from_specs(
        cls,
        *,
        max_levels: int = 10,
        min_level_size: int = 10,
        strength: MethodSpec = "symmetric",
        aggregate: MethodSpec = "standard",
        fit_candidates: MethodSpec = "qr",
        smooth: MethodSpec = "jacobi",
        restriction: MethodSpec = "hermitian",
        galerkin: MethodSpec = "rap",
    ) -> "SAOptions":
        """Build options from PyAMG-style method specs.

        Each spec may also be a callable, which is used unchanged.

        Examples
        --------
        >>> opts = SAOptions.from_specs(strength=("symmetric", {"theta": 0.08}),
        ...                             aggregate=("standard", {"isolated": "neighbor"}),
        ...                             max_levels=5)
        >>> opts.max_levels
        5
        """
        return cls(
            max_levels=max_levels,
            min_level_size=min_level_size,
            strength_of_connection=make_strength(strength),
            aggregate=make_aggregate(aggregate),
            fit_candidates=make_fit_candidates(fit_candidates),
            smooth_prolongator=make_prolongation_smoother(smooth),
            form_restriction=make_restriction(restriction),
            galerkin_product=make_galerkin_product(galerkin),
        )

    def strategies(self) -> dict[str, Any]:
        """Return the strategy slots as a name -> callable dict."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name in _STRATEGY_SLOTS}
