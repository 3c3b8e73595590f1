"""Prolongation smoothing strategies.

The tentative prolongator T reproduces the candidates exactly but has poor
approximation properties; one or more relaxation steps on A improve it:

    jacobi     : P = (I - omega / rho(D^-1 A) * D^-1 A)^degree T
    richardson : P = (I - omega / rho(A) * A)^degree T
    None       : P = T

The spectral radius estimate comes from PyAMG's Arnoldi-based
`approximate_spectral_radius`. A positive ``rho`` passed in is reused; zero
means "estimate it". Each level starts from zero, so the estimate is always
taken on the level's own operator. Whatever operator the strategy
estimates on, the value is cached in `SetupLevel.rho_DinvA`; the field name
follows the default Jacobi strategy. The start vector is drawn from a seeded
generator so repeated setups give identical operators.
"""

from __future__ import annotations

from functools import partial

import numpy as np
from scipy.sparse import csr_array

from pyamg.util.linalg import approximate_spectral_radius
from pyamg.util.utils import get_diagonal, scale_rows

from .errors import InvalidConfigurationError, InvalidShapeError
from .types import MethodSpec, SmoothProlongatorFn, SparseLike
from .util import unpack_arg


def estimate_spectral_radius(M: SparseLike, *, seed: int = 0) -> float:
    """Estimate rho(M) with a deterministic start vector."""
    v0 = np.random.default_rng(seed).random((M.shape[0], 1))
    return float(approximate_spectral_radius(M, initial_guess=v0))


def dinv_a(A: SparseLike) -> csr_array:
    """Return D^-1 A as CSR; rows with a zero diagonal become zero."""
    D_inv = get_diagonal(A, inv=True)
    return csr_array(scale_rows(csr_array(A), D_inv, copy=True))


def _check_operands(A: SparseLike, T: SparseLike) -> None:
    """Require a square A whose row count matches T."""
    if A.shape[0] != A.shape[1]:
        raise InvalidShapeError(f"prolongation smoothing requires a square operator, got {A.shape}")
    if T.shape[0] != A.shape[0]:
        raise InvalidShapeError(
            f"tentative prolongator has {T.shape[0]} rows, operator has {A.shape[0]}"
        )


def _apply(S: SparseLike, T: SparseLike, weight: float, degree: int) -> csr_array:
    """Return (I - weight * S)^degree T."""
    P = csr_array(T)
    S = weight * csr_array(S)
    for _ in range(degree):
        P = csr_array(P - S @ P)
    P.sort_indices()
    return P


def jacobi_prolongation(
    A: SparseLike,
    T: SparseLike,
    rho: float = 0.0,
    *,
    omega: float = 4.0 / 3.0,
    degree: int = 1,
    seed: int = 0,
) -> tuple[csr_array, float]:
    """Jacobi-smooth the tentative prolongator.

    Parameters
    ----------
    A
        Square level operator.
    T
        Tentative prolongator, shape (A.shape[0], n_coarse).
    rho
        Spectral radius of D^-1 A if already known, otherwise 0.0.
    omega
        Damping factor; 4/3 is the classical SA choice.
    degree
        Number of Jacobi steps.
    seed
        Seed of the start vector for the spectral radius estimate.

    Returns
    -------
    P, rho
        Smoothed prolongator (CSR) and the spectral radius used.
    """
    _check_operands(A, T)
    S = dinv_a(A)
    if rho <= 0.0:
        rho = estimate_spectral_radius(S, seed=seed)
    if rho == 0.0:
        return csr_array(T), rho
    return _apply(S, T, omega / rho, degree), rho


def richardson_prolongation(
    A: SparseLike,
    T: SparseLike,
    rho: float = 0.0,
    *,
    omega: float = 4.0 / 3.0,
    degree: int = 1,
    seed: int = 0,
) -> tuple[csr_array, float]:
    """Richardson-smooth the tentative prolongator.

    Unlike `jacobi_prolongation`, `rho` is the spectral radius of `A` itself,
    not of ``D^-1 A``; it is still stored in `SetupLevel.rho_DinvA`.
    """
    _check_operands(A, T)
    if rho <= 0.0:
        rho = estimate_spectral_radius(csr_array(A, dtype=float), seed=seed)
    if rho == 0.0:
        return csr_array(T), rho
    return _apply(A, T, omega / rho, degree), rho


def no_smoothing(A: SparseLike, T: SparseLike, rho: float = 0.0) -> tuple[SparseLike, float]:
    """Use the tentative prolongator unchanged."""
    return T, rho


def make_prolongation_smoother(spec: MethodSpec | SmoothProlongatorFn) -> SmoothProlongatorFn:
    """Resolve a smoothing spec into a ``smooth(A, T, rho) -> (P, rho)`` callable."""
    if callable(spec):
        return spec
    name, kwargs = unpack_arg(spec)
    if name == "jacobi":
        return partial(jacobi_prolongation, **kwargs)
    if name == "richardson":
        return partial(richardson_prolongation, **kwargs)
    if name is None:
        return no_smoothing
    raise InvalidConfigurationError(f"Unrecognized prolongation smoother: {name!r}")
