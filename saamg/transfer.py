"""Restriction and Galerkin coarse operator strategies.

Restriction
-----------
- "hermitian" : R = P^H (conjugate transpose; equals P^T for real P) (default)
- "transpose" : R = P^T

Galerkin product
----------------
- "rap" : RAP = R @ A @ P, returned as sorted CSR (default)
"""

from __future__ import annotations

from scipy.sparse import csr_array

from .errors import InvalidConfigurationError, InvalidShapeError
from .types import GalerkinFn, MethodSpec, RestrictionFn, SparseLike
from .util import unpack_arg


def hermitian_restriction(P: SparseLike) -> csr_array:
    """Return the conjugate transpose of P in CSR form."""
    R = csr_array(P.T.conjugate())
    R.sort_indices()
    return R


def transpose_restriction(P: SparseLike) -> csr_array:
    """Return the transpose of P in CSR form."""
    R = csr_array(P.T)
    R.sort_indices()
    return R


def rap(R: SparseLike, A: SparseLike, P: SparseLike) -> csr_array:
    """Form the Galerkin coarse operator R @ A @ P.

    Raises
    ------
    InvalidShapeError
        If R, A and P do not conform.
    """
    if R.shape[1] != A.shape[0] or A.shape[1] != P.shape[0]:
        raise InvalidShapeError(
            f"cannot form R @ A @ P with shapes {R.shape}, {A.shape}, {P.shape}"
        )
    RAP = csr_array(R @ A @ P)
    RAP.sort_indices()
    return RAP


def make_restriction(spec: MethodSpec | RestrictionFn) -> RestrictionFn:
    """Resolve a restriction spec into a ``form_restriction(P) -> R`` callable."""
    if callable(spec):
        return spec
    name, _ = unpack_arg(spec)
    if name == "hermitian":
        return hermitian_restriction
    if name == "transpose":
        return transpose_restriction
    raise InvalidConfigurationError(f"Unrecognized restriction method: {name!r}")


def make_galerkin_product(spec: MethodSpec | GalerkinFn) -> GalerkinFn:
    """Resolve a Galerkin spec into a ``galerkin(R, A, P) -> RAP`` callable."""
    if callable(spec):
        return spec
    name, _ = unpack_arg(spec)
    if name == "rap":
        return rap
    raise InvalidConfigurationError(f"Unrecognized Galerkin product method: {name!r}")
