"""Conversion between the setup format and the solve format.

All setup work is done on CSR arrays. The solve phase may want another
SciPy storage format; `setup_level_matrix` performs the hand-off:

  - same format      : the operator object itself is handed over (no copy)
  - different format : ``src.asformat(fmt)``

Pass ``copy=True`` to always get an independent object (used when cloning
a hierarchy).
"""

from __future__ import annotations

from .errors import InvalidConfigurationError
from .types import SparseLike

SOLVE_FORMATS = ("csr", "csc", "bsr", "coo", "dia")


def check_format(fmt: str) -> str:
    """Return `fmt` if it is a supported solve format."""
    if fmt not in SOLVE_FORMATS:
        raise InvalidConfigurationError(
            f"Unsupported solve format {fmt!r}; expected one of {SOLVE_FORMATS}"
        )
    return fmt


def setup_level_matrix(src: SparseLike, fmt: str, *, copy: bool = False) -> SparseLike:
    """Return `src` in the solve format `fmt`."""
    check_format(fmt)
    if src.format == fmt:
        return src.copy() if copy else src
    return src.asformat(fmt, copy=copy)
