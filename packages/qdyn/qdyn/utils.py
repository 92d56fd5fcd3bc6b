"""qdyn: Numeric Utilities
------------------------
Shared helpers for array conversion, time-grid validation and Hermiticity
checks on dense or sparse matrices.
"""

from typing import Any

import numpy as np
import scipy.sparse as sp

from .core.errors import InvalidInput

__all__ = [
    "as_time_grid",
    "is_sparse",
    "to_dense",
    "hermitian_error",
    "lowering_matrix",
    "right_multiply",
]


def as_time_grid(tlist: Any) -> np.ndarray:
    """Validate and return an output time grid as a float array.

    Raises
    ------
    InvalidInput
        - [200] The grid is empty, not one-dimensional or not finite.
        - [201] The grid is not strictly increasing.

    """
    try:
        times = np.asarray(tlist, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"[200] Time grid is not numeric: {e}") from e
    if times.ndim != 1 or times.size == 0:
        raise InvalidInput(f"[200] Time grid must be a non-empty 1-D sequence, got shape {times.shape}")
    if not np.all(np.isfinite(times)):
        raise InvalidInput("[200] Time grid contains NaN or Inf")
    if times.size > 1 and not np.all(np.diff(times) > 0):
        raise InvalidInput("[201] Time grid must be strictly increasing")
    return times


def is_sparse(a: Any) -> bool:
    return sp.issparse(a)


def to_dense(a: Any) -> np.ndarray:
    """Return ``a`` as a dense complex ndarray."""
    if sp.issparse(a):
        return np.asarray(a.toarray(), dtype=np.complex128)
    return np.asarray(a, dtype=np.complex128)


def hermitian_error(a: Any) -> float:
    """Largest absolute entry of ``a - a^dagger``."""
    diff = a - a.conj().T
    if sp.issparse(diff):
        return float(abs(diff).max()) if diff.nnz else 0.0
    return float(np.max(np.abs(diff))) if diff.size else 0.0


def lowering_matrix(dim: int) -> sp.csr_matrix:
    """Truncated bosonic annihilation matrix ``a|n> = sqrt(n)|n-1>``."""
    return sp.diags(
        np.sqrt(np.arange(1, dim, dtype=float)),
        offsets=1,
        shape=(dim, dim),
        format="csr",
        dtype=np.complex128,
    )


def right_multiply(x: np.ndarray, b: Any) -> np.ndarray:
    """Compute ``x @ b`` for dense ``x`` and dense or sparse ``b``.

    Written as ``(b.T @ x.T).T`` so the sparse operand is always on the left.
    """
    return np.asarray((b.T @ x.T).T)
