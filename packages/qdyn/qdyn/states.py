"""qdyn: State Containers
-----------------------
Pure and mixed quantum states over a basis, expressed as a closed tagged
variant ``State = Ket | DensityMatrix``. Each variant carries a ``kind`` tag
(``StateKind``) and solver code dispatches on that tag with ``match``.

Behavior
--------
- ``Ket`` stores a complex vector of length ``basis.dim``; it is not
  normalized implicitly, so norm decay under non-Hermitian evolution stays
  observable.
- ``DensityMatrix`` stores a dense complex ``dim x dim`` matrix. The
  factories below return trace-one matrices; the constructor itself never
  rescales, so drift produced by a solver is never hidden.

Public API
----------
``StateKind``, ``Ket``, ``DensityMatrix``, ``State``
``basis_state``, ``fock``, ``coherent``, ``spin_up``, ``spin_down``,
``thermal``, ``maximally_mixed``
"""

from dataclasses import dataclass
from enum import Enum
from numbers import Number
from typing import ClassVar

import numpy as np
from scipy.sparse.linalg import expm_multiply

from .basis import Basis, FockBasis, SpinBasis
from .core.errors import ConstructionError
from .utils import hermitian_error, lowering_matrix

__all__ = [
    "StateKind",
    "Ket",
    "DensityMatrix",
    "State",
    "basis_state",
    "fock",
    "coherent",
    "spin_up",
    "spin_down",
    "thermal",
    "maximally_mixed",
]


class StateKind(Enum):
    """Tag of the ``State`` variant."""

    KET = "ket"
    DENSITY_MATRIX = "density_matrix"


def _require_same_basis(a: Basis, b: Basis, what: str) -> None:
    if a != b:
        raise ConstructionError(f"[105] Basis mismatch in {what}: {a!r} vs {b!r}")


@dataclass(eq=False)
class Ket:
    """Pure state vector over ``basis``.

    Parameters
    ----------
    basis : Basis
        Hilbert space of the state.
    data : array-like
        Complex amplitudes, length ``basis.dim``. Column vectors are flattened.

    Examples
    --------
    >>> from qdyn.basis import FockBasis
    >>> psi = Ket(FockBasis(1), [3, 4])
    >>> psi.norm()
    5.0
    >>> psi.normalized().norm()
    1.0

    """

    basis: Basis
    data: np.ndarray
    kind: ClassVar[StateKind] = StateKind.KET
    __array_ufunc__ = None

    def __post_init__(self):
        data = np.array(self.data, dtype=np.complex128)
        if data.ndim == 2 and data.shape[1] == 1:
            data = data[:, 0]
        if data.ndim != 1 or data.shape[0] != self.basis.dim:
            raise ConstructionError(
                f"[106] Ket data of shape {data.shape} does not match basis dim {self.basis.dim}"
            )
        self.data = data

    @property
    def dim(self) -> int:
        return self.basis.dim

    def norm(self) -> float:
        return float(np.linalg.norm(self.data))

    def normalized(self) -> "Ket":
        """Return a unit-norm copy.

        Raises
        ------
        ConstructionError
            - [107] The state has zero norm.

        """
        n = self.norm()
        if n == 0.0:
            raise ConstructionError("[107] Cannot normalize a zero vector")
        return Ket(self.basis, self.data / n)

    def dag(self) -> np.ndarray:
        """Return the bra ``<psi|`` as a conjugated row vector."""
        return self.data.conj()

    def inner(self, other: "Ket") -> complex:
        """Return ``<self|other>``."""
        _require_same_basis(self.basis, other.basis, "inner product")
        return complex(np.vdot(self.data, other.data))

    def dm(self) -> "DensityMatrix":
        """Return the density matrix ``|psi><psi| / <psi|psi>``."""
        return DensityMatrix.from_ket(self)

    def copy(self) -> "Ket":
        return Ket(self.basis, self.data.copy())

    def __add__(self, other: "Ket") -> "Ket":
        if not isinstance(other, Ket):
            return NotImplemented
        _require_same_basis(self.basis, other.basis, "ket addition")
        return Ket(self.basis, self.data + other.data)

    def __sub__(self, other: "Ket") -> "Ket":
        if not isinstance(other, Ket):
            return NotImplemented
        _require_same_basis(self.basis, other.basis, "ket subtraction")
        return Ket(self.basis, self.data - other.data)

    def __mul__(self, c: Number) -> "Ket":
        if not isinstance(c, Number):
            return NotImplemented
        return Ket(self.basis, self.data * c)

    __rmul__ = __mul__

    def __truediv__(self, c: Number) -> "Ket":
        if not isinstance(c, Number):
            return NotImplemented
        return Ket(self.basis, self.data / c)

    def __neg__(self) -> "Ket":
        return Ket(self.basis, -self.data)

    def __repr__(self) -> str:
        return f"Ket(basis={self.basis!r}, norm={self.norm():.6g})"


@dataclass(eq=False)
class DensityMatrix:
    """Mixed state over ``basis`` stored as a dense complex matrix."""

    basis: Basis
    data: np.ndarray
    kind: ClassVar[StateKind] = StateKind.DENSITY_MATRIX
    __array_ufunc__ = None

    def __post_init__(self):
        data = np.array(self.data, dtype=np.complex128)
        d = self.basis.dim
        if data.shape != (d, d):
            raise ConstructionError(
                f"[106] Density matrix of shape {data.shape} does not match basis dim {d}"
            )
        self.data = data

    @classmethod
    def from_ket(cls, psi: Ket) -> "DensityMatrix":
        """Build ``|psi><psi|`` from a (not necessarily normalized) ket."""
        v = psi.normalized().data
        return cls(psi.basis, np.outer(v, v.conj()))

    @property
    def dim(self) -> int:
        return self.basis.dim

    def trace(self) -> complex:
        return complex(np.trace(self.data))

    def purity(self) -> float:
        """Return ``Tr(rho^2)``."""
        return float(np.real(np.vdot(self.data, self.data)))

    def hermitian_error(self) -> float:
        return hermitian_error(self.data)

    def is_hermitian(self, tol: float = 1e-10) -> bool:
        return self.hermitian_error() <= tol

    def copy(self) -> "DensityMatrix":
        return DensityMatrix(self.basis, self.data.copy())

    def __add__(self, other: "DensityMatrix") -> "DensityMatrix":
        if not isinstance(other, DensityMatrix):
            return NotImplemented
        _require_same_basis(self.basis, other.basis, "density-matrix addition")
        return DensityMatrix(self.basis, self.data + other.data)

    def __sub__(self, other: "DensityMatrix") -> "DensityMatrix":
        if not isinstance(other, DensityMatrix):
            return NotImplemented
        _require_same_basis(self.basis, other.basis, "density-matrix subtraction")
        return DensityMatrix(self.basis, self.data - other.data)

    def __mul__(self, c: Number) -> "DensityMatrix":
        if not isinstance(c, Number):
            return NotImplemented
        return DensityMatrix(self.basis, self.data * c)

    __rmul__ = __mul__

    def __truediv__(self, c: Number) -> "DensityMatrix":
        if not isinstance(c, Number):
            return NotImplemented
        return DensityMatrix(self.basis, self.data / c)

    def __repr__(self) -> str:
        return f"DensityMatrix(basis={self.basis!r}, trace={self.trace().real:.6g})"


State = Ket | DensityMatrix


# -----------------------------------------------------------------------------
# Factories
# -----------------------------------------------------------------------------


def basis_state(basis: Basis, n: int) -> Ket:
    """Return the basis ket ``|n>``."""
    n = basis.check_index(n)
    data = np.zeros(basis.dim, dtype=np.complex128)
    data[n] = 1.0
    return Ket(basis, data)


def fock(basis: FockBasis, n: int) -> Ket:
    """Return the number state ``|n>`` of a Fock basis."""
    if not isinstance(basis, FockBasis):
        raise ConstructionError(f"[108] fock() needs a FockBasis, got {basis!r}")
    return basis_state(basis, n)


def coherent(basis: FockBasis, alpha: complex) -> Ket:
    """Coherent state ``D(alpha)|0>`` on the truncated Fock space.

    The displacement is applied on the truncated space and the result is
    renormalized, so the state is exactly unit norm for any cutoff.
    """
    if not isinstance(basis, FockBasis):
        raise ConstructionError(f"[108] coherent() needs a FockBasis, got {basis!r}")
    a = lowering_matrix(basis.dim)
    generator = (alpha * a.conj().T - np.conj(alpha) * a).tocsc()
    vacuum = basis_state(basis, 0).data
    return Ket(basis, expm_multiply(generator, vacuum)).normalized()


def spin_up(basis: SpinBasis) -> Ket:
    """Return the ``m = +j`` state (index 0)."""
    if not isinstance(basis, SpinBasis):
        raise ConstructionError(f"[108] spin_up() needs a SpinBasis, got {basis!r}")
    return basis_state(basis, 0)


def spin_down(basis: SpinBasis) -> Ket:
    """Return the ``m = -j`` state (last index)."""
    if not isinstance(basis, SpinBasis):
        raise ConstructionError(f"[108] spin_down() needs a SpinBasis, got {basis!r}")
    return basis_state(basis, basis.dim - 1)


def thermal(basis: FockBasis, nbar: float) -> DensityMatrix:
    """Thermal state with mean occupation ``nbar``, renormalized on the cutoff."""
    if not isinstance(basis, FockBasis):
        raise ConstructionError(f"[108] thermal() needs a FockBasis, got {basis!r}")
    if nbar < 0:
        raise ConstructionError(f"[108] Mean occupation must be >= 0, got {nbar}")
    if nbar == 0:
        return basis_state(basis, 0).dm()
    ratio = nbar / (1.0 + nbar)
    p = ratio ** np.arange(basis.dim, dtype=float)
    return DensityMatrix(basis, np.diag(p / p.sum()))


def maximally_mixed(basis: Basis) -> DensityMatrix:
    """Return ``I / dim``."""
    return DensityMatrix(basis, np.eye(basis.dim, dtype=np.complex128) / basis.dim)
