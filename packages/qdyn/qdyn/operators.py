"""qdyn: Operator Algebra
----------------------
Linear operators over bases, stored as dense ``numpy`` arrays or
``scipy.sparse`` CSR matrices of complex128, with linear combination, matrix
product, Hermitian conjugate, tensor product, identity-lift and partial trace.

Behavior
--------
- Basis compatibility is validated whenever an operator is built or combined;
  a mismatch raises ``ConstructionError`` immediately.
- Tensor products follow the composite-basis convention (last factor varies
  fastest), so ``tensor(A, B) @ tensor(psi, phi) == tensor(A @ psi, B @ phi)``.
- Results are sparse whenever any operand is sparse.

Public API
----------
``Operator``
``identity``, ``destroy``, ``create``, ``number``, ``displace``,
``sigmax``, ``sigmay``, ``sigmaz``, ``sigmap``, ``sigmam``,
``jz``, ``jp``, ``jm``, ``projector``, ``operator_from``
``tensor``, ``embed``, ``ptrace``
"""

import string
from collections.abc import Sequence
from numbers import Number
from typing import Any

import numpy as np
import scipy.linalg as la
import scipy.sparse as sp

from .basis import Basis, FockBasis, SpinBasis
from .composite import CompositeBasis, compose
from .core.errors import ConstructionError
from .states import DensityMatrix, Ket, StateKind
from .utils import hermitian_error, is_sparse, lowering_matrix, to_dense

__all__ = [
    "Operator",
    "identity",
    "destroy",
    "create",
    "number",
    "displace",
    "sigmax",
    "sigmay",
    "sigmaz",
    "sigmap",
    "sigmam",
    "jz",
    "jp",
    "jm",
    "projector",
    "operator_from",
    "tensor",
    "embed",
    "ptrace",
]


class Operator:
    """Linear map from ``basis_r`` to ``basis_l``.

    Parameters
    ----------
    data : array-like or scipy.sparse matrix
        Matrix of shape ``(basis_l.dim, basis_r.dim)``.
    basis_l : Basis
        Output (left) basis.
    basis_r : Basis, optional
        Input (right) basis; defaults to ``basis_l``.

    Examples
    --------
    >>> from qdyn.basis import FockBasis
    >>> b = FockBasis(3)
    >>> n = create(b) @ destroy(b)
    >>> n.dense().diagonal().real.tolist()
    [0.0, 1.0, 2.0, 3.0]

    """

    __array_ufunc__ = None

    def __init__(self, data: Any, basis_l: Basis, basis_r: Basis | None = None):
        basis_r = basis_l if basis_r is None else basis_r
        if sp.issparse(data):
            data = sp.csr_matrix(data, dtype=np.complex128)
        else:
            data = np.array(data, dtype=np.complex128)
            if data.ndim != 2:
                raise ConstructionError(f"[110] Operator data must be 2-D, got ndim={data.ndim}")
        if data.shape != (basis_l.dim, basis_r.dim):
            raise ConstructionError(
                f"[110] Operator data of shape {data.shape} does not match "
                f"bases ({basis_l.dim}, {basis_r.dim})"
            )
        self.data = data
        self.basis_l = basis_l
        self.basis_r = basis_r

    # ------------------------------------------------------------------ views

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    @property
    def is_sparse(self) -> bool:
        return is_sparse(self.data)

    @property
    def is_endomorphism(self) -> bool:
        return self.basis_l == self.basis_r

    def dense(self) -> np.ndarray:
        """Return the matrix as a dense ndarray (a copy for sparse storage)."""
        return to_dense(self.data)

    def to_dense(self) -> "Operator":
        return Operator(self.dense(), self.basis_l, self.basis_r)

    def sparse(self) -> sp.csr_matrix:
        """Return the matrix in CSR form (a copy for dense storage)."""
        return sp.csr_matrix(self.data)

    def to_sparse(self) -> "Operator":
        return Operator(self.sparse(), self.basis_l, self.basis_r)

    # ------------------------------------------------------------- algebra

    def dag(self) -> "Operator":
        """Hermitian conjugate."""
        return Operator(self.data.conj().T, self.basis_r, self.basis_l)

    def trace(self) -> complex:
        self._require_square("trace")
        return complex(self.data.diagonal().sum())

    def hermitian_error(self) -> float:
        self._require_square("hermiticity check")
        return hermitian_error(self.data)

    def is_hermitian(self, tol: float = 1e-10) -> bool:
        return self.is_endomorphism and self.hermitian_error() <= tol

    def expm(self) -> "Operator":
        """Matrix exponential (dense); intended for reference calculations."""
        self._require_square("matrix exponential")
        return Operator(la.expm(self.dense()), self.basis_l)

    def allclose(self, other: "Operator", atol: float = 1e-10) -> bool:
        _check_same_bases(self, other, "comparison")
        return bool(np.allclose(self.dense(), other.dense(), rtol=0.0, atol=atol))

    def _require_square(self, what: str) -> None:
        if not self.is_endomorphism:
            raise ConstructionError(f"[111] {what} needs an endomorphism, got {self!r}")

    def __add__(self, other: Any) -> "Operator":
        if isinstance(other, Number) and other == 0:
            return self
        if not isinstance(other, Operator):
            return NotImplemented
        _check_same_bases(self, other, "operator addition")
        return Operator(_combine(self.data + other.data), self.basis_l, self.basis_r)

    __radd__ = __add__

    def __sub__(self, other: Any) -> "Operator":
        if not isinstance(other, Operator):
            return NotImplemented
        _check_same_bases(self, other, "operator subtraction")
        return Operator(_combine(self.data - other.data), self.basis_l, self.basis_r)

    def __neg__(self) -> "Operator":
        return Operator(-self.data, self.basis_l, self.basis_r)

    def __mul__(self, c: Any) -> "Operator":
        if not isinstance(c, Number):
            return NotImplemented
        return Operator(self.data * c, self.basis_l, self.basis_r)

    __rmul__ = __mul__

    def __truediv__(self, c: Any) -> "Operator":
        if not isinstance(c, Number):
            return NotImplemented
        return Operator(self.data / c, self.basis_l, self.basis_r)

    def __matmul__(self, other: Any) -> Any:
        if isinstance(other, Operator):
            if self.basis_r != other.basis_l:
                raise ConstructionError(
                    f"[112] Cannot multiply operators: {self.basis_r!r} vs {other.basis_l!r}"
                )
            return Operator(_combine(self.data @ other.data), self.basis_l, other.basis_r)
        if isinstance(other, Ket):
            if self.basis_r != other.basis:
                raise ConstructionError(
                    f"[112] Cannot apply operator on {self.basis_r!r} to ket on {other.basis!r}"
                )
            return Ket(self.basis_l, np.asarray(self.data @ other.data).ravel())
        return NotImplemented

    def __repr__(self) -> str:
        storage = "sparse" if self.is_sparse else "dense"
        return f"Operator({storage}, {self.basis_l!r} <- {self.basis_r!r})"


def _combine(data: Any) -> Any:
    if sp.issparse(data):
        return sp.csr_matrix(data)
    return np.asarray(data)


def _check_same_bases(a: Operator, b: Operator, what: str) -> None:
    if a.basis_l != b.basis_l or a.basis_r != b.basis_r:
        raise ConstructionError(f"[112] Basis mismatch in {what}: {a!r} vs {b!r}")


# -----------------------------------------------------------------------------
# Elementary operators
# -----------------------------------------------------------------------------


def identity(basis: Basis, sparse: bool = True) -> Operator:
    if sparse:
        return Operator(sp.identity(basis.dim, dtype=np.complex128, format="csr"), basis)
    return Operator(np.eye(basis.dim, dtype=np.complex128), basis)


def _require_fock(basis: Basis, what: str) -> None:
    if not isinstance(basis, FockBasis):
        raise ConstructionError(f"[113] {what} needs a FockBasis, got {basis!r}")


def destroy(basis: FockBasis) -> Operator:
    """Truncated annihilation operator ``a``."""
    _require_fock(basis, "destroy()")
    return Operator(lowering_matrix(basis.dim), basis)


def create(basis: FockBasis) -> Operator:
    """Truncated creation operator ``a^dagger``."""
    return destroy(basis).dag()


def number(basis: FockBasis) -> Operator:
    """Number operator ``a^dagger a`` (exactly diagonal on the cutoff)."""
    _require_fock(basis, "number()")
    return Operator(sp.diags(np.arange(basis.dim, dtype=np.complex128), format="csr"), basis)


def displace(basis: FockBasis, alpha: complex) -> Operator:
    """Displacement ``exp(alpha a^dagger - alpha* a)`` on the truncated space."""
    a = destroy(basis)
    return (alpha * a.dag() - np.conj(alpha) * a).expm()


def _require_spin_half(basis: Basis, what: str) -> None:
    if basis.dim != 2:
        raise ConstructionError(f"[113] {what} needs a two-level basis, got {basis!r}")


def sigmax(basis: Basis) -> Operator:
    _require_spin_half(basis, "sigmax()")
    return Operator(sp.csr_matrix([[0, 1], [1, 0]], dtype=np.complex128), basis)


def sigmay(basis: Basis) -> Operator:
    _require_spin_half(basis, "sigmay()")
    return Operator(sp.csr_matrix([[0, -1j], [1j, 0]], dtype=np.complex128), basis)


def sigmaz(basis: Basis) -> Operator:
    """Pauli z with index 0 as the +1 ("up"/excited) eigenstate."""
    _require_spin_half(basis, "sigmaz()")
    return Operator(sp.csr_matrix([[1, 0], [0, -1]], dtype=np.complex128), basis)


def sigmap(basis: Basis) -> Operator:
    """Raising operator ``|up><down|``."""
    _require_spin_half(basis, "sigmap()")
    return Operator(sp.csr_matrix([[0, 1], [0, 0]], dtype=np.complex128), basis)


def sigmam(basis: Basis) -> Operator:
    """Lowering operator ``|down><up|``."""
    _require_spin_half(basis, "sigmam()")
    return Operator(sp.csr_matrix([[0, 0], [1, 0]], dtype=np.complex128), basis)


def _require_spin(basis: Basis, what: str) -> SpinBasis:
    if not isinstance(basis, SpinBasis):
        raise ConstructionError(f"[113] {what} needs a SpinBasis, got {basis!r}")
    return basis


def jz(basis: SpinBasis) -> Operator:
    b = _require_spin(basis, "jz()")
    m = np.array([float(v) for v in b.m_values], dtype=np.complex128)
    return Operator(sp.diags(m, format="csr"), b)


def jp(basis: SpinBasis) -> Operator:
    """Spin raising operator ``J+ |j,m> = sqrt(j(j+1) - m(m+1)) |j,m+1>``."""
    b = _require_spin(basis, "jp()")
    j = float(b.spin)
    m = np.array([float(v) for v in b.m_values[1:]])
    return Operator(
        sp.diags(np.sqrt(j * (j + 1) - m * (m + 1)).astype(np.complex128), offsets=1, format="csr"),
        b,
    )


def jm(basis: SpinBasis) -> Operator:
    return jp(basis).dag()


def projector(basis: Basis, i: int, j: int | None = None) -> Operator:
    """Return ``|i><j|`` (``|i><i|`` when ``j`` is omitted)."""
    i = basis.check_index(i)
    j = i if j is None else basis.check_index(j)
    m = sp.csr_matrix(([1.0 + 0j], ([i], [j])), shape=(basis.dim, basis.dim))
    return Operator(m, basis)


def operator_from(psi: Ket) -> Operator:
    """Return the (unnormalized) outer product ``|psi><psi|``."""
    return Operator(np.outer(psi.data, psi.data.conj()), psi.basis)


# -----------------------------------------------------------------------------
# Tensor products, identity-lift and partial trace
# -----------------------------------------------------------------------------


def tensor(*items: Any) -> Any:
    """Tensor product of operators, kets or density matrices.

    All arguments must be of the same kind. Bases are combined with
    ``compose`` so nested composites are flattened.

    Raises
    ------
    ConstructionError
        - [114] Empty argument list or mixed argument kinds.

    """
    if len(items) == 1 and isinstance(items[0], (list, tuple)):
        items = tuple(items[0])
    if not items:
        raise ConstructionError("[114] tensor() needs at least one argument")

    first = items[0]
    if isinstance(first, Operator):
        if not all(isinstance(x, Operator) for x in items):
            raise ConstructionError("[114] tensor() cannot mix operators and states")
        data = first.data
        for op in items[1:]:
            if sp.issparse(data) or sp.issparse(op.data):
                data = sp.kron(data, op.data, format="csr")
            else:
                data = np.kron(data, op.data)
        return Operator(
            data,
            compose(*(op.basis_l for op in items)),
            compose(*(op.basis_r for op in items)),
        )

    kind = getattr(first, "kind", None)
    if kind is None or not all(getattr(x, "kind", None) is kind for x in items):
        raise ConstructionError("[114] tensor() arguments must all be of the same kind")
    basis = compose(*(x.basis for x in items))
    data = first.data
    for x in items[1:]:
        data = np.kron(data, x.data)
    match kind:
        case StateKind.KET:
            return Ket(basis, data)
        case StateKind.DENSITY_MATRIX:
            return DensityMatrix(basis, data)
    raise ConstructionError(f"[114] Unsupported tensor() argument kind: {kind!r}")


def embed(op: Operator, index: int, bases: Sequence[Basis]) -> Operator:
    """Lift ``op`` acting on subsystem ``index`` to the composite of ``bases``.

    The result is ``I ⊗ ... ⊗ op ⊗ ... ⊗ I`` with the identity on every other
    subsystem, in the order given by ``bases``.

    Raises
    ------
    ConstructionError
        - [115] ``index`` out of range, ``op`` not an endomorphism, or its
          basis differs from ``bases[index]``.

    """
    bases = list(bases.factors) if isinstance(bases, CompositeBasis) else list(bases)
    if not 0 <= index < len(bases):
        raise ConstructionError(f"[115] Subsystem index {index} out of range for {len(bases)} bases")
    if not op.is_endomorphism or op.basis_l != bases[index]:
        raise ConstructionError(
            f"[115] Operator on {op.basis_l!r} cannot act on subsystem {index} ({bases[index]!r})"
        )
    factors = [identity(b) for b in bases]
    factors[index] = op
    return tensor(*factors)


def _trace_out_subscripts(n: int, keep: list[int]) -> str:
    letters = string.ascii_letters
    rows = [letters[i] for i in range(n)]
    cols = [rows[i] if i not in keep else letters[n + i] for i in range(n)]
    out = "".join(rows[i] for i in keep) + "".join(cols[i] for i in keep)
    return "".join(rows) + "".join(cols) + "->" + out


def ptrace(item: Any, keep: int | Sequence[int]) -> Any:
    """Partial trace keeping the subsystems listed in ``keep``.

    Accepts a ``Ket`` or ``DensityMatrix`` (returns a ``DensityMatrix``) or an
    endomorphism ``Operator`` (returns an ``Operator``) on a ``CompositeBasis``.
    Kets are normalized before tracing.
    """
    basis = item.basis_l if isinstance(item, Operator) else item.basis
    if not isinstance(basis, CompositeBasis):
        raise ConstructionError(f"[116] ptrace() needs a composite basis, got {basis!r}")
    keep = sorted({int(k) for k in ([keep] if isinstance(keep, (int, np.integer)) else keep)})
    if not keep or keep[0] < 0 or keep[-1] >= basis.n_subsystems:
        raise ConstructionError(f"[116] Invalid subsystems to keep: {keep}")

    dims = list(basis.dims)
    n = len(dims)
    kept_basis = compose(*(basis.factors[k] for k in keep))
    kept_dim = kept_basis.dim

    if isinstance(item, Operator):
        item._require_square("ptrace()")
        mat = item.dense()
    else:
        match item.kind:
            case StateKind.KET:
                psi = item.normalized().data.reshape(dims)
                letters = string.ascii_letters
                a = "".join(letters[i] for i in range(n))
                b = "".join(a[i] if i not in keep else letters[n + i] for i in range(n))
                out = "".join(a[i] for i in keep) + "".join(b[i] for i in keep)
                reduced = np.einsum(f"{a},{b}->{out}", psi, psi.conj())
                return DensityMatrix(kept_basis, reduced.reshape(kept_dim, kept_dim))
            case StateKind.DENSITY_MATRIX:
                mat = item.data
            case _:
                raise ConstructionError(f"[116] Unsupported ptrace() argument: {item!r}")

    reduced = np.einsum(_trace_out_subscripts(n, keep), mat.reshape(dims + dims))
    reduced = reduced.reshape(kept_dim, kept_dim)
    if isinstance(item, Operator):
        return Operator(reduced, kept_basis)
    return DensityMatrix(kept_basis, reduced)
