"""qdyn: Bases
-----------
Immutable value objects describing finite-dimensional Hilbert spaces.

Two bases are compatible only when they are equal by value, i.e. of the same
kind and with the same defining parameters (and hence the same dimension).

Public API
----------
``Basis`` : Common interface of every basis
``GenericBasis`` : Unstructured basis of a given dimension
``FockBasis`` : Truncated bosonic number states 0..N
``SpinBasis`` : Spin-j states ordered from +j down to -j
``NLevelBasis`` : Generic n-level system
``basis_from_dict`` : Rebuild a basis from ``Basis.to_dict()`` output
"""

from dataclasses import dataclass
from fractions import Fraction
from typing import Any, ClassVar

from .core.errors import ConstructionError

__all__ = [
    "Basis",
    "GenericBasis",
    "FockBasis",
    "SpinBasis",
    "NLevelBasis",
    "basis_from_dict",
]


class Basis:
    """Common interface of all bases.

    Subclasses are frozen dataclasses, so equality and hashing are by value
    and the class itself takes part in the comparison.
    """

    kind: ClassVar[str] = "basis"

    @property
    def dim(self) -> int:
        raise NotImplementedError

    @property
    def labels(self) -> tuple[str, ...]:
        """Human-readable labels of the basis states, in index order."""
        return tuple(str(i) for i in range(self.dim))

    @property
    def dims(self) -> tuple[int, ...]:
        """Dimensions of the subsystems; a single entry for simple bases."""
        return (self.dim,)

    def check_index(self, n: int) -> int:
        if not 0 <= int(n) < self.dim:
            raise ConstructionError(
                f"[101] Index {n} out of range for {self!r} (dim={self.dim})"
            )
        return int(n)

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class GenericBasis(Basis):
    """Unstructured basis with a given dimension."""

    size: int
    kind: ClassVar[str] = "generic"

    def __post_init__(self):
        _check_positive_int(self.size, "size")

    @property
    def dim(self) -> int:
        return self.size

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "size": self.size}


@dataclass(frozen=True)
class FockBasis(Basis):
    """Truncated bosonic Fock space with number states ``0..cutoff``.

    Examples
    --------
    >>> FockBasis(10).dim
    11

    """

    cutoff: int
    kind: ClassVar[str] = "fock"

    def __post_init__(self):
        if not isinstance(self.cutoff, int) or isinstance(self.cutoff, bool):
            raise ConstructionError(f"[100] Fock cutoff must be an int, got {self.cutoff!r}")
        if self.cutoff < 0:
            raise ConstructionError(f"[100] Fock cutoff must be >= 0, got {self.cutoff}")

    @property
    def dim(self) -> int:
        return self.cutoff + 1

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "cutoff": self.cutoff}


@dataclass(frozen=True)
class SpinBasis(Basis):
    """Spin-j basis ordered from ``m = +j`` (index 0) down to ``m = -j``.

    For ``j = 1/2`` index 0 is the "up"/excited state and index 1 the
    "down"/ground state.
    """

    spin: Fraction
    kind: ClassVar[str] = "spin"

    def __post_init__(self):
        try:
            s = Fraction(self.spin).limit_denominator(2)
        except (TypeError, ValueError) as e:
            raise ConstructionError(f"[100] Invalid spin {self.spin!r}") from e
        if s <= 0 or (2 * s).denominator != 1 or abs(float(s) - float(self.spin)) > 1e-12:
            raise ConstructionError(
                f"[100] Spin must be a positive multiple of 1/2, got {self.spin!r}"
            )
        object.__setattr__(self, "spin", s)

    @property
    def dim(self) -> int:
        return int(2 * self.spin) + 1

    @property
    def m_values(self) -> tuple[Fraction, ...]:
        return tuple(self.spin - k for k in range(self.dim))

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(
            "0" if m == 0 else f"{'+' if m > 0 else '-'}{abs(m)}" for m in self.m_values
        )

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "spin": str(self.spin)}


@dataclass(frozen=True)
class NLevelBasis(Basis):
    """Generic n-level system (e.g. a multi-level atom)."""

    n: int
    kind: ClassVar[str] = "nlevel"

    def __post_init__(self):
        _check_positive_int(self.n, "n")

    @property
    def dim(self) -> int:
        return self.n

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "n": self.n}


def _check_positive_int(value: Any, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConstructionError(f"[100] Basis {name} must be a positive int, got {value!r}")


def basis_from_dict(spec: dict[str, Any]) -> Basis:
    """Rebuild a basis from the mapping produced by ``Basis.to_dict()``.

    Raises
    ------
    ConstructionError
        - [102] Unknown basis kind.

    """
    kind = spec.get("kind")
    if kind == "generic":
        return GenericBasis(int(spec["size"]))
    if kind == "fock":
        return FockBasis(int(spec["cutoff"]))
    if kind == "spin":
        return SpinBasis(Fraction(spec["spin"]))
    if kind == "nlevel":
        return NLevelBasis(int(spec["n"]))
    if kind == "composite":
        from .composite import CompositeBasis

        return CompositeBasis(tuple(basis_from_dict(f) for f in spec["factors"]))
    raise ConstructionError(f"[102] Unknown basis kind: {kind!r}")
