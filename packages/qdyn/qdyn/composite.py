"""qdyn: Composite Basis Manager
------------------------------
Tensor-product Hilbert spaces built from an ordered list of subsystem bases.

The flat index of a composite state is related to its multi-index by the
row-major convention: the last-listed subsystem varies fastest. This is the
ordering produced by ``numpy.kron`` / ``scipy.sparse.kron`` and it is used by
every tensor and identity-lift operation in qdyn.

Public API
----------
``CompositeBasis`` : Ordered tensor product of bases
``compose`` : Build a (flattened) composite basis from bases
"""

import itertools
import math
from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from .basis import Basis
from .core.errors import ConstructionError

__all__ = ["CompositeBasis", "compose"]


@dataclass(frozen=True)
class CompositeBasis(Basis):
    """Tensor product of an ordered tuple of subsystem bases.

    Examples
    --------
    >>> from qdyn.basis import FockBasis, SpinBasis
    >>> b = CompositeBasis((FockBasis(2), SpinBasis(0.5)))
    >>> b.dim
    6
    >>> b.multi_index(3)
    (1, 1)
    >>> b.flat_index((1, 1))
    3

    """

    factors: tuple[Basis, ...]
    kind: ClassVar[str] = "composite"

    def __post_init__(self):
        factors = tuple(self.factors)
        if not factors:
            raise ConstructionError("[103] A composite basis needs at least one factor")
        for f in factors:
            if not isinstance(f, Basis) or isinstance(f, CompositeBasis):
                raise ConstructionError(
                    f"[103] Composite factors must be simple bases, got {f!r}; "
                    "use compose() to flatten nested composites"
                )
        object.__setattr__(self, "factors", factors)

    @property
    def dim(self) -> int:
        return math.prod(f.dim for f in self.factors)

    @property
    def dims(self) -> tuple[int, ...]:
        return tuple(f.dim for f in self.factors)

    @property
    def n_subsystems(self) -> int:
        return len(self.factors)

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(
            ",".join(parts) for parts in itertools.product(*(f.labels for f in self.factors))
        )

    def subsystem(self, i: int) -> Basis:
        """Return the basis of subsystem ``i``."""
        try:
            return self.factors[i]
        except IndexError:
            raise ConstructionError(
                f"[104] Subsystem {i} out of range for {self.n_subsystems} subsystems"
            ) from None

    def flat_index(self, multi: tuple[int, ...] | list[int]) -> int:
        """Map a multi-index over subsystems to the flat composite index."""
        multi = tuple(int(m) for m in multi)
        if len(multi) != self.n_subsystems:
            raise ConstructionError(
                f"[104] Expected {self.n_subsystems} indices, got {len(multi)}"
            )
        for m, f in zip(multi, self.factors):
            f.check_index(m)
        return int(np.ravel_multi_index(multi, self.dims))

    def multi_index(self, flat: int) -> tuple[int, ...]:
        """Map a flat composite index to the multi-index over subsystems."""
        flat = self.check_index(flat)
        return tuple(int(i) for i in np.unravel_index(flat, self.dims))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "factors": [f.to_dict() for f in self.factors]}


def compose(*bases: Basis) -> Basis:
    """Build the composite basis of ``bases`` in the given order.

    Nested composites are flattened so that ``compose(compose(a, b), c)``
    equals ``compose(a, b, c)``. A single simple basis is returned unchanged.

    Raises
    ------
    ConstructionError
        - [103] No bases given or an argument is not a basis.

    """
    if len(bases) == 1 and isinstance(bases[0], (list, tuple)):
        bases = tuple(bases[0])
    if not bases:
        raise ConstructionError("[103] compose() needs at least one basis")
    flat: list[Basis] = []
    for b in bases:
        if isinstance(b, CompositeBasis):
            flat.extend(b.factors)
        elif isinstance(b, Basis):
            flat.append(b)
        else:
            raise ConstructionError(f"[103] Not a basis: {b!r}")
    if len(flat) == 1:
        return flat[0]
    return CompositeBasis(tuple(flat))
