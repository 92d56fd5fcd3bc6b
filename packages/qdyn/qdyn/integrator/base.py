"""qdyn: Integrator Base Protocols
-------------------------------

Contracts for adaptive single-trajectory ODE integrators used by the
propagators. An integrator plugin builds a ``Stepper`` for a right-hand side
``f(t, y)``; the stepper advances by one accepted adaptive step at a time and
hands back a ``Segment`` carrying a continuous extension over that step.

This module is dependency-light and safe to import in any environment.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from qdyn.core.config import SolverConfig

__all__ = [
    "RHS",
    "Segment",
    "Stepper",
    "Integrator",
]


RHS = Callable[[float, np.ndarray], np.ndarray]
"""Type for a right-hand side ``f(t, y) -> dy/dt`` on flat complex arrays."""


@dataclass(frozen=True)
class Segment:
    """One accepted step ``[t_old, t_new]`` with dense output.

    Attributes
    ----------
    t_old, t_new : float
        Step boundaries.
    y_old, y_new : numpy.ndarray
        Solution at the boundaries (``y_new`` is the integrator's own value,
        not an interpolation).
    interpolant : Callable[[float], numpy.ndarray]
        Continuous extension valid on ``[t_old, t_new]``.

    """

    t_old: float
    t_new: float
    y_old: np.ndarray
    y_new: np.ndarray
    interpolant: Callable[[float], np.ndarray]

    def __call__(self, t: float) -> np.ndarray:
        if t == self.t_new:
            return self.y_new
        if t == self.t_old:
            return self.y_old
        return np.asarray(self.interpolant(t))


@runtime_checkable
class Stepper(Protocol):
    """Running integration of one initial-value problem.

    Methods
    -------
    advance() -> Segment
        Take one accepted adaptive step; raise ``IntegrationError`` when the
        step size collapses or the underlying solver fails.
    t, y
        Current time and solution.
    finished
        True once ``t_bound`` has been reached.
    nfev
        Number of right-hand-side evaluations so far.

    """

    t: float
    y: np.ndarray

    @property
    def finished(self) -> bool: ...

    @property
    def nfev(self) -> int: ...

    def advance(self) -> Segment: ...


@runtime_checkable
class Integrator(Protocol):
    """Protocol for integrator plugins registered under ``"integrator"``.

    Integrator classes define:
    - name: ClassVar[str] - Registry key
    - description: ClassVar[str] - Human-readable description
    - order: ClassVar[int] - Order of the propagating formula
    """

    name: ClassVar[str]
    description: ClassVar[str]
    order: ClassVar[int]

    def __init__(self, config: "SolverConfig | None" = None, **kwargs: Any) -> None: ...

    def start(self, fun: RHS, t0: float, y0: np.ndarray, t_bound: float) -> Stepper:
        """Begin integrating ``y' = fun(t, y)`` from ``(t0, y0)`` towards ``t_bound``."""
        ...
