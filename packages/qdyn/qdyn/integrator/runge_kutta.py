"""qdyn: Embedded Runge-Kutta Integrators
--------------------------------------
Adaptive explicit Runge-Kutta schemes with embedded local error estimates
and dense output, driven one accepted step at a time so callers can locate
events (jump times) inside a step and stop at step boundaries.

The step-size controller and the tableaus are those of
``scipy.integrate``'s ``RK45`` (Dormand-Prince 5(4)), ``RK23``
(Bogacki-Shampine 3(2)) and ``DOP853``; this module wraps them in the
integrator plugin protocol, adds a configurable step-size floor and turns
solver failures into ``IntegrationError``.

Registered names
----------------
- ``dopri5`` (aliases ``rk45``, ``dp45``): Dormand-Prince 5(4), default
- ``bs23`` (alias ``rk23``): Bogacki-Shampine 3(2)
- ``dop853``: Dormand-Prince 8(5,3)
"""

from typing import Any, ClassVar

import numpy as np
from scipy.integrate import DOP853, RK23, RK45, OdeSolver

from ..core.config import SolverConfig
from ..core.errors import IntegrationError, InvalidInput
from ..core.registry import register, register_alias
from .base import RHS, Segment

__all__ = [
    "RungeKuttaStepper",
    "DormandPrince54",
    "BogackiShampine32",
    "DormandPrince853",
]


class RungeKuttaStepper:
    """Step-by-step driver around a ``scipy.integrate.OdeSolver`` instance."""

    def __init__(self, solver: OdeSolver, min_step: float):
        self._solver = solver
        self._min_step = float(min_step)

    @property
    def t(self) -> float:
        return float(self._solver.t)

    @property
    def y(self) -> np.ndarray:
        return self._solver.y

    @property
    def finished(self) -> bool:
        return self._solver.status == "finished"

    @property
    def nfev(self) -> int:
        return int(self._solver.nfev)

    def advance(self) -> Segment:
        """Take one accepted step.

        Raises
        ------
        IntegrationError
            - [300] The underlying solver failed (step size underflow).
            - [301] The accepted step fell below ``min_step`` before the end.
            - [302] Called after the integration already finished.

        """
        solver = self._solver
        if solver.status != "running":
            raise IntegrationError(f"[302] Cannot advance a {solver.status} integration")
        t_old = float(solver.t)
        y_old = solver.y.copy()
        message = solver.step()
        if solver.status == "failed":
            raise IntegrationError(f"[300] Integration failed at t={t_old:.6g}: {message}")
        h = float(solver.step_size)
        if solver.status == "running" and h < self._min_step:
            raise IntegrationError(
                f"[301] Step size {h:.3g} fell below the floor {self._min_step:.3g} "
                f"at t={solver.t:.6g}"
            )
        return Segment(
            t_old=t_old,
            t_new=float(solver.t),
            y_old=y_old,
            y_new=solver.y.copy(),
            interpolant=solver.dense_output(),
        )


class _ScipyRungeKutta:
    """Shared implementation of the scipy-backed integrator plugins."""

    name: ClassVar[str]
    description: ClassVar[str]
    order: ClassVar[int]
    solver_class: ClassVar[type[OdeSolver]]

    def __init__(self, config: SolverConfig | None = None, **kwargs: Any) -> None:
        self.config = config if config is not None else SolverConfig(**kwargs)

    def start(self, fun: RHS, t0: float, y0: np.ndarray, t_bound: float) -> RungeKuttaStepper:
        """Begin integrating ``y' = fun(t, y)`` from ``(t0, y0)`` to ``t_bound``.

        Raises
        ------
        InvalidInput
            - [202] ``t_bound`` does not lie strictly after ``t0``.

        """
        if not t_bound > t0:
            raise InvalidInput(f"[202] Integration end {t_bound} must exceed start {t0}")
        cfg = self.config
        kwargs: dict[str, Any] = {"rtol": cfg.rtol, "atol": cfg.atol, "max_step": cfg.max_step}
        if cfg.first_step is not None:
            kwargs["first_step"] = min(cfg.first_step, t_bound - t0)
        solver = self.solver_class(fun, t0, np.asarray(y0, dtype=np.complex128), t_bound, **kwargs)
        return RungeKuttaStepper(solver, cfg.min_step)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rtol={self.config.rtol}, atol={self.config.atol})"


@register("integrator", "dopri5")
class DormandPrince54(_ScipyRungeKutta):
    """Dormand-Prince 5(4) with quartic dense output.

    References
    ----------
    - Dormand, J. R., & Prince, P. J. (1980). A family of embedded Runge-Kutta
      formulae. J. Comput. Appl. Math., 6(1), 19-26.
      doi:10.1016/0771-050X(80)90013-3
    - Shampine, L. F. (1986). Some Practical Runge-Kutta Formulas. Math.
      Comp., 46(173), 135-150. doi:10.2307/2008219
    """

    name = "dopri5"
    description = "Dormand-Prince 5(4) with 4th-order dense output"
    order = 5
    solver_class = RK45


@register("integrator", "bs23")
class BogackiShampine32(_ScipyRungeKutta):
    """Bogacki-Shampine 3(2) with cubic Hermite dense output.

    References
    ----------
    - Bogacki, P., & Shampine, L. F. (1989). A 3(2) pair of Runge-Kutta
      formulas. Appl. Math. Lett., 2(4), 321-325.
      doi:10.1016/0893-9659(89)90079-7
    """

    name = "bs23"
    description = "Bogacki-Shampine 3(2), low-accuracy and cheap"
    order = 3
    solver_class = RK23


@register("integrator", "dop853")
class DormandPrince853(_ScipyRungeKutta):
    """Dormand-Prince 8(5,3) with 7th-order dense output, for tight tolerances."""

    name = "dop853"
    description = "Dormand-Prince 8(5,3) with 7th-order dense output"
    order = 8
    solver_class = DOP853


register_alias("integrator", "rk45", "dopri5")
register_alias("integrator", "dp45", "dopri5")
register_alias("integrator", "rk23", "bs23")
