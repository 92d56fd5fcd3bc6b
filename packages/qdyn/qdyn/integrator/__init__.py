"""qdyn: Integrators Subpackage
---------------------------
Adaptive Runge-Kutta time steppers with dense output, wired to the registry
under the ``integrator`` namespace. Importing this package registers the
built-in schemes.
"""

from ..core import registry as _registry
from ..core.config import SolverConfig
from .base import RHS, Integrator, Segment, Stepper
from .runge_kutta import BogackiShampine32, DormandPrince54, DormandPrince853

__all__ = [
    "RHS",
    "Integrator",
    "Segment",
    "Stepper",
    "DormandPrince54",
    "BogackiShampine32",
    "DormandPrince853",
    "make_integrator",
]


def make_integrator(config: SolverConfig | None = None) -> Integrator:
    """Instantiate the integrator named by ``config.method``."""
    config = config if config is not None else SolverConfig()
    return _registry.create("integrator", config.method, config)
