"""qdyn: Solver Configuration Models
---------------------------------
Pydantic models carrying every numerical knob of a propagation call. A
configuration value is passed explicitly into each solver call; there is no
process-wide simulation state.

Public API
----------
``SolverConfig`` : Integrator tolerances, step bounds and diagnostics policy
``EnsembleConfig`` : Trajectory count, master seed and worker pool settings
"""

import math
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["SolverConfig", "EnsembleConfig"]


class SolverConfig(BaseModel):
    """Configuration for the deterministic and stochastic propagators."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: str = Field(
        "dopri5",
        description="Registered integrator name (see qdyn.core.registry)",
    )
    atol: float = Field(1e-8, description="Absolute local error tolerance")
    rtol: float = Field(1e-6, description="Relative local error tolerance")
    first_step: float | None = Field(
        None, description="Initial step size; chosen automatically when None"
    )
    max_step: float = Field(math.inf, description="Upper bound on the step size")
    min_step: float = Field(
        1e-12, description="Step-size floor; falling below aborts the run"
    )
    max_steps: int = Field(
        100_000, description="Maximum accepted steps between two output times"
    )
    norm_tol: float = Field(
        1e-5,
        description="Allowed drift of norm (Schrodinger) or trace (master) "
        "before a NormalizationDrift diagnostic is issued",
    )
    root_tol: float = Field(
        1e-10, description="Absolute time tolerance of the jump-time root search"
    )
    check_hermitian: bool = Field(
        True, description="Reject non-Hermitian Hamiltonians before integration"
    )
    hermitian_tol: float = Field(
        1e-10, description="Tolerance of the Hamiltonian Hermiticity check"
    )
    on_failure: Literal["raise", "partial"] = Field(
        "raise",
        description="Raise IntegrationError, or warn and return the partial "
        "trajectory computed so far",
    )

    @field_validator("atol", "rtol", "min_step", "norm_tol", "root_tol", "hermitian_tol")
    @classmethod
    def _positive(cls, v: float) -> float:
        if not v > 0:
            raise ValueError("must be strictly positive")
        return v

    @field_validator("max_step")
    @classmethod
    def _positive_step(cls, v: float) -> float:
        if not v > 0:
            raise ValueError("max_step must be strictly positive")
        return v

    @field_validator("first_step")
    @classmethod
    def _positive_first(cls, v: float | None) -> float | None:
        if v is not None and not v > 0:
            raise ValueError("first_step must be strictly positive")
        return v

    @field_validator("max_steps")
    @classmethod
    def _positive_budget(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_steps must be at least 1")
        return v

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, v: str) -> str:
        return v.strip().lower()


class EnsembleConfig(BaseModel):
    """Configuration for Monte Carlo wave-function ensembles."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    n_traj: int = Field(100, ge=1, description="Number of trajectories")
    seed: int | None = Field(
        None, description="Master seed; per-trajectory seeds are spawned from it"
    )
    executor: Literal["thread", "process", "serial"] = Field(
        "thread", description="Worker pool used to run trajectories"
    )
    n_workers: int | None = Field(
        None, ge=1, description="Pool size; executor default when None"
    )
