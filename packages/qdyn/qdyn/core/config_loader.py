"""qdyn: Job Configuration Loading
-------------------------------
Pydantic schema of YAML job files and the loader that validates them.

Job file format::

    name: jaynes_cummings
    model:
      module: models.jaynes_cummings
      function: build
      params:
        cutoff: 10
        coupling: 1.0
    solver:
      kind: master
      rtol: 1.0e-7
    time:
      t0: 0.0
      t1: 20.0
      dt: 0.1
    observables: [n_photon, n_excitation]
    output_dir: runs

Public API
----------
``ModelSpec``, ``SolverSpec``, ``TimeSpec``, ``JobConfig``
``load_yaml_file`` : Parse a YAML mapping with ``yaml.safe_load``
``load_job_config`` : Parse and validate a job file
"""

from pathlib import Path
from typing import Any, Literal

import numpy as np
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .config import EnsembleConfig, SolverConfig
from .errors import QDConfigError, get_logger

__all__ = [
    "ModelSpec",
    "SolverSpec",
    "TimeSpec",
    "JobConfig",
    "load_yaml_file",
    "load_job_config",
]

logger = get_logger()


class ModelSpec(BaseModel):
    """Where to find the model builder and what to pass it."""

    model_config = ConfigDict(extra="forbid")

    module: str = Field(..., description="Dotted module name or path to a .py file")
    function: str = Field("build", description="Builder function: build(params) -> QuantumModel")
    params: dict[str, Any] = Field(default_factory=dict, description="Model parameters")


class SolverSpec(SolverConfig):
    """Solver kind plus every ``SolverConfig`` field."""

    kind: Literal["schrodinger", "master", "mcwf", "mcwf_ensemble"] = Field(
        "master", description="Which propagator the job runs"
    )

    def to_solver_config(self) -> SolverConfig:
        return SolverConfig(**self.model_dump(exclude={"kind"}))


class TimeSpec(BaseModel):
    """Output time grid, either uniform (``t0``, ``t1``, ``dt``) or explicit."""

    model_config = ConfigDict(extra="forbid")

    t0: float = Field(0.0, description="Start time")
    t1: float | None = Field(None, description="End time")
    dt: float | None = Field(None, description="Output spacing")
    tlist: list[float] | None = Field(None, description="Explicit output times")

    @model_validator(mode="after")
    def _check_grid(self) -> "TimeSpec":
        if self.tlist is not None:
            if self.t1 is not None or self.dt is not None:
                raise ValueError("give either tlist or t1/dt, not both")
            return self
        if self.t1 is None or self.dt is None:
            raise ValueError("t1 and dt are required when tlist is not given")
        if not self.dt > 0:
            raise ValueError("dt must be strictly positive")
        if not self.t1 > self.t0:
            raise ValueError("t1 must exceed t0")
        return self

    def grid(self) -> np.ndarray:
        """Return the output times; a uniform grid includes ``t1`` when it lands on it."""
        if self.tlist is not None:
            return np.asarray(self.tlist, dtype=float)
        n = int(np.floor((self.t1 - self.t0) / self.dt + 1e-9))
        return self.t0 + self.dt * np.arange(n + 1, dtype=float)


class JobConfig(BaseModel):
    """One simulation job."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    name: str = Field(..., description="Job name, used in run directory names")
    model: ModelSpec
    solver: SolverSpec = Field(default_factory=SolverSpec)
    time: TimeSpec
    ensemble: EnsembleConfig = Field(default_factory=EnsembleConfig)
    observables: list[str] | None = Field(
        None, description="Model observables to record; all of them when omitted"
    )
    output_dir: str = Field("runs", description="Root directory of run directories")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from ``path``.

    Raises
    ------
    QDConfigError
        - [503] The file does not exist.
        - [504] The file is not valid YAML or not a mapping.

    """
    if not path.exists():
        raise QDConfigError(f"[503] File not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise QDConfigError(f"[504] Failed to parse YAML file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise QDConfigError(f"[504] Expected a mapping at the top of {path}, got {type(data).__name__}")
    return data


def load_job_config(path: str | Path) -> JobConfig:
    """Load and validate a job file.

    Raises
    ------
    QDConfigError
        - [503] / [504] The file is missing or unreadable.
        - [505] The content does not match the job schema.

    """
    path = Path(path)
    logger.debug(f"Loading job file: {path}")
    data = load_yaml_file(path)
    try:
        return JobConfig(**data)
    except ValidationError as e:
        raise QDConfigError(f"[505] Invalid job file {path}: {e}") from e
