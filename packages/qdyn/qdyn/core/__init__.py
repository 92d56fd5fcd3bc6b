"""qdyn: Core Subpackage
--------------------
Errors and logging, solver configuration, job-file loading and the
integrator registry.
"""

from .config import EnsembleConfig, SolverConfig
from .errors import (
    ConstructionError,
    IntegrationError,
    IntegrationWarning,
    InvalidInput,
    NormalizationDrift,
    QDConfigError,
    QDError,
    QDIOError,
    QDWarning,
    RunCancelled,
    configure_logging,
    get_logger,
)

__all__ = [
    "SolverConfig",
    "EnsembleConfig",
    "QDError",
    "ConstructionError",
    "InvalidInput",
    "IntegrationError",
    "RunCancelled",
    "QDConfigError",
    "QDIOError",
    "QDWarning",
    "IntegrationWarning",
    "NormalizationDrift",
    "get_logger",
    "configure_logging",
]
