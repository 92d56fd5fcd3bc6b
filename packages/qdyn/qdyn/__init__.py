"""Quantum Dynamics Simulation Core
================================

Finite-dimensional bases and their tensor products, operator and state
algebra, Schrodinger and Lindblad propagation, and Monte Carlo wave-function
trajectories with parallel ensemble averaging.

Public API
----------
Bases
    ``FockBasis``, ``SpinBasis``, ``NLevelBasis``, ``GenericBasis``,
    ``CompositeBasis``, ``compose``
States and operators
    ``Ket``, ``DensityMatrix``, ``Operator`` and their constructors,
    ``tensor``, ``embed``, ``ptrace``
Dynamics
    ``schrodinger``, ``master``, ``mcwf``, ``mcwf_ensemble``
Observables
    ``expect``, ``variance``
Configuration
    ``SolverConfig``, ``EnsembleConfig``
"""

# Trigger self-registration of the built-in integrators.
from . import integrator as _qd_integrators  # noqa: F401
from .basis import Basis, FockBasis, GenericBasis, NLevelBasis, SpinBasis
from .composite import CompositeBasis, compose
from .core.config import EnsembleConfig, SolverConfig
from .core.errors import (
    ConstructionError,
    IntegrationError,
    IntegrationWarning,
    InvalidInput,
    NormalizationDrift,
    QDError,
    RunCancelled,
)
from .ensemble import ExpectationAccumulator, mcwf_ensemble
from .expect import expect, variance
from .mcwf import mcwf
from .model import QuantumModel
from .operators import (
    Operator,
    create,
    destroy,
    displace,
    embed,
    identity,
    jm,
    jp,
    jz,
    number,
    operator_from,
    projector,
    ptrace,
    sigmam,
    sigmap,
    sigmax,
    sigmay,
    sigmaz,
    tensor,
)
from .propagators import effective_hamiltonian, master, schrodinger
from .result import EnsembleResult, MCWFTrajectory, Trajectory
from .states import (
    DensityMatrix,
    Ket,
    State,
    StateKind,
    basis_state,
    coherent,
    fock,
    maximally_mixed,
    spin_down,
    spin_up,
    thermal,
)

__version__ = "0.1.0"

__all__ = [
    "Basis",
    "FockBasis",
    "SpinBasis",
    "NLevelBasis",
    "GenericBasis",
    "CompositeBasis",
    "compose",
    "Ket",
    "DensityMatrix",
    "State",
    "StateKind",
    "basis_state",
    "fock",
    "coherent",
    "spin_up",
    "spin_down",
    "thermal",
    "maximally_mixed",
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
    "expect",
    "variance",
    "schrodinger",
    "master",
    "effective_hamiltonian",
    "mcwf",
    "mcwf_ensemble",
    "ExpectationAccumulator",
    "Trajectory",
    "MCWFTrajectory",
    "EnsembleResult",
    "QuantumModel",
    "SolverConfig",
    "EnsembleConfig",
    "QDError",
    "ConstructionError",
    "InvalidInput",
    "IntegrationError",
    "RunCancelled",
    "IntegrationWarning",
    "NormalizationDrift",
    "__version__",
]
