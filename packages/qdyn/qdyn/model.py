"""qdyn: Model Container
---------------------
Bundle of everything a propagation call needs for one physical system:
Hamiltonian, jump operators, initial state and named observables.

Model plugins (see the top-level ``models/`` directory) are small classes
with a pydantic ``config_schema`` that build a ``QuantumModel``; job files
refer to a module-level builder function taking a parameter mapping.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, runtime_checkable

from .basis import Basis
from .core.errors import ConstructionError, InvalidInput
from .operators import Operator
from .states import Ket

__all__ = ["QuantumModel", "ModelPlugin", "ModelBuilder"]


@dataclass
class QuantumModel:
    """Concrete open quantum system.

    Attributes
    ----------
    name : str
        Human-readable model name.
    hamiltonian : Operator
        Hermitian system Hamiltonian.
    psi0 : Ket
        Default initial state.
    c_ops : list of Operator
        Jump operators (may be empty).
    observables : dict[str, Operator]
        Named observables available to job files.
    params : dict
        Parameters the model was built from.

    """

    name: str
    hamiltonian: Operator
    psi0: Ket
    c_ops: list[Operator] = field(default_factory=list)
    observables: dict[str, Operator] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def basis(self) -> Basis:
        return self.psi0.basis

    def validate(self) -> "QuantumModel":
        """Check that every operator acts on the basis of ``psi0``.

        Raises
        ------
        ConstructionError
            - [117] Hamiltonian or an observable on another basis.
        InvalidInput
            - [205] Jump operator on another basis.

        """
        b = self.basis
        if self.hamiltonian.basis_l != b or self.hamiltonian.basis_r != b:
            raise ConstructionError(f"[117] Hamiltonian of model '{self.name}' is not on {b!r}")
        for k, J in enumerate(self.c_ops):
            if J.basis_l != b or J.basis_r != b:
                raise InvalidInput(f"[205] Jump operator {k} of model '{self.name}' is not on {b!r}")
        for key, op in self.observables.items():
            if op.basis_l != b or op.basis_r != b:
                raise ConstructionError(f"[117] Observable '{key}' of model '{self.name}' is not on {b!r}")
        return self

    def select(self, names: list[str] | None) -> dict[str, Operator]:
        """Return the observables called ``names`` (all of them when None).

        Raises
        ------
        InvalidInput
            - [207] A requested observable is not defined by the model.

        """
        if names is None:
            return dict(self.observables)
        missing = [n for n in names if n not in self.observables]
        if missing:
            known = ", ".join(sorted(self.observables))
            raise InvalidInput(f"[207] Unknown observable(s) {missing}; model defines: {known}")
        return {n: self.observables[n] for n in names}


ModelBuilder = Callable[[dict[str, Any]], QuantumModel]
"""Type of a job-file builder ``build(params) -> QuantumModel``."""


@runtime_checkable
class ModelPlugin(Protocol):
    """Protocol for model plugin classes.

    Attributes
    ----------
    name : str
        Registry-style model name.
    description : str
        One-line description.
    config_schema : type
        Pydantic model validating the parameters.

    """

    name: ClassVar[str]
    description: ClassVar[str]
    config_schema: ClassVar[type]

    def to_quantum_model(self) -> QuantumModel: ...
