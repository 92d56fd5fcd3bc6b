"""Jaynes-Cummings Model.

This module defines a model plugin for a single cavity mode coupled to a
two-level atom, with optional cavity decay.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, Field
from qdyn import (
    FockBasis,
    QuantumModel,
    SpinBasis,
    coherent,
    compose,
    destroy,
    embed,
    number,
    sigmam,
    sigmap,
    sigmax,
    sigmaz,
    spin_down,
    tensor,
)


class JaynesCummingsConfig(BaseModel):
    """Configuration schema for the Jaynes-Cummings model."""

    cutoff: int = Field(10, ge=1, description="Fock cutoff N of the cavity mode")
    detuning: float = Field(0.0, description="Atom-cavity detuning")
    coupling: float = Field(1.0, description="Vacuum Rabi coupling")
    decay: float = Field(0.5, ge=0.0, description="Cavity energy decay rate")
    alpha: float = Field(1.0, description="Real coherent amplitude of the initial field")


class JaynesCummingsModel:
    """Cavity mode (first subsystem) coupled to a two-level atom (second).

    ``H = detuning * sigma+ sigma- + coupling * (a sigma+ + a^dag sigma-)``
    with jump operator ``sqrt(decay) * a`` when ``decay > 0``. The atom
    starts in its ground state and the field in a coherent state.
    """

    name: ClassVar[str] = "jaynes_cummings"
    description: ClassVar[str] = "Cavity mode coupled to a two-level atom"
    config_schema: ClassVar[type[JaynesCummingsConfig]] = JaynesCummingsConfig

    def __init__(self, config: JaynesCummingsConfig | None = None, **kwargs: Any) -> None:
        if config is None:
            config = JaynesCummingsConfig(**kwargs)
        self.config = config
        self.mode = FockBasis(config.cutoff)
        self.atom = SpinBasis(0.5)
        self.basis = compose(self.mode, self.atom)

    @property
    def params(self) -> dict[str, Any]:
        return self.config.model_dump()

    def to_quantum_model(self) -> QuantumModel:
        p = self.config
        bases = [self.mode, self.atom]
        a = embed(destroy(self.mode), 0, bases)
        sp_ = embed(sigmap(self.atom), 1, bases)
        sm = embed(sigmam(self.atom), 1, bases)

        H = p.detuning * (sp_ @ sm) + p.coupling * (a @ sp_ + a.dag() @ sm)
        c_ops = [p.decay**0.5 * a] if p.decay > 0 else []
        psi0 = tensor(coherent(self.mode, p.alpha), spin_down(self.atom))

        n_photon = embed(number(self.mode), 0, bases)
        n_atom = sp_ @ sm
        return QuantumModel(
            name=self.name,
            hamiltonian=H,
            psi0=psi0,
            c_ops=c_ops,
            observables={
                "n_photon": n_photon,
                "n_atom": n_atom,
                "n_excitation": n_photon + n_atom,
                "sigma_x": embed(sigmax(self.atom), 1, bases),
                "sigma_z": embed(sigmaz(self.atom), 1, bases),
            },
            params=self.params,
        )


def build(params: dict[str, Any]) -> QuantumModel:
    """Job-file builder: ``build(params) -> QuantumModel``."""
    return JaynesCummingsModel(JaynesCummingsConfig(**params)).to_quantum_model()
