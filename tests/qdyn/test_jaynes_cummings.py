"""End-to-end checks on the Jaynes-Cummings model."""

import numpy as np
import pytest
from models.jaynes_cummings import JaynesCummingsConfig, JaynesCummingsModel, build
from pydantic import ValidationError
from qdyn.basis import FockBasis
from qdyn.core.config import SolverConfig
from qdyn.core.errors import ConstructionError, InvalidInput
from qdyn.expect import expect
from qdyn.model import ModelPlugin, QuantumModel
from qdyn.operators import number, sigmam
from qdyn.propagators import master, schrodinger


def test_model_structure(jc_model):
    assert isinstance(jc_model, QuantumModel)
    assert jc_model.basis.dim == 22
    assert jc_model.hamiltonian.is_hermitian()
    assert len(jc_model.c_ops) == 1
    assert set(jc_model.observables) == {"n_photon", "n_atom", "n_excitation", "sigma_x", "sigma_z"}
    assert jc_model.psi0.norm() == pytest.approx(1.0)
    assert expect(jc_model.observables["n_atom"], jc_model.psi0) == pytest.approx(0.0)


def test_plugin_protocol_and_schema():
    plugin = JaynesCummingsModel(cutoff=5, decay=0.0)
    assert isinstance(plugin, ModelPlugin)
    assert plugin.to_quantum_model().c_ops == []
    with pytest.raises(ValidationError):
        JaynesCummingsConfig(cutoff=0)
    with pytest.raises(ValidationError):
        JaynesCummingsConfig(decay=-1.0)


def test_select_observables(jc_model):
    assert list(jc_model.select(["n_photon"])) == ["n_photon"]
    assert len(jc_model.select(None)) == 5
    with pytest.raises(InvalidInput, match="207"):
        jc_model.select(["n_phonon"])


def test_validate_rejects_foreign_operators(jc_model):
    jc_model.observables["bad"] = number(FockBasis(3))
    with pytest.raises(ConstructionError):
        jc_model.validate()
    model = build({"cutoff": 3})
    model.c_ops.append(sigmam(model.basis.subsystem(1)))
    with pytest.raises(InvalidInput):
        model.validate()


def test_closed_system_conserves_excitations(jc_times):
    model = build({"cutoff": 10, "coupling": 1.0, "decay": 0.0, "alpha": 1.0})
    cfg = SolverConfig(rtol=1e-8, atol=1e-10)
    traj = schrodinger(jc_times, model.psi0, model.hamiltonian, cfg)
    n_exc = expect(model.observables["n_excitation"], traj).real
    np.testing.assert_allclose(n_exc, n_exc[0], atol=1e-6)
    assert n_exc[0] == pytest.approx(1.0, abs=1e-3)
    norms = np.array([s.norm() for s in traj.states])
    np.testing.assert_allclose(norms, 1.0, atol=1e-6)

    n_photon = expect(model.observables["n_photon"], traj).real
    n_atom = expect(model.observables["n_atom"], traj).real
    np.testing.assert_allclose(n_photon + n_atom, n_exc, atol=1e-9)
    # One excitation in total: the photon number stays within [0, 1] and the
    # atom takes up a substantial share of it.
    assert n_photon[0] == pytest.approx(1.0, abs=1e-3)
    assert n_photon.min() >= -1e-9
    assert n_photon.max() <= 1.0 + 1e-3
    assert n_photon.min() < 0.55
    assert n_atom.max() > 0.45
    # Collapse-and-revival: the photon number oscillates.
    d = np.diff(n_photon)
    assert np.count_nonzero(np.sign(d[1:]) != np.sign(d[:-1])) >= 3


def test_cavity_decay_drains_excitations(jc_model, jc_times):
    traj = master(jc_times, jc_model.psi0, jc_model.hamiltonian, jc_model.c_ops)
    for rho in traj.states:
        assert rho.trace().real == pytest.approx(1.0, abs=1e-6)
        assert rho.hermitian_error() < 1e-8
    n_exc = expect(jc_model.observables["n_excitation"], traj).real
    assert np.all(np.diff(n_exc) <= 1e-6)
    assert n_exc[-1] < 0.05
