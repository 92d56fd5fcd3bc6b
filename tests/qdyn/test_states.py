"""Tests for state containers and state constructors."""

import numpy as np
import pytest
from qdyn.basis import FockBasis, NLevelBasis, SpinBasis
from qdyn.core.errors import ConstructionError
from qdyn.operators import destroy
from qdyn.states import (
    DensityMatrix,
    Ket,
    StateKind,
    basis_state,
    coherent,
    fock,
    maximally_mixed,
    spin_down,
    spin_up,
    thermal,
)


def test_kind_tags():
    b = NLevelBasis(2)
    assert Ket(b, [1, 0]).kind is StateKind.KET
    assert DensityMatrix(b, np.eye(2) / 2).kind is StateKind.DENSITY_MATRIX


def test_ket_shape_checked():
    b = NLevelBasis(3)
    with pytest.raises(ConstructionError):
        Ket(b, [1, 0])
    assert Ket(b, np.ones((3, 1))).data.shape == (3,)
    with pytest.raises(ConstructionError):
        DensityMatrix(b, np.eye(2))


def test_norm_and_normalization():
    b = NLevelBasis(2)
    psi = Ket(b, [3, 4j])
    assert psi.norm() == pytest.approx(5.0)
    assert psi.normalized().norm() == pytest.approx(1.0)
    # Not normalized implicitly.
    assert psi.norm() == pytest.approx(5.0)
    with pytest.raises(ConstructionError):
        Ket(b, [0, 0]).normalized()


def test_ket_arithmetic_and_inner():
    b = NLevelBasis(2)
    e0, e1 = basis_state(b, 0), basis_state(b, 1)
    plus = (e0 + e1) / np.sqrt(2)
    assert plus.inner(e0) == pytest.approx(1 / np.sqrt(2))
    np.testing.assert_allclose(plus.dag(), plus.data.conj())
    assert (e0 - e0).norm() == 0.0
    assert (2 * e1).norm() == pytest.approx(2.0)
    assert (-e1).data[1] == -1
    with pytest.raises(ConstructionError):
        e0 + basis_state(NLevelBasis(3), 0)


def test_density_matrix_from_ket_normalizes():
    b = NLevelBasis(2)
    rho = Ket(b, [1, 1j]).dm()
    assert rho.trace() == pytest.approx(1.0)
    assert rho.purity() == pytest.approx(1.0)
    assert rho.is_hermitian()
    np.testing.assert_allclose(rho.data, [[0.5, -0.5j], [0.5j, 0.5]])


def test_fock_and_spin_states():
    b = FockBasis(4)
    np.testing.assert_allclose(fock(b, 2).data, [0, 0, 1, 0, 0])
    with pytest.raises(ConstructionError):
        fock(b, 5)
    with pytest.raises(ConstructionError):
        fock(NLevelBasis(3), 0)
    s = SpinBasis(1)
    np.testing.assert_allclose(spin_up(s).data, [1, 0, 0])
    np.testing.assert_allclose(spin_down(s).data, [0, 0, 1])


def test_coherent_state_is_normalized_eigenstate():
    b = FockBasis(30)
    alpha = 1.0 + 0.5j
    psi = coherent(b, alpha)
    assert psi.norm() == pytest.approx(1.0)
    a_psi = destroy(b) @ psi
    np.testing.assert_allclose(a_psi.data[:20], alpha * psi.data[:20], atol=1e-8)
    # Photon statistics are Poissonian with mean |alpha|^2.
    n = np.arange(b.dim)
    assert np.sum(n * np.abs(psi.data) ** 2) == pytest.approx(abs(alpha) ** 2, rel=1e-6)


def test_coherent_state_on_small_cutoff_still_unit_norm():
    psi = coherent(FockBasis(3), 2.0)
    assert psi.norm() == pytest.approx(1.0)


def test_thermal_and_maximally_mixed():
    b = FockBasis(40)
    rho = thermal(b, 0.5)
    assert rho.trace() == pytest.approx(1.0)
    n = np.arange(b.dim)
    assert np.sum(n * rho.data.diagonal().real) == pytest.approx(0.5, rel=1e-6)
    np.testing.assert_allclose(thermal(b, 0).data, fock(b, 0).dm().data)
    with pytest.raises(ConstructionError):
        thermal(b, -1.0)
    mm = maximally_mixed(NLevelBasis(4))
    assert mm.purity() == pytest.approx(0.25)


def test_density_matrix_arithmetic():
    b = NLevelBasis(2)
    rho0, rho1 = basis_state(b, 0).dm(), basis_state(b, 1).dm()
    mix = 0.5 * rho0 + rho1 * 0.5
    np.testing.assert_allclose(mix.data, maximally_mixed(b).data)
    assert (rho0 - rho0).trace() == 0
    assert (rho0 / 2).trace() == pytest.approx(0.5)
