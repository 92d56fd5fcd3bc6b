"""Tests for the Schrodinger and master-equation propagators."""

import threading
import warnings

import numpy as np
import pytest
from qdyn.basis import FockBasis, NLevelBasis
from qdyn.core.config import SolverConfig
from qdyn.core.errors import (
    ConstructionError,
    IntegrationError,
    IntegrationWarning,
    InvalidInput,
    NormalizationDrift,
    RunCancelled,
)
from qdyn.expect import expect
from qdyn.operators import Operator, destroy, number, sigmam, sigmax, sigmaz
from qdyn.propagators import effective_hamiltonian, master, schrodinger
from qdyn.states import DensityMatrix, Ket, basis_state, coherent, fock, spin_down, spin_up


def test_rabi_oscillation(qubit):
    omega = 2.0
    H = 0.5 * omega * sigmax(qubit)
    times = np.linspace(0.0, 5.0, 51)
    traj = schrodinger(times, spin_up(qubit), H, SolverConfig(atol=1e-10, rtol=1e-9))
    pz = expect(sigmaz(qubit), traj).real
    np.testing.assert_allclose(pz, np.cos(omega * times), atol=1e-6)


def test_output_at_first_time_is_initial_state(qubit):
    psi0 = spin_up(qubit)
    traj = schrodinger([0.0, 1.0], psi0, sigmax(qubit))
    assert traj.states[0] is not psi0
    np.testing.assert_array_equal(traj.states[0].data, psi0.data)
    psi0.data[:] = 0.0
    assert traj.states[0].norm() == pytest.approx(1.0)

    rho0 = spin_up(qubit).dm()
    mixed = master([0.0, 1.0], rho0, sigmax(qubit))
    assert mixed.states[0] is not rho0
    np.testing.assert_array_equal(mixed.states[0].data, rho0.data)
    np.testing.assert_array_equal(traj.times, [0.0, 1.0])


def test_single_point_grid(qubit):
    traj = schrodinger([3.0], spin_up(qubit), sigmax(qubit))
    assert len(traj) == 1
    assert traj.stats["n_steps"] == 0


def test_tuple_unpacking(qubit):
    times, states = schrodinger([0.0, 0.5, 1.0], spin_up(qubit), sigmax(qubit))
    assert len(times) == len(states) == 3


def test_schrodinger_conserves_norm_on_every_point():
    b = FockBasis(15)
    a = destroy(b)
    H = a.dag() @ a + 0.3 * (a + a.dag()) + 0.05 * (a.dag() @ a.dag() @ a @ a)
    traj = schrodinger(np.linspace(0, 10, 101), coherent(b, 0.5), H, SolverConfig(rtol=1e-8, atol=1e-10))
    norms = np.array([s.norm() for s in traj.states])
    np.testing.assert_allclose(norms, 1.0, atol=1e-5)
    assert traj.stats["norm_drift"] < 1e-5
    assert traj.completed


def test_schrodinger_matches_matrix_exponential(three_level):
    rng = np.random.default_rng(0)
    m = rng.normal(size=(3, 3)) + 1j * rng.normal(size=(3, 3))
    H = Operator(m + m.conj().T, three_level)
    psi0 = basis_state(three_level, 0)
    t = 1.7
    traj = schrodinger([0.0, t], psi0, H, SolverConfig(atol=1e-11, rtol=1e-10))
    exact = (-1j * t * H).expm() @ psi0
    np.testing.assert_allclose(traj.states[-1].data, exact.data, atol=1e-8)


@pytest.mark.parametrize("method", ["dopri5", "bs23", "dop853"])
def test_methods_agree(qubit, method):
    traj = schrodinger([0.0, 2.0], spin_up(qubit), sigmax(qubit), SolverConfig(method=method, rtol=1e-9, atol=1e-11))
    assert expect(sigmaz(qubit), traj.states[-1]).real == pytest.approx(np.cos(4.0), abs=1e-6)


def test_master_trace_and_hermiticity(decaying_qubit):
    H, c_ops, psi0 = decaying_qubit
    traj = master(np.linspace(0, 10, 101), psi0, H, c_ops)
    assert all(isinstance(s, DensityMatrix) for s in traj.states)
    for rho in traj.states:
        assert rho.trace().real == pytest.approx(1.0, abs=1e-6)
        assert rho.hermitian_error() < 1e-8
    assert traj.stats["trace_drift"] < 1e-6


def test_master_spontaneous_decay(qubit):
    gamma = 0.7
    H = 0.0 * sigmaz(qubit)
    times = np.linspace(0, 5, 26)
    cfg = SolverConfig(rtol=1e-8, atol=1e-10)
    traj = master(times, spin_up(qubit), H, [np.sqrt(gamma) * sigmam(qubit)], cfg)
    p_up = expect((sigmaz(qubit) + sigmaz(qubit) @ sigmaz(qubit)) / 2, traj).real
    np.testing.assert_allclose(p_up, np.exp(-gamma * times), atol=1e-6)


def test_master_accepts_density_matrix_and_ket(decaying_qubit):
    H, c_ops, psi0 = decaying_qubit
    times = [0.0, 1.0, 2.0]
    from_ket = master(times, psi0, H, c_ops)
    from_dm = master(times, psi0.dm(), H, c_ops)
    np.testing.assert_allclose(from_ket.states[-1].data, from_dm.states[-1].data, atol=1e-12)


def test_master_without_jumps_matches_schrodinger(qubit):
    H = sigmax(qubit) + 0.5 * sigmaz(qubit)
    times = np.linspace(0, 3, 7)
    pure = schrodinger(times, spin_up(qubit), H, SolverConfig(rtol=1e-9, atol=1e-11))
    mixed = master(times, spin_up(qubit), H, [], SolverConfig(rtol=1e-9, atol=1e-11))
    np.testing.assert_allclose(
        expect(sigmaz(qubit), pure).real, expect(sigmaz(qubit), mixed).real, atol=1e-7
    )


def test_effective_hamiltonian(qubit):
    H = sigmax(qubit)
    J = sigmam(qubit)
    H_eff = effective_hamiltonian(H, [J])
    expected = H.dense() - 0.5j * (J.dag() @ J).dense()
    np.testing.assert_allclose(H_eff.dense(), expected)
    assert effective_hamiltonian(H) is H


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


@pytest.mark.parametrize("tlist", [[], [0.0, 1.0, 1.0], [1.0, 0.5], [0.0, np.nan], [[0.0, 1.0]]])
def test_invalid_time_grids(qubit, tlist):
    with pytest.raises(InvalidInput):
        schrodinger(tlist, spin_up(qubit), sigmax(qubit))


def test_non_hermitian_hamiltonian_rejected(qubit):
    with pytest.raises(InvalidInput, match="204"):
        schrodinger([0.0, 1.0], spin_up(qubit), sigmam(qubit))
    # The check can be disabled.
    traj = schrodinger([0.0, 0.1], spin_up(qubit), sigmam(qubit), SolverConfig(check_hermitian=False))
    assert len(traj) == 2


def test_hamiltonian_basis_mismatch(qubit):
    with pytest.raises(ConstructionError):
        schrodinger([0.0, 1.0], fock(FockBasis(1), 0), sigmax(qubit))
    with pytest.raises(ConstructionError):
        master([0.0, 1.0], fock(FockBasis(1), 0), sigmax(qubit))


def test_jump_operator_basis_mismatch(qubit):
    with pytest.raises(InvalidInput, match="205"):
        master([0.0, 1.0], spin_up(qubit), sigmax(qubit), [sigmam(NLevelBasis(2))])


def test_bad_initial_state(qubit):
    with pytest.raises(InvalidInput):
        schrodinger([0.0, 1.0], Ket(qubit, [0, 0]), sigmax(qubit))
    with pytest.raises(InvalidInput):
        schrodinger([0.0, 1.0], spin_up(qubit).dm(), sigmax(qubit))
    with pytest.raises(InvalidInput):
        master([0.0, 1.0], "up", sigmax(qubit))


def test_invalid_initial_density_matrix_rejected(qubit):
    with pytest.raises(InvalidInput, match="trace"):
        master([0.0, 1.0], DensityMatrix(qubit, [[2, 0], [0, 1]]), sigmax(qubit), [sigmam(qubit)])
    with pytest.raises(InvalidInput, match="Hermitian"):
        master([0.0, 1.0], DensityMatrix(qubit, [[0.5, 0.4], [0, 0.5]]), sigmax(qubit), [sigmam(qubit)])
    # Trace is accepted within norm_tol.
    rho = DensityMatrix(qubit, [[0.5 + 1e-7, 0], [0, 0.5]])
    traj = master([0.0, 1.0], rho, sigmax(qubit), [sigmam(qubit)])
    assert traj.stats["trace_drift"] == pytest.approx(1e-7, rel=1e-3)


# -----------------------------------------------------------------------------
# Failure policy and diagnostics
# -----------------------------------------------------------------------------


def _stiff_problem():
    b = NLevelBasis(2)
    H = Operator(np.diag([0.0, 1e6]), b)
    psi0 = Ket(b, [1, 1]).normalized()
    return b, H, psi0


def test_step_budget_raises():
    _, H, psi0 = _stiff_problem()
    with pytest.raises(IntegrationError, match="304"):
        schrodinger([0.0, 1.0], psi0, H, SolverConfig(max_steps=10))


def test_partial_policy_returns_prefix():
    _, H, psi0 = _stiff_problem()
    cfg = SolverConfig(max_steps=50, on_failure="partial")
    times = np.linspace(0.0, 1.0, 11)
    with pytest.warns(IntegrationWarning):
        traj = schrodinger(times, psi0, H, cfg)
    assert not traj.completed
    assert traj.stats["completed"] is False
    assert 1 <= len(traj) < times.size
    np.testing.assert_array_equal(traj.times, times[: len(traj)])


def test_drift_is_reported_not_corrected(qubit):
    # A loose tolerance on a long run lets the norm drift past a tight threshold.
    cfg = SolverConfig(method="bs23", rtol=1e-2, atol=1e-2, norm_tol=1e-12)
    with pytest.warns(NormalizationDrift):
        traj = schrodinger(np.linspace(0, 50, 11), spin_up(qubit), 3.0 * sigmax(qubit), cfg)
    norms = [s.norm() for s in traj.states]
    assert max(abs(n - 1.0) for n in norms) == pytest.approx(traj.stats["norm_drift"])


def test_no_drift_warning_for_accurate_run(qubit):
    with warnings.catch_warnings():
        warnings.simplefilter("error", NormalizationDrift)
        schrodinger(np.linspace(0, 1, 5), spin_up(qubit), sigmax(qubit))


def test_cancellation(qubit):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RunCancelled):
        schrodinger([0.0, 1.0], spin_up(qubit), sigmax(qubit), cancel=cancel)
    with pytest.raises(RunCancelled):
        master([0.0, 1.0], spin_down(qubit), sigmax(qubit), cancel=cancel)


def test_number_operator_state_is_stationary():
    b = FockBasis(5)
    traj = master(np.linspace(0, 2, 3), fock(b, 3), number(b))
    np.testing.assert_allclose(traj.states[-1].data, fock(b, 3).dm().data, atol=1e-10)
