"""qdyn: Deterministic Propagators
------------------------------
Schrodinger and Lindblad master-equation propagation on a fixed output
grid, using the adaptive integrators of ``qdyn.integrator``.

Behavior
--------
- Inputs are validated before any integration starts: the time grid, the
  Hamiltonian/state bases, the jump-operator bases and Hermiticity of H.
- The integrator steps adaptively from ``tlist[0]`` to ``tlist[-1]``; grid
  points inside an accepted step are filled from its dense output.
- The output at ``tlist[0]`` is a copy of the initial state.
- Norm (Schrodinger) or trace and Hermiticity (master) are checked after
  the run. Drift beyond ``config.norm_tol`` issues ``NormalizationDrift``
  and is logged; states are never rescaled.
- Under ``on_failure="partial"`` an ``IntegrationError`` is downgraded to an
  ``IntegrationWarning`` and the states reached so far are returned.

Public API
----------
``schrodinger`` : Pure-state propagation under ``d|psi>/dt = -iH|psi>``
``master`` : Mixed-state propagation under the Lindblad generator
``effective_hamiltonian`` : ``H - (i/2) sum_k J_k^dagger J_k``
"""

import threading
import time as _time
import warnings
from collections.abc import Sequence
from typing import Any

import numpy as np

from .core.config import SolverConfig
from .core.errors import (
    ConstructionError,
    IntegrationError,
    IntegrationWarning,
    InvalidInput,
    NormalizationDrift,
    RunCancelled,
    get_logger,
)
from .integrator import RHS, make_integrator
from .operators import Operator
from .result import Trajectory
from .states import DensityMatrix, Ket, State, StateKind
from .utils import as_time_grid, hermitian_error, right_multiply

__all__ = ["schrodinger", "master", "effective_hamiltonian"]


# -----------------------------------------------------------------------------
# Validation helpers
# -----------------------------------------------------------------------------


def _check_hamiltonian(H: Any, state: State, config: SolverConfig) -> Operator:
    if not isinstance(H, Operator):
        raise InvalidInput(f"[203] Hamiltonian must be an Operator, got {type(H).__name__}")
    if H.basis_l != state.basis or H.basis_r != state.basis:
        raise ConstructionError(
            f"[117] Hamiltonian on {H.basis_l!r} does not act on the state basis {state.basis!r}"
        )
    if config.check_hermitian:
        err = H.hermitian_error()
        if err > config.hermitian_tol:
            raise InvalidInput(f"[204] Hamiltonian is not Hermitian (max |H - H^dag| = {err:.3g})")
    return H


def _check_jump_operators(c_ops: Sequence[Any] | None, basis: Any) -> list[Operator]:
    ops = list(c_ops or ())
    for k, J in enumerate(ops):
        if not isinstance(J, Operator):
            raise InvalidInput(f"[205] Jump operator {k} must be an Operator, got {type(J).__name__}")
        if J.basis_l != basis or J.basis_r != basis:
            raise InvalidInput(
                f"[205] Jump operator {k} on {J.basis_l!r} does not act on {basis!r}"
            )
    return ops


def _check_initial_ket(psi0: Any) -> Ket:
    if not isinstance(psi0, Ket):
        raise InvalidInput(f"[206] Initial state must be a Ket, got {type(psi0).__name__}")
    if psi0.norm() == 0.0:
        raise InvalidInput("[206] Initial state has zero norm")
    return psi0


def _check_initial_density_matrix(rho0: DensityMatrix, config: SolverConfig) -> DensityMatrix:
    tr = rho0.trace()
    if abs(tr - 1.0) > config.norm_tol:
        raise InvalidInput(f"[206] Initial density matrix has trace {tr:.6g}, expected 1")
    err = rho0.hermitian_error()
    if err > config.hermitian_tol:
        raise InvalidInput(f"[206] Initial density matrix is not Hermitian (max |rho - rho^dag| = {err:.3g})")
    return rho0


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise RunCancelled("[400] Run cancelled")


def effective_hamiltonian(H: Operator, c_ops: Sequence[Operator] = ()) -> Operator:
    """Return ``H - (i/2) sum_k J_k^dagger J_k``."""
    H_eff = H
    for J in c_ops:
        H_eff = H_eff - 0.5j * (J.dag() @ J)
    return H_eff


# -----------------------------------------------------------------------------
# Integration driver
# -----------------------------------------------------------------------------


def _integrate(
    rhs: RHS,
    y0: np.ndarray,
    times: np.ndarray,
    config: SolverConfig,
    cancel: threading.Event | None = None,
) -> tuple[list[np.ndarray], dict[str, Any]]:
    """Integrate ``rhs`` and sample the solution on ``times``.

    Returns the sampled flat solution vectors (the first one is ``y0``) and a
    stats dictionary. Under ``on_failure="partial"`` the list stops at the
    last output time reached.
    """
    logger = get_logger()
    outputs = [np.array(y0, dtype=np.complex128)]
    stats: dict[str, Any] = {"method": config.method, "n_steps": 0, "nfev": 0, "completed": True}
    if times.size == 1:
        return outputs, stats

    stepper = make_integrator(config).start(rhs, float(times[0]), outputs[0], float(times[-1]))
    k = 1
    since_output = 0
    try:
        while k < times.size:
            _check_cancel(cancel)
            seg = stepper.advance()
            stats["n_steps"] += 1
            since_output += 1
            while k < times.size and times[k] <= seg.t_new:
                outputs.append(np.array(seg(float(times[k]))))
                k += 1
                since_output = 0
            if k < times.size and since_output >= config.max_steps:
                raise IntegrationError(
                    f"[304] Step budget of {config.max_steps} exhausted before "
                    f"t={times[k]:.6g} (reached t={seg.t_new:.6g})"
                )
    except IntegrationError as e:
        if config.on_failure == "raise":
            raise
        stats["completed"] = False
        stats["error"] = str(e)
        msg = f"Integration stopped early, returning {len(outputs)} of {times.size} states: {e}"
        logger.warning(msg)
        warnings.warn(msg, IntegrationWarning, stacklevel=3)
    finally:
        stats["nfev"] = stepper.nfev
    return outputs, stats


def _report_drift(stats: dict[str, Any], key: str, drift: float, tol: float, what: str) -> None:
    stats[key] = drift
    if drift > tol:
        msg = f"{what} drifted by {drift:.3g} (tolerance {tol:.3g})"
        get_logger().warning(msg)
        warnings.warn(msg, NormalizationDrift, stacklevel=3)


# -----------------------------------------------------------------------------
# Public propagators
# -----------------------------------------------------------------------------


def schrodinger(
    tlist: Any,
    psi0: Ket,
    H: Operator,
    config: SolverConfig | None = None,
    *,
    cancel: threading.Event | None = None,
) -> Trajectory:
    """Propagate a pure state under ``d|psi>/dt = -iH|psi>``.

    Parameters
    ----------
    tlist : array-like
        Strictly increasing output times; ``tlist[0]`` is the start time.
    psi0 : Ket
        Initial state (not renormalized).
    H : Operator
        Hermitian Hamiltonian on ``psi0.basis``.
    config : SolverConfig, optional
        Integrator settings; defaults to ``SolverConfig()``.
    cancel : threading.Event, optional
        Checked at every step boundary; when set, ``RunCancelled`` is raised.

    Returns
    -------
    Trajectory
        Kets at every output time, ``states[0]`` being a copy of ``psi0``.

    Raises
    ------
    InvalidInput
        Bad time grid, non-Hermitian H, or an unusable initial state.
    ConstructionError
        H and ``psi0`` live on different bases.
    IntegrationError
        Step size collapsed or the step budget ran out (``on_failure="raise"``).

    Examples
    --------
    >>> from qdyn.basis import NLevelBasis
    >>> from qdyn.operators import sigmax
    >>> from qdyn.states import basis_state
    >>> b = NLevelBasis(2)
    >>> times, states = schrodinger([0.0, 1.0], basis_state(b, 0), sigmax(b))
    >>> round(states[-1].norm(), 6)
    1.0

    """
    config = config if config is not None else SolverConfig()
    times = as_time_grid(tlist)
    psi0 = _check_initial_ket(psi0)
    H = _check_hamiltonian(H, psi0, config)

    h = H.data

    def rhs(t: float, y: np.ndarray) -> np.ndarray:
        return -1j * (h @ y)

    logger = get_logger()
    logger.debug(f"schrodinger: dim={psi0.dim}, {times.size} output times, method={config.method}")
    start = _time.monotonic()
    outputs, stats = _integrate(rhs, psi0.data, times, config, cancel)
    stats["wall_time"] = _time.monotonic() - start

    states: list[State] = [psi0.copy()] + [Ket(psi0.basis, y) for y in outputs[1:]]
    norm0 = psi0.norm()
    drift = max(abs(float(np.linalg.norm(y)) - norm0) for y in outputs)
    _report_drift(stats, "norm_drift", drift, config.norm_tol, "State norm")
    logger.debug(f"schrodinger: done in {stats['n_steps']} steps, {stats['nfev']} evaluations")
    return Trajectory(times=times[: len(states)], states=states, stats=stats)


def master(
    tlist: Any,
    state0: State,
    H: Operator,
    c_ops: Sequence[Operator] = (),
    config: SolverConfig | None = None,
    *,
    cancel: threading.Event | None = None,
) -> Trajectory:
    """Propagate a density matrix under the Lindblad master equation.

    The generator ``-i[H, rho] + sum_k (J_k rho J_k^dag - 1/2 {J_k^dag J_k, rho})``
    is evaluated as ``-i(H_eff rho - rho H_eff^dag) + sum_k J_k rho J_k^dag``
    with ``H_eff = effective_hamiltonian(H, c_ops)``.

    Parameters
    ----------
    tlist : array-like
        Strictly increasing output times.
    state0 : Ket or DensityMatrix
        Initial state; a ket is converted to ``|psi><psi| / <psi|psi>``. A density
        matrix must be Hermitian with trace 1 within ``config.norm_tol``.
    H : Operator
        Hermitian Hamiltonian on the state basis.
    c_ops : sequence of Operator
        Jump operators, each an endomorphism of the state basis.
    config : SolverConfig, optional
        Integrator settings.
    cancel : threading.Event, optional
        Cooperative cancellation flag, checked at every step boundary.

    Returns
    -------
    Trajectory
        Density matrices at every output time.

    Raises
    ------
    InvalidInput
        Bad time grid, non-Hermitian H, or a jump operator on another basis,
        or an initial density matrix that is not Hermitian with unit trace.
    ConstructionError
        H and the state live on different bases.
    IntegrationError
        Step size collapsed or the step budget ran out.

    """
    config = config if config is not None else SolverConfig()
    times = as_time_grid(tlist)
    match getattr(state0, "kind", None):
        case StateKind.KET:
            rho0 = DensityMatrix.from_ket(_check_initial_ket(state0))
        case StateKind.DENSITY_MATRIX:
            rho0 = _check_initial_density_matrix(state0, config)
        case _:
            raise InvalidInput(f"[206] Unsupported initial state: {type(state0).__name__}")
    H = _check_hamiltonian(H, rho0, config)
    ops = _check_jump_operators(c_ops, rho0.basis)

    d = rho0.dim
    H_eff = effective_hamiltonian(H, ops).data
    H_eff_dag = H_eff.conj().T
    pairs = [(J.data, J.data.conj().T) for J in ops]

    def rhs(t: float, y: np.ndarray) -> np.ndarray:
        rho = y.reshape(d, d)
        out = -1j * (np.asarray(H_eff @ rho) - right_multiply(rho, H_eff_dag))
        for J, J_dag in pairs:
            out += np.asarray(J @ right_multiply(rho, J_dag))
        return out.ravel()

    logger = get_logger()
    logger.debug(
        f"master: dim={d}, {len(ops)} jump operators, {times.size} output times, "
        f"method={config.method}"
    )
    start = _time.monotonic()
    outputs, stats = _integrate(rhs, rho0.data.ravel(), times, config, cancel)
    stats["wall_time"] = _time.monotonic() - start

    states: list[State] = [rho0.copy()] + [DensityMatrix(rho0.basis, y.reshape(d, d)) for y in outputs[1:]]
    _report_drift(
        stats,
        "trace_drift",
        max(abs(np.trace(s.data).real - 1.0) for s in states),
        config.norm_tol,
        "Density-matrix trace",
    )
    _report_drift(
        stats,
        "hermitian_drift",
        max(hermitian_error(s.data) for s in states),
        config.norm_tol,
        "Density-matrix Hermiticity",
    )
    logger.debug(f"master: done in {stats['n_steps']} steps, {stats['nfev']} evaluations")
    return Trajectory(times=times[: len(states)], states=states, stats=stats)
