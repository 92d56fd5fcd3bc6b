"""qdyn: Monte Carlo Wave-Function Trajectories
--------------------------------------------
Single quantum-jump trajectories of an open system.

Between jumps the unnormalized state evolves under the non-Hermitian
effective Hamiltonian ``H_eff = H - (i/2) sum_k J_k^dagger J_k`` with the
same adaptive integrator as the deterministic propagators, so its squared
norm decays monotonically. A jump happens when the squared norm crosses a
threshold ``r`` drawn uniformly from ``(0, 1)``:

1. after every accepted step the squared norm at the step end is compared
   with ``r``;
2. on a crossing, the crossing time is located inside that step by Brent's
   method on the dense output, to ``config.root_tol`` in time;
3. output times before the crossing are filled from the dense output;
4. channel ``k`` is picked with probability ``<psi|J_k^dag J_k|psi> / total``
   (first ``k`` whose cumulative weight exceeds ``u * total``);
5. ``|psi> <- J_k|psi> / ||J_k|psi>||``, a fresh ``r`` is drawn and the
   integrator restarts at the jump time.

All randomness comes from one ``numpy.random.Generator`` per trajectory, so
an identical seed reproduces jump times and states bit for bit. The output
states are normalized copies (the physical conditional state).
"""

import threading
import time as _time
import warnings
from collections.abc import Sequence
from typing import Any

import numpy as np
from scipy.optimize import brentq

from .core.config import SolverConfig
from .core.errors import IntegrationError, IntegrationWarning, get_logger
from .integrator import Segment, make_integrator
from .operators import Operator
from .propagators import (
    _check_cancel,
    _check_hamiltonian,
    _check_initial_ket,
    _check_jump_operators,
    effective_hamiltonian,
)
from .result import MCWFTrajectory
from .states import Ket
from .utils import as_time_grid

__all__ = ["mcwf", "choose_jump"]


def _draw_threshold(rng: np.random.Generator) -> float:
    r = rng.random()
    while r == 0.0:
        r = rng.random()
    return float(r)


def _norm2(y: np.ndarray) -> float:
    return float(np.real(np.vdot(y, y)))


def choose_jump(weights: np.ndarray, u: float) -> int:
    """Index of the first cumulative weight strictly greater than ``u * total``.

    Parameters
    ----------
    weights : numpy.ndarray
        Non-negative jump rates ``<psi|J_k^dag J_k|psi>``.
    u : float
        Uniform draw from ``[0, 1)``.

    Raises
    ------
    IntegrationError
        - [303] Every jump rate vanishes.

    Examples
    --------
    >>> choose_jump(np.array([1.0, 0.0, 3.0]), 0.5)
    2
    >>> choose_jump(np.array([1.0, 1.0]), 0.0)
    0

    """
    cumulative = np.cumsum(weights)
    total = float(cumulative[-1]) if cumulative.size else 0.0
    if not total > 0.0:
        raise IntegrationError("[303] Norm crossed the jump threshold but every jump rate is zero")
    idx = int(np.searchsorted(cumulative, u * total, side="right"))
    return min(idx, cumulative.size - 1)


def _locate_jump(seg: Segment, r: float, xtol: float) -> float:
    """Time inside ``seg`` where the squared norm crosses ``r``."""
    f_old = _norm2(seg.y_old) - r
    f_new = _norm2(seg.y_new) - r
    if f_old <= 0.0:
        return seg.t_old
    if f_new >= 0.0:
        return seg.t_new
    return float(brentq(lambda s: _norm2(seg(s)) - r, seg.t_old, seg.t_new, xtol=xtol))


def mcwf(
    tlist: Any,
    psi0: Ket,
    H: Operator,
    c_ops: Sequence[Operator] = (),
    seed: int | np.random.SeedSequence | None = None,
    config: SolverConfig | None = None,
    *,
    rng: np.random.Generator | None = None,
    cancel: threading.Event | None = None,
) -> MCWFTrajectory:
    """Generate one Monte Carlo wave-function trajectory.

    Parameters
    ----------
    tlist : array-like
        Strictly increasing output times.
    psi0 : Ket
        Initial state; normalized before the run.
    H : Operator
        Hermitian Hamiltonian on ``psi0.basis``.
    c_ops : sequence of Operator
        Jump operators. Without any, this is normalized Schrodinger evolution.
    seed : int or numpy.random.SeedSequence, optional
        Seed of the trajectory generator; ignored when ``rng`` is given.
    config : SolverConfig, optional
        Integrator settings; ``root_tol`` sets the jump-time precision.
    rng : numpy.random.Generator, optional
        Generator owned by this trajectory.
    cancel : threading.Event, optional
        Checked at every step boundary; when set, ``RunCancelled`` is raised.

    Returns
    -------
    MCWFTrajectory
        Normalized states on the grid plus ``jump_times`` and
        ``jump_indices``.

    Raises
    ------
    InvalidInput
        Bad time grid, non-Hermitian H, or a jump operator on another basis.
    ConstructionError
        H and ``psi0`` live on different bases.
    IntegrationError
        Step-size collapse, exhausted step budget, or all jump rates zero at
        a crossing (``on_failure="raise"``).

    """
    config = config if config is not None else SolverConfig()
    times = as_time_grid(tlist)
    psi0 = _check_initial_ket(psi0)
    H = _check_hamiltonian(H, psi0, config)
    ops = _check_jump_operators(c_ops, psi0.basis)
    if rng is None:
        rng = np.random.default_rng(seed)

    basis = psi0.basis
    h_eff = effective_hamiltonian(H, ops).data
    jumps = [J.data for J in ops]

    def rhs(t: float, y: np.ndarray) -> np.ndarray:
        return -1j * (h_eff @ y)

    def emit(y: np.ndarray) -> None:
        states.append(Ket(basis, y / np.sqrt(_norm2(y))))

    logger = get_logger()
    start = _time.monotonic()
    y = psi0.normalized().data
    states: list[Ket] = [Ket(basis, y)]
    jump_times: list[float] = []
    jump_indices: list[int] = []
    stats: dict[str, Any] = {"method": config.method, "n_steps": 0, "nfev": 0, "completed": True}
    n = times.size
    k = 1

    integrator = make_integrator(config)
    stepper = integrator.start(rhs, float(times[0]), y, float(times[-1])) if n > 1 else None
    r = _draw_threshold(rng)
    since_output = 0
    try:
        while k < n:
            _check_cancel(cancel)
            seg = stepper.advance()
            stats["n_steps"] += 1
            since_output += 1

            if not ops or _norm2(seg.y_new) > r:
                while k < n and times[k] <= seg.t_new:
                    emit(seg(float(times[k])))
                    k += 1
                    since_output = 0
                if k < n and since_output >= config.max_steps:
                    raise IntegrationError(
                        f"[304] Step budget of {config.max_steps} exhausted before "
                        f"t={times[k]:.6g} (reached t={seg.t_new:.6g})"
                    )
                continue

            t_jump = _locate_jump(seg, r, config.root_tol)
            while k < n and times[k] < t_jump:
                emit(seg(float(times[k])))
                k += 1
            psi = seg(t_jump)
            weights = np.array([_norm2(np.asarray(J @ psi)) for J in jumps])
            idx = choose_jump(weights, rng.random())
            psi = np.asarray(jumps[idx] @ psi)
            psi = psi / np.sqrt(_norm2(psi))
            jump_times.append(t_jump)
            jump_indices.append(idx)
            logger.debug(f"mcwf: jump {len(jump_times)} through channel {idx} at t={t_jump:.6g}")
            r = _draw_threshold(rng)

            while k < n and times[k] <= t_jump:
                emit(psi)
                k += 1
            since_output = 0
            if k < n:
                stats["nfev"] += stepper.nfev
                stepper = integrator.start(rhs, t_jump, psi, float(times[-1]))
    except IntegrationError as e:
        if config.on_failure == "raise":
            raise
        stats["completed"] = False
        stats["error"] = str(e)
        msg = f"Trajectory stopped early, returning {len(states)} of {n} states: {e}"
        logger.warning(msg)
        warnings.warn(msg, IntegrationWarning, stacklevel=2)
    finally:
        if stepper is not None:
            stats["nfev"] += stepper.nfev

    stats["n_jumps"] = len(jump_times)
    stats["wall_time"] = _time.monotonic() - start
    return MCWFTrajectory(
        times=times[: len(states)],
        states=states,
        stats=stats,
        jump_times=np.asarray(jump_times, dtype=float),
        jump_indices=np.asarray(jump_indices, dtype=np.int64),
        seed=seed if isinstance(seed, (int, np.integer)) else None,
    )
