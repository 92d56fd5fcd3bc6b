"""qdyn: Trajectory Ensembles
--------------------------
Runs many independent Monte Carlo wave-function trajectories and averages
their expectation values, which converge to the master-equation result as
the ensemble grows.

Behavior
--------
- Trajectory ``i`` always receives child ``i`` of
  ``numpy.random.SeedSequence(seed).spawn(n_traj)``, so results do not depend
  on scheduling or on the number of workers.
- Trajectories run on a ``concurrent.futures`` thread pool (default), a
  process pool, or serially in-process.
- Partial results are reduced with ``ExpectationAccumulator`` whose ``merge``
  is associative; the final reduction runs in trajectory-index order.
- A trajectory that fails with ``IntegrationError`` is recorded in
  ``EnsembleResult.failures`` and left out of the average.
- Cancellation keeps every trajectory already finished and sets
  ``EnsembleResult.cancelled``.
"""

import threading
import time as _time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import (
    CancelledError,
    Executor,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    as_completed,
)
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from pydantic import ValidationError

from .core.config import EnsembleConfig, SolverConfig
from .core.errors import IntegrationError, InvalidInput, RunCancelled, get_logger
from .expect import expect
from .mcwf import mcwf
from .operators import Operator
from .propagators import _check_hamiltonian, _check_initial_ket, _check_jump_operators
from .result import EnsembleResult
from .states import DensityMatrix, Ket
from .utils import as_time_grid

__all__ = ["ExpectationAccumulator", "mcwf_ensemble"]


@dataclass
class ExpectationAccumulator:
    """Running sum of per-trajectory expectation values.

    Attributes
    ----------
    sums : numpy.ndarray
        Complex array ``(n_ops, n_times)`` of summed expectation values.
    count : int
        Number of trajectories folded in.
    rho_sums : numpy.ndarray or None
        Summed ``|psi><psi|`` per output time, ``(n_times, dim, dim)``.

    Examples
    --------
    >>> a = ExpectationAccumulator.empty(1, 2)
    >>> a.add(np.array([[1.0, 2.0]]))
    >>> b = ExpectationAccumulator.empty(1, 2)
    >>> b.add(np.array([[3.0, 4.0]]))
    >>> a.merge(b).mean().real.tolist()
    [[2.0, 3.0]]

    """

    sums: np.ndarray
    count: int = 0
    rho_sums: np.ndarray | None = field(default=None)

    @classmethod
    def empty(cls, n_ops: int, n_times: int, dim: int | None = None) -> "ExpectationAccumulator":
        rho = None if dim is None else np.zeros((n_times, dim, dim), dtype=np.complex128)
        return cls(np.zeros((n_ops, n_times), dtype=np.complex128), 0, rho)

    def add(self, values: np.ndarray, rho: np.ndarray | None = None) -> None:
        self.sums += values
        if self.rho_sums is not None and rho is not None:
            self.rho_sums += rho
        self.count += 1

    def merge(self, other: "ExpectationAccumulator") -> "ExpectationAccumulator":
        """Return a new accumulator holding both partial sums."""
        if self.sums.shape != other.sums.shape:
            raise ValueError(f"Cannot merge accumulators of shape {self.sums.shape} and {other.sums.shape}")
        rho = None
        if self.rho_sums is not None and other.rho_sums is not None:
            rho = self.rho_sums + other.rho_sums
        return ExpectationAccumulator(self.sums + other.sums, self.count + other.count, rho)

    def mean(self) -> np.ndarray:
        if self.count == 0:
            return np.full(self.sums.shape, np.nan + 0j)
        return self.sums / self.count


@dataclass
class _Outcome:
    index: int
    values: np.ndarray | None = None
    rho: np.ndarray | None = None
    jump_times: np.ndarray | None = None
    jump_indices: np.ndarray | None = None
    error: str | None = None
    cancelled: bool = False


def _run_one(
    index: int,
    seed_seq: np.random.SeedSequence,
    tlist: np.ndarray,
    psi0: Ket,
    H: Operator,
    c_ops: list[Operator],
    e_ops: list[Operator],
    config: SolverConfig,
    average_states: bool,
    cancel: threading.Event | None = None,
) -> _Outcome:
    """Run trajectory ``index``; module level so process pools can pickle it."""
    try:
        traj = mcwf(tlist, psi0, H, c_ops, config=config, rng=np.random.default_rng(seed_seq), cancel=cancel)
    except IntegrationError as e:
        return _Outcome(index, error=str(e))
    except RunCancelled:
        return _Outcome(index, cancelled=True)
    if not traj.completed:
        return _Outcome(index, error=str(traj.stats.get("error", "incomplete trajectory")))
    values = expect(e_ops, traj.states) if e_ops else np.zeros((0, len(traj.states)), dtype=np.complex128)
    rho = None
    if average_states:
        rho = np.stack([np.outer(s.data, s.data.conj()) for s in traj.states])
    return _Outcome(index, values, rho, traj.jump_times, traj.jump_indices)


def _observable_table(
    e_ops: Sequence[Operator] | Mapping[str, Operator] | None,
) -> tuple[tuple[str, ...], list[Operator]]:
    if e_ops is None:
        return (), []
    if isinstance(e_ops, Mapping):
        return tuple(str(k) for k in e_ops), list(e_ops.values())
    if isinstance(e_ops, Operator):
        return ("0",), [e_ops]
    ops = list(e_ops)
    return tuple(str(i) for i in range(len(ops))), ops


def _make_executor(ensemble: EnsembleConfig) -> Executor:
    if ensemble.executor == "process":
        return ProcessPoolExecutor(max_workers=ensemble.n_workers)
    return ThreadPoolExecutor(max_workers=ensemble.n_workers)


def mcwf_ensemble(
    tlist: Any,
    psi0: Ket,
    H: Operator,
    c_ops: Sequence[Operator] = (),
    e_ops: Sequence[Operator] | Mapping[str, Operator] | None = None,
    n_traj: int | None = None,
    seed: int | None = None,
    config: SolverConfig | None = None,
    ensemble: EnsembleConfig | None = None,
    *,
    progress_cb: Callable[[int, int], None] | None = None,
    cancel: threading.Event | None = None,
    average_states: bool = False,
) -> EnsembleResult:
    """Average expectation values over independent MCWF trajectories.

    Parameters
    ----------
    tlist : array-like
        Strictly increasing output times.
    psi0 : Ket
        Initial state shared by every trajectory.
    H : Operator
        Hermitian Hamiltonian.
    c_ops : sequence of Operator
        Jump operators.
    e_ops : sequence or mapping of Operator, optional
        Observables to average. A mapping names the rows of the result;
        a sequence names them ``"0"``, ``"1"``, ...
    n_traj, seed : optional
        Override ``ensemble.n_traj`` and ``ensemble.seed``.
    config : SolverConfig, optional
        Integrator settings used by every trajectory.
    ensemble : EnsembleConfig, optional
        Trajectory count, master seed and worker pool.
    progress_cb : callable, optional
        Called as ``progress_cb(done, total)`` whenever a trajectory ends.
        Exceptions raised by the callback are logged and ignored.
    cancel : threading.Event, optional
        When set, unfinished trajectories are abandoned. Thread and serial
        runs also stop the running trajectories at their next step.
    average_states : bool, default False
        Also average ``|psi><psi|`` into ``EnsembleResult.states``.

    Returns
    -------
    EnsembleResult

    Raises
    ------
    InvalidInput, ConstructionError
        Invalid inputs, detected before any trajectory starts.
        [208] marks an invalid ``n_traj`` or ``seed`` override.

    """
    config = config if config is not None else SolverConfig()
    ensemble = ensemble if ensemble is not None else EnsembleConfig()
    update: dict[str, Any] = {}
    if n_traj is not None:
        update["n_traj"] = n_traj
    if seed is not None:
        update["seed"] = seed
    if update:
        try:
            ensemble = EnsembleConfig(**{**ensemble.model_dump(), **update})
        except ValidationError as e:
            raise InvalidInput(f"[208] Invalid ensemble override {update}: {e}") from e

    times = as_time_grid(tlist)
    psi0 = _check_initial_ket(psi0)
    H = _check_hamiltonian(H, psi0, config)
    c_ops = _check_jump_operators(c_ops, psi0.basis)
    names, ops = _observable_table(e_ops)
    for op in ops:
        expect(op, psi0)

    logger = get_logger()
    total = ensemble.n_traj
    root = np.random.SeedSequence(ensemble.seed)
    children = root.spawn(total)
    start = _time.monotonic()
    logger.debug(
        f"mcwf_ensemble: {total} trajectories on '{ensemble.executor}' executor, "
        f"entropy={root.entropy}"
    )

    outcomes: dict[int, _Outcome] = {}
    cancelled = False

    def record(outcome: _Outcome) -> None:
        outcomes[outcome.index] = outcome
        if outcome.error is not None:
            logger.warning(f"mcwf_ensemble: trajectory {outcome.index} failed: {outcome.error}")
        if progress_cb is not None:
            try:
                progress_cb(len(outcomes), total)
            except Exception as e:
                logger.warning(f"mcwf_ensemble: progress callback raised {e!r}")

    args = (times, psi0, H, c_ops, ops, config, average_states)
    if ensemble.executor == "serial":
        for i, child in enumerate(children):
            if cancel is not None and cancel.is_set():
                cancelled = True
                break
            outcome = _run_one(i, child, *args, cancel)
            if outcome.cancelled:
                cancelled = True
                break
            record(outcome)
    else:
        worker_cancel = cancel if ensemble.executor == "thread" else None
        with _make_executor(ensemble) as pool:
            futures = {pool.submit(_run_one, i, child, *args, worker_cancel): i for i, child in enumerate(children)}
            for fut in as_completed(futures):
                try:
                    outcome = fut.result()
                except CancelledError:
                    cancelled = True
                    continue
                if outcome.cancelled:
                    cancelled = True
                else:
                    record(outcome)
                if cancel is not None and cancel.is_set():
                    cancelled = True
                    for f in futures:
                        f.cancel()

    # Index-order reduction keeps the average independent of scheduling.
    dim = psi0.dim if average_states else None
    acc = ExpectationAccumulator.empty(len(ops), times.size, dim)
    failures: dict[int, str] = {}
    jump_times: list[np.ndarray] = []
    jump_indices: list[np.ndarray] = []
    completed: list[int] = []
    for i in sorted(outcomes):
        outcome = outcomes[i]
        if outcome.error is not None:
            failures[i] = outcome.error
            continue
        part = ExpectationAccumulator.empty(len(ops), times.size, dim)
        part.add(outcome.values, outcome.rho)
        acc = acc.merge(part)
        completed.append(i)
        jump_times.append(outcome.jump_times)
        jump_indices.append(outcome.jump_indices)

    cancelled = cancelled and len(outcomes) < total
    states = None
    if average_states:
        if acc.count:
            states = [DensityMatrix(psi0.basis, rho / acc.count) for rho in acc.rho_sums]
        else:
            states = []
    if cancelled:
        logger.warning(f"mcwf_ensemble: cancelled after {len(outcomes)} of {total} trajectories")
    wall = _time.monotonic() - start
    logger.debug(f"mcwf_ensemble: {acc.count} completed, {len(failures)} failed in {wall:.3g}s")
    return EnsembleResult(
        times=times,
        expect=acc.mean(),
        names=names,
        n_traj=total,
        n_completed=acc.count,
        failures=failures,
        jump_times=jump_times,
        jump_indices=jump_indices,
        trajectory_indices=completed,
        cancelled=cancelled,
        states=states,
        stats={
            "executor": ensemble.executor,
            "seed": ensemble.seed,
            "entropy": root.entropy,
            "wall_time": wall,
        },
    )
