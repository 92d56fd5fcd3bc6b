"""qdyn: Simulation Results
------------------------
Containers returned by the propagators and the trajectory engine, with
compressed NPZ persistence.

Every single-run container unpacks to a plain tuple, so both attribute and
tuple access work::

    times, states = schrodinger(tlist, psi0, H)
    times, states, jump_times, jump_indices = mcwf(tlist, psi0, H, J, seed=1)

Public API
----------
``Trajectory`` : Output times and aligned states of one deterministic run
``MCWFTrajectory`` : One stochastic run, plus its jump record and seed
``EnsembleResult`` : Averaged expectation values of a trajectory ensemble
"""

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from .basis import basis_from_dict
from .core.errors import QDIOError
from .states import DensityMatrix, Ket, State, StateKind

__all__ = ["Trajectory", "MCWFTrajectory", "EnsembleResult"]


def _json_default(obj: Any) -> Any:
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    return str(obj)


def _dump(obj: Any) -> np.ndarray:
    return np.array(json.dumps(obj, default=_json_default))


def _undump(arr: np.ndarray) -> Any:
    return json.loads(str(arr[()]))


def _stack_states(states: list[State]) -> tuple[str, np.ndarray, dict[str, Any] | None]:
    if not states:
        return StateKind.KET.value, np.empty((0, 0), dtype=np.complex128), None
    kind = states[0].kind
    return kind.value, np.stack([s.data for s in states]), states[0].basis.to_dict()


def _unstack_states(kind: str, data: np.ndarray, basis_spec: dict[str, Any] | None) -> list[State]:
    if basis_spec is None:
        return []
    basis = basis_from_dict(basis_spec)
    match StateKind(kind):
        case StateKind.KET:
            return [Ket(basis, row) for row in data]
        case StateKind.DENSITY_MATRIX:
            return [DensityMatrix(basis, row) for row in data]


def _npz_path(path: str | Path) -> Path:
    # np.savez_compressed appends ".npz" to any other name; load must agree.
    path = Path(path)
    if path.suffix != ".npz":
        path = path.with_name(path.name + ".npz")
    return path


def _check_path(path: Path) -> Path:
    if not path.exists():
        raise QDIOError(f"[601] File not found: {path}")
    return path


@dataclass
class Trajectory:
    """Output times and aligned states of one propagation.

    Attributes
    ----------
    times : numpy.ndarray
        Output times actually reached. Shorter than the requested grid only
        when a run stopped early under ``on_failure="partial"``.
    states : list of State
        State at each output time; ``states[0]`` is the initial state.
    stats : dict
        Run statistics (``nfev``, ``n_steps``, ``completed``, drift figures).

    """

    times: np.ndarray
    states: list[State]
    stats: dict[str, Any] = field(default_factory=dict)

    def __iter__(self) -> Iterator[Any]:
        yield self.times
        yield self.states

    def __len__(self) -> int:
        return len(self.states)

    @property
    def completed(self) -> bool:
        return bool(self.stats.get("completed", True))

    @property
    def final_state(self) -> State:
        return self.states[-1]

    def save(self, path: str | Path) -> None:
        """Save the trajectory as a compressed ``.npz`` file.

        ``.npz`` is appended to ``path`` unless it already ends with it.

        Raises
        ------
        QDIOError
            - [600] Writing the file failed.

        """
        path = _npz_path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        kind, data, basis_spec = _stack_states(self.states)
        try:
            np.savez_compressed(
                path,
                times=np.asarray(self.times, dtype=float),
                kind=np.array(kind),
                data=data,
                basis=_dump(basis_spec),
                stats=_dump(self.stats),
                **self._extra_arrays(),
            )
        except OSError as e:
            raise QDIOError(f"[600] Failed to save {type(self).__name__} to {path}: {e}") from e

    def _extra_arrays(self) -> dict[str, np.ndarray]:
        return {}

    @classmethod
    def load(cls, path: str | Path) -> "Trajectory":
        """Load a trajectory written by ``save``.

        ``path`` is resolved the same way ``save`` resolves it.

        Raises
        ------
        QDIOError
            - [601] The file does not exist.
            - [602] The file is not a readable trajectory archive.

        """
        path = _check_path(_npz_path(path))
        try:
            with np.load(path, allow_pickle=False) as npz:
                states = _unstack_states(str(npz["kind"]), npz["data"], _undump(npz["basis"]))
                fields = {
                    "times": np.asarray(npz["times"], dtype=float),
                    "states": states,
                    "stats": _undump(npz["stats"]),
                }
                fields.update(cls._read_extra(npz))
        except (OSError, KeyError, ValueError) as e:
            raise QDIOError(f"[602] Failed to load {cls.__name__} from {path}: {e}") from e
        return cls(**fields)

    @classmethod
    def _read_extra(cls, npz: Any) -> dict[str, Any]:
        return {}


@dataclass
class MCWFTrajectory(Trajectory):
    """One Monte Carlo wave-function trajectory.

    Attributes
    ----------
    jump_times : numpy.ndarray
        Times of the quantum jumps, increasing.
    jump_indices : numpy.ndarray
        Index of the jump operator applied at each jump.
    seed : int or None
        Seed of the trajectory generator when one was given.

    """

    jump_times: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=float))
    jump_indices: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))
    seed: int | None = None

    def __iter__(self) -> Iterator[Any]:
        yield self.times
        yield self.states
        yield self.jump_times
        yield self.jump_indices

    @property
    def n_jumps(self) -> int:
        return int(len(self.jump_times))

    def _extra_arrays(self) -> dict[str, np.ndarray]:
        return {
            "jump_times": np.asarray(self.jump_times, dtype=float),
            "jump_indices": np.asarray(self.jump_indices, dtype=np.int64),
            "seed": _dump(self.seed),
        }

    @classmethod
    def _read_extra(cls, npz: Any) -> dict[str, Any]:
        return {
            "jump_times": np.asarray(npz["jump_times"], dtype=float),
            "jump_indices": np.asarray(npz["jump_indices"], dtype=np.int64),
            "seed": _undump(npz["seed"]),
        }


@dataclass
class EnsembleResult:
    """Average over an ensemble of stochastic trajectories.

    Attributes
    ----------
    times : numpy.ndarray
        Output time grid.
    expect : numpy.ndarray
        Complex array of shape ``(n_ops, n_times)``: the mean of each
        observable over the completed trajectories (NaN when none completed).
    names : tuple of str
        Observable names, aligned with the rows of ``expect``.
    n_traj : int
        Number of trajectories requested.
    n_completed : int
        Number of trajectories that contributed to the average.
    failures : dict[int, str]
        Trajectory index to error message, for runs that failed.
    jump_times, jump_indices : list of numpy.ndarray
        Jump records of the completed trajectories, keyed by position in
        ``trajectory_indices``.
    trajectory_indices : list of int
        Indices of the completed trajectories, increasing.
    cancelled : bool
        True when the run was cancelled before every trajectory finished.
    states : list of DensityMatrix or None
        Averaged ``|psi><psi|`` at every output time when requested.
    stats : dict
        Run statistics (wall time, executor, seed).

    """

    times: np.ndarray
    expect: np.ndarray
    names: tuple[str, ...]
    n_traj: int
    n_completed: int
    failures: dict[int, str] = field(default_factory=dict)
    jump_times: list[np.ndarray] = field(default_factory=list)
    jump_indices: list[np.ndarray] = field(default_factory=list)
    trajectory_indices: list[int] = field(default_factory=list)
    cancelled: bool = False
    states: list[DensityMatrix] | None = None
    stats: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> np.ndarray:
        """Averaged expectation values of the observable called ``name``."""
        try:
            return self.expect[self.names.index(name)]
        except ValueError:
            raise KeyError(name) from None

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    def save(self, path: str | Path) -> None:
        """Save the ensemble average as a compressed ``.npz`` file.

        ``.npz`` is appended to ``path`` unless it already ends with it.

        Jump records are stored flattened with per-trajectory offsets.

        Raises
        ------
        QDIOError
            - [600] Writing the file failed.

        """
        path = _npz_path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        counts = np.array([len(j) for j in self.jump_times], dtype=np.int64)
        offsets = np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)
        flat_t = np.concatenate(self.jump_times) if self.jump_times else np.empty(0)
        flat_k = np.concatenate(self.jump_indices) if self.jump_indices else np.empty(0)
        kind, data, basis_spec = _stack_states(self.states or [])
        meta = {
            "names": list(self.names),
            "n_traj": self.n_traj,
            "n_completed": self.n_completed,
            "failures": {str(k): v for k, v in self.failures.items()},
            "trajectory_indices": list(self.trajectory_indices),
            "cancelled": self.cancelled,
            "has_states": self.states is not None,
            "basis": basis_spec,
            "stats": self.stats,
        }
        try:
            np.savez_compressed(
                path,
                times=np.asarray(self.times, dtype=float),
                expect=np.asarray(self.expect, dtype=np.complex128),
                jump_offsets=offsets,
                jump_times=np.asarray(flat_t, dtype=float),
                jump_indices=np.asarray(flat_k, dtype=np.int64),
                kind=np.array(kind),
                data=data,
                meta=_dump(meta),
            )
        except OSError as e:
            raise QDIOError(f"[600] Failed to save EnsembleResult to {path}: {e}") from e

    @classmethod
    def load(cls, path: str | Path) -> "EnsembleResult":
        """Load an ensemble result written by ``save``.

        ``path`` is resolved the same way ``save`` resolves it.

        Raises
        ------
        QDIOError
            - [601] The file does not exist.
            - [602] The file is not a readable ensemble archive.

        """
        path = _check_path(_npz_path(path))
        try:
            with np.load(path, allow_pickle=False) as npz:
                meta = _undump(npz["meta"])
                offsets = npz["jump_offsets"]
                flat_t = npz["jump_times"]
                flat_k = npz["jump_indices"]
                jump_times = [flat_t[a:b].copy() for a, b in zip(offsets[:-1], offsets[1:])]
                jump_indices = [flat_k[a:b].copy() for a, b in zip(offsets[:-1], offsets[1:])]
                states = None
                if meta["has_states"]:
                    states = _unstack_states(str(npz["kind"]), npz["data"], meta["basis"])
                return cls(
                    times=np.asarray(npz["times"], dtype=float),
                    expect=np.asarray(npz["expect"], dtype=np.complex128),
                    names=tuple(meta["names"]),
                    n_traj=int(meta["n_traj"]),
                    n_completed=int(meta["n_completed"]),
                    failures={int(k): v for k, v in meta["failures"].items()},
                    jump_times=jump_times,
                    jump_indices=jump_indices,
                    trajectory_indices=[int(i) for i in meta["trajectory_indices"]],
                    cancelled=bool(meta["cancelled"]),
                    states=states,
                    stats=meta["stats"],
                )
        except (OSError, KeyError, ValueError) as e:
            raise QDIOError(f"[602] Failed to load EnsembleResult from {path}: {e}") from e
