"""qdyn: Job Runner
----------------
Executes a validated ``JobConfig``: imports the model builder, runs the
requested propagator, computes the named observables and writes a
timestamped run directory.

Run directory layout
--------------------
``expect.npz``
    ``times``, ``names`` and the complex ``values`` array ``(n_obs, n_times)``.
``result.npz``
    The full ``Trajectory``/``MCWFTrajectory``/``EnsembleResult``.
``manifest.json``
    Job name, solver kind, timings and run statistics.
``config_snapshot.yaml``
    The validated job configuration, for reproducibility.
"""

import importlib
import importlib.util
import json
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from types import ModuleType
from typing import Any

import numpy as np
import yaml

from .core.config_loader import JobConfig, ModelSpec
from .core.errors import QDConfigError, QDIOError, get_logger
from .ensemble import mcwf_ensemble
from .expect import expect
from .mcwf import mcwf
from .model import QuantumModel
from .propagators import master, schrodinger

__all__ = ["RunRecord", "load_module", "build_model", "run_job"]


@dataclass
class RunRecord:
    """Outcome of one job."""

    run_dir: Path
    job_name: str
    kind: str
    names: tuple[str, ...]
    times: np.ndarray
    values: np.ndarray
    result: Any


def load_module(module_spec: str) -> ModuleType:
    """Load a Python module by dotted name or from a file path."""
    try:
        return importlib.import_module(module_spec)
    except ModuleNotFoundError:
        p = Path(module_spec)
        if p.suffix == ".py" and p.exists():
            spec = importlib.util.spec_from_file_location(p.stem, p)
            if spec is None or spec.loader is None:
                raise
            mod = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(mod)
            return mod
        raise


def build_model(spec: ModelSpec) -> QuantumModel:
    """Import and call the builder named by ``spec``.

    Raises
    ------
    QDConfigError
        - [506] The model module cannot be imported.
        - [507] The builder function does not exist.
        - [508] The builder did not return a ``QuantumModel``.

    """
    try:
        mod = load_module(spec.module)
    except ModuleNotFoundError as e:
        raise QDConfigError(f"[506] Model module not found: {spec.module}") from e
    if not hasattr(mod, spec.function):
        raise QDConfigError(f"[507] Function '{spec.function}' not found in module '{spec.module}'")
    model = getattr(mod, spec.function)(dict(spec.params))
    if not isinstance(model, QuantumModel):
        raise QDConfigError(
            f"[508] Builder '{spec.module}.{spec.function}' returned {type(model).__name__}, "
            "expected QuantumModel"
        )
    return model.validate()


def _generate_run_id(job_name: str) -> str:
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")
    return f"{ts}_{job_name}_{uuid.uuid4().hex[:8]}"


def _json_default(obj: Any) -> Any:
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    return str(obj)


def run_job(
    job: JobConfig,
    output_dir: str | Path | None = None,
    progress_cb: Callable[[int, int], None] | None = None,
) -> RunRecord:
    """Run ``job`` and write its run directory.

    Parameters
    ----------
    job : JobConfig
        Validated job.
    output_dir : str or Path, optional
        Overrides ``job.output_dir``.
    progress_cb : callable, optional
        Forwarded to ``mcwf_ensemble``.

    Raises
    ------
    QDConfigError
        The model cannot be built.
    QDIOError
        - [603] The run directory cannot be written.

    """
    log = get_logger()
    started = datetime.now(timezone.utc)
    times = job.time.grid()
    model = build_model(job.model)
    observables = model.select(job.observables)
    names = tuple(observables)
    ops = list(observables.values())
    config = job.solver.to_solver_config()
    kind = job.solver.kind
    log.info(f"Running job '{job.name}' ({kind}) on {len(times)} output times")

    match kind:
        case "schrodinger":
            result = schrodinger(times, model.psi0, model.hamiltonian, config)
        case "master":
            result = master(times, model.psi0, model.hamiltonian, model.c_ops, config)
        case "mcwf":
            result = mcwf(times, model.psi0, model.hamiltonian, model.c_ops, seed=job.ensemble.seed, config=config)
        case "mcwf_ensemble":
            result = mcwf_ensemble(
                times,
                model.psi0,
                model.hamiltonian,
                model.c_ops,
                e_ops=observables,
                config=config,
                ensemble=job.ensemble,
                progress_cb=progress_cb,
            )

    if kind == "mcwf_ensemble":
        out_times, values = result.times, result.expect
        stats = {**result.stats, "n_completed": result.n_completed, "n_failed": result.n_failed}
    else:
        out_times = result.times
        values = expect(ops, result.states) if ops else np.zeros((0, len(out_times)), dtype=np.complex128)
        stats = dict(result.stats)

    root = Path(output_dir if output_dir is not None else job.output_dir).resolve()
    run_dir = root / _generate_run_id(job.name)
    try:
        run_dir.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(
            run_dir / "expect.npz",
            times=np.asarray(out_times, dtype=float),
            names=np.array(names, dtype=str),
            values=np.asarray(values, dtype=np.complex128),
        )
        result.save(run_dir / "result.npz")
        manifest = {
            "job": job.name,
            "kind": kind,
            "model": model.name,
            "observables": list(names),
            "started": started.isoformat(),
            "finished": datetime.now(timezone.utc).isoformat(),
            "stats": stats,
        }
        with open(run_dir / "manifest.json", "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2, default=_json_default)
        with open(run_dir / "config_snapshot.yaml", "w", encoding="utf-8") as f:
            yaml.safe_dump(job.model_dump(), f, sort_keys=False)
    except OSError as e:
        raise QDIOError(f"[603] Cannot write run directory {run_dir}: {e}") from e

    log.info(f"Job '{job.name}' finished, results in {run_dir}")
    return RunRecord(run_dir, job.name, kind, names, np.asarray(out_times), np.asarray(values), result)
