"""Tests for the job runner and the CLI commands using Typer's CliRunner."""

import json
import logging

import numpy as np
import pytest
import yaml
from qdyn.cli import app
from qdyn.core.config_loader import JobConfig, ModelSpec
from qdyn.core.errors import QDConfigError, get_logger
from qdyn.result import EnsembleResult, MCWFTrajectory, Trajectory
from qdyn.runner import build_model, run_job
from typer.testing import CliRunner

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger = get_logger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logging.captureWarnings(False)


def _job(kind, **extra):
    data = {
        "name": f"jc_{kind}",
        "model": {"module": "models.jaynes_cummings", "params": {"cutoff": 4, "decay": 0.5}},
        "solver": {"kind": kind},
        "time": {"t0": 0.0, "t1": 2.0, "dt": 0.5},
        "observables": ["n_photon", "n_excitation"],
    }
    data.update(extra)
    return JobConfig(**data)


@pytest.mark.parametrize(
    "kind, result_cls",
    [
        ("schrodinger", Trajectory),
        ("master", Trajectory),
        ("mcwf", MCWFTrajectory),
        ("mcwf_ensemble", EnsembleResult),
    ],
)
def test_run_job_writes_run_directory(tmp_path, kind, result_cls):
    job = _job(kind, ensemble={"n_traj": 3, "seed": 1, "executor": "serial"})
    record = run_job(job, output_dir=tmp_path)
    assert record.run_dir.parent == tmp_path.resolve()
    assert record.names == ("n_photon", "n_excitation")
    assert record.values.shape == (2, 5)

    with np.load(record.run_dir / "expect.npz") as npz:
        assert list(npz["names"]) == ["n_photon", "n_excitation"]
        np.testing.assert_allclose(npz["times"], [0.0, 0.5, 1.0, 1.5, 2.0])
        np.testing.assert_array_equal(npz["values"], record.values)

    loaded = result_cls.load(record.run_dir / "result.npz")
    np.testing.assert_allclose(loaded.times, record.times)

    manifest = json.loads((record.run_dir / "manifest.json").read_text())
    assert manifest["kind"] == kind
    assert manifest["model"] == "jaynes_cummings"

    snapshot = yaml.safe_load((record.run_dir / "config_snapshot.yaml").read_text())
    assert JobConfig(**snapshot) == job


def test_all_observables_when_none_selected(tmp_path):
    record = run_job(_job("master", observables=None), output_dir=tmp_path)
    assert set(record.names) == {"n_photon", "n_atom", "n_excitation", "sigma_x", "sigma_z"}


def test_build_model_errors(tmp_path):
    with pytest.raises(QDConfigError, match="506"):
        build_model(ModelSpec(module="models.no_such_model"))
    with pytest.raises(QDConfigError, match="507"):
        build_model(ModelSpec(module="models.jaynes_cummings", function="make"))

    bad = tmp_path / "bad_model.py"
    bad.write_text("def build(params):\n    return {'H': None}\n")
    with pytest.raises(QDConfigError, match="508"):
        build_model(ModelSpec(module=str(bad)))


def test_model_from_file_path(tmp_path):
    path = tmp_path / "qubit_model.py"
    path.write_text(
        "from qdyn import QuantumModel, SpinBasis, sigmax, spin_up\n"
        "def build(params):\n"
        "    b = SpinBasis(0.5)\n"
        "    return QuantumModel('qubit', params.get('omega', 1.0) * sigmax(b), spin_up(b))\n"
    )
    model = build_model(ModelSpec(module=str(path), params={"omega": 2.0}))
    assert model.name == "qubit"
    assert model.c_ops == []


# -----------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------


def test_cli_run(temp_workspace):
    job_file = temp_workspace / "configs" / "jobs" / "job.yaml"
    job_file.write_text(yaml.safe_dump(_job("master").model_dump()))
    out = temp_workspace / "runs"
    result = runner.invoke(app, ["run", str(job_file), "--output-dir", str(out)])
    assert result.exit_code == 0, result.output
    assert "Run directory:" in result.output
    (run_dir,) = list(out.iterdir())
    assert "_jc_master_" in run_dir.name
    for name in ("expect.npz", "result.npz", "manifest.json", "config_snapshot.yaml"):
        assert (run_dir / name).exists()


def test_cli_run_missing_file(tmp_path):
    result = runner.invoke(app, ["run", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1


def test_cli_run_invalid_job(tmp_path):
    job_file = tmp_path / "job.yaml"
    job_file.write_text("name: broken\nmodel: {module: models.jaynes_cummings}\n")
    result = runner.invoke(app, ["run", str(job_file)])
    assert result.exit_code == 1


def test_cli_integrators():
    result = runner.invoke(app, ["integrators"])
    assert result.exit_code == 0
    assert "Available integrators:" in result.stdout
    assert "dopri5 (aliases: dp45, rk45)" in result.stdout
    assert "bs23 (aliases: rk23)" in result.stdout
    assert "dop853" in result.stdout
    assert "Total: 3 integrator(s)" in result.stdout


def test_log_file_errors(tmp_path):
    from qdyn.core.errors import configure_logging

    with pytest.raises(QDConfigError, match="501"):
        configure_logging(log_file=str(tmp_path / "missing" / "run.log"))
    configure_logging(verbose=True, log_file=str(tmp_path / "run.log"), as_json=True)
    get_logger().debug("hello")
    assert (tmp_path / "run.log").exists()
