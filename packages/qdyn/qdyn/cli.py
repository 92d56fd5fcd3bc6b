"""qdyn: CLI Entry Point
---------------------
Typer application behind the ``qdyn`` console script.

Commands
--------
``run`` : Execute a YAML job file and write a run directory
``integrators`` : List the registered integrators
"""

import sys
from pathlib import Path

import typer

from .core import registry
from .core.config_loader import load_job_config
from .core.errors import QDError, configure_logging, get_logger
from .runner import run_job

app = typer.Typer(help="qdyn: quantum dynamics simulations")


@app.callback()
def main():
    """qdyn command line interface."""


def _make_progress_callback():
    def _on_progress(done: int, total: int) -> None:
        typer.echo(f"[{done}/{total}] trajectories", nl=False)
        typer.echo("\r", nl=False)

    return _on_progress


@app.command()
def run(
    job_file: Path = typer.Argument(..., help="Path to a YAML job file"),
    output_dir: str | None = typer.Option(
        None, "--output-dir", "-o", help="Root directory for run directories"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, help="Write logs to file path"),
    log_json: bool = typer.Option(False, help="Log in JSON format"),
    suppress_warnings: bool = typer.Option(False, help="Suppress warnings output"),
):
    """Run the simulation described by JOB_FILE.

    The model module named in the job file is imported relative to the job
    file's directory and its parent, so a ``models/`` package next to
    ``configs/`` is found without installation.

    Examples
    --------
        qdyn run configs/jobs/jaynes_cummings.yaml
        qdyn run --verbose -o /tmp/runs my_job.yaml

    """
    configure_logging(
        verbose=verbose,
        log_file=log_file,
        as_json=log_json,
        suppress_warnings=suppress_warnings,
    )
    log = get_logger()

    try:
        job = load_job_config(job_file)
        cfg_path = job_file.resolve()
        for cand in (cfg_path.parent, cfg_path.parent.parent, cfg_path.parent.parent.parent):
            pstr = str(cand)
            if cand.exists() and pstr not in sys.path:
                sys.path.insert(0, pstr)
        record = run_job(job, output_dir=output_dir, progress_cb=_make_progress_callback())
    except QDError as e:
        log.error(str(e))
        raise typer.Exit(code=1) from e

    typer.echo(f"\nRun directory: {record.run_dir}")


@app.command()
def integrators():
    """List the registered integrators and their aliases."""
    entries = registry.list_registered("integrator")["integrator"]
    if not entries:
        typer.echo("No integrators registered.")
        return

    by_builder: dict[type, list[str]] = {}
    for key, builder in entries.items():
        by_builder.setdefault(builder, []).append(key)

    typer.echo("Available integrators:")
    for builder, keys in sorted(by_builder.items(), key=lambda kv: kv[0].name):
        aliases = [k for k in sorted(keys) if k != builder.name]
        alias_str = f" (aliases: {', '.join(aliases)})" if aliases else ""
        typer.echo(f"  - {builder.name}{alias_str}: {builder.description}")
    typer.echo(f"\nTotal: {len(by_builder)} integrator(s)")
