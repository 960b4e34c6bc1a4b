# SPDX-License-Identifier: Apache-2.0
"""Import job inspection commands."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from importpipe.domain.entities import EntityId
from importpipe.imports.domain.entities import JobState
from importpipe.imports.domain.repositories import ImportJobNotFoundError, ImportRepositoryError

from .utils import echo_status, load_settings_or_exit

jobs_app = typer.Typer(name="jobs", help="Import job inspection commands", add_completion=False)


def _open_services(config: Path):
    from importpipe.bootstrap import bootstrap

    return bootstrap(load_settings_or_exit(config))


@jobs_app.command(name="list")
def list_jobs(
    config: Path = typer.Option(..., "--config", "-c", help="Settings YAML file"),
    state: Optional[str] = typer.Option(
        None,
        "--state",
        "-s",
        help="Filter by job state (CREATED, SCHEDULED, STARTED, FINISHED, FAILED)",
    ),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show"),
):
    """List import jobs, most recent first.

    Examples:
        importpipe jobs list -c imports.yaml
        importpipe jobs list -c imports.yaml --state FAILED
    """
    job_state = None
    if state:
        try:
            job_state = JobState(state.upper())
        except ValueError:
            typer.echo(f"❌ Unknown state: {state}", err=True)
            raise typer.Exit(1) from None

    services = _open_services(config)
    try:
        jobs = services.imports.list_jobs(job_state, limit)
    except ImportRepositoryError as e:
        typer.echo(f"❌ Database error: {e}", err=True)
        raise typer.Exit(1) from None
    finally:
        services.close()

    if not jobs:
        typer.echo("📭 No jobs found matching the criteria")
        return

    typer.echo(f"\n📊 Import jobs ({len(jobs)} found)")
    typer.echo("=" * 100)
    typer.echo(f"{'ID':<38} {'State':<10} {'Files':<6} {'Created':<20} Message")
    typer.echo("-" * 100)
    for job in jobs:
        typer.echo(
            f"{str(job.id):<38} {job.state.value:<10} {len(job.manifest):<6} "
            f"{job.created_at.strftime('%m-%d %H:%M:%S'):<20} {job.error_message}"
        )
    typer.echo("=" * 100)


@jobs_app.command()
def status(
    job_id: str = typer.Argument(..., help="Import job id"),
    config: Path = typer.Option(..., "--config", "-c", help="Settings YAML file"),
):
    """Show an import job and its file imports."""
    try:
        import_id = EntityId.from_string(job_id)
    except ValueError:
        typer.echo(f"❌ Not a job id: {job_id}", err=True)
        raise typer.Exit(1) from None

    services = _open_services(config)
    try:
        echo_status(services.imports.get_status(import_id))
    except ImportJobNotFoundError:
        typer.echo(f"❌ Import job {job_id} not found", err=True)
        raise typer.Exit(1) from None
    finally:
        services.close()
