# SPDX-License-Identifier: Apache-2.0
"""Shared helpers and utility commands for the importpipe CLI."""

from __future__ import annotations

from pathlib import Path

import typer

from importpipe.config import ConfigVersionError, ImportSettings, load_settings


def load_settings_or_exit(config: Path) -> ImportSettings:
    """Load settings, turning configuration problems into a clean exit."""
    try:
        return load_settings(config)
    except (ConfigVersionError, FileNotFoundError, ValueError) as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(1) from None


def echo_status(status: dict) -> None:
    """Print an import job status as returned by ``ImportJobService.get_status``."""
    typer.echo(f"\n📊 Import {status['import_id']}")
    typer.echo("=" * 80)
    typer.echo(f"State:      {status['state']}")
    if status["termination_reason"]:
        typer.echo(f"Reason:     {status['termination_reason']}")
    if status["error_message"]:
        typer.echo(f"Message:    {status['error_message']}")
    typer.echo(f"Created:    {status['created_at']}")
    if status["started_at"]:
        typer.echo(f"Started:    {status['started_at']}")

    file_imports = status.get("file_imports", [])
    if not file_imports:
        typer.echo("Files:      none")
        return

    typer.echo(f"\nFiles ({len(file_imports)})")
    typer.echo("-" * 80)
    typer.echo(f"{'State':<10} {'Errors':<7} {'Checkpoint':<38} File")
    for file_import in file_imports:
        typer.echo(
            f"{file_import['state']:<10} {file_import['write_error_count']:<7} "
            f"{file_import['last_checkpoint_id'] or '-':<38} {file_import['file_name']}"
        )
        if file_import["error_message"]:
            typer.echo(f"{'':<10} last error: {file_import['error_message']}")
    typer.echo("=" * 80)


def migrate(
    config: Path = typer.Option(..., "--config", "-c", help="Settings YAML file"),
):
    """Apply pending database migrations."""
    from importpipe.migrations import apply_pending

    settings = load_settings_or_exit(config)
    applied = apply_pending(settings.database)
    if applied:
        typer.echo(f"✅ Applied migrations: {', '.join(applied)}")
    else:
        typer.echo("✅ Database is up to date")
