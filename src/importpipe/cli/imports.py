# SPDX-License-Identifier: Apache-2.0
"""Commands that start imports."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from importpipe.imports.domain.errors import ImportPipelineError
from importpipe.imports.domain.services import (
    APPLICATION_ID_KEY,
    COLLECTION_NAME_KEY,
    ORGANIZATION_ID_KEY,
)

from .utils import echo_status, load_settings_or_exit

import_app = typer.Typer(name="import", help="Bulk import commands", add_completion=False)


@import_app.command(name="run")
def run_import(
    config: Path = typer.Option(..., "--config", "-c", help="Settings YAML file"),
    org: str = typer.Option(..., "--org", help="Organization id"),
    app_id: Optional[str] = typer.Option(None, "--app", help="Application id"),
    collection: Optional[str] = typer.Option(
        None, "--collection", help="Collection name (requires --app)"
    ),
    wait: bool = typer.Option(
        True, "--wait/--no-wait", help="Wait for the import and print its outcome"
    ),
    timeout: float = typer.Option(3600.0, "--timeout", help="Seconds to wait for the import"),
):
    """Schedule an import of an organization, application or collection.

    Examples:
        importpipe import run -c imports.yaml --org acme-id
        importpipe import run -c imports.yaml --org acme-id --app app1-id
        importpipe import run -c imports.yaml --org acme-id --app app1-id --collection users
    """
    from importpipe.bootstrap import bootstrap

    settings = load_settings_or_exit(config)
    services = bootstrap(settings)

    request = {ORGANIZATION_ID_KEY: org}
    if app_id:
        request[APPLICATION_ID_KEY] = app_id
    if collection:
        request[COLLECTION_NAME_KEY] = collection

    try:
        import_id = services.imports.schedule(request)
        typer.echo(f"🚀 Scheduled import {import_id}")

        if not wait:
            return

        if not services.scheduler.wait_idle(timeout):
            typer.echo(f"⏱️  Import {import_id} still running after {timeout:.0f}s")
            raise typer.Exit(2)

        status = services.imports.get_status(import_id)
        echo_status(status)
        if status["state"] == "FAILED":
            raise typer.Exit(1)
    except ImportPipelineError as e:
        typer.echo(f"❌ Import failed: {e}", err=True)
        raise typer.Exit(1) from None
    finally:
        services.close()
