# SPDX-License-Identifier: Apache-2.0
"""importpipe CLI package with modular command structure."""

from __future__ import annotations

import logging

import typer

app = typer.Typer(
    add_completion=False,
    help="importpipe commands for replaying exported datasets into the entity store",
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


from .imports import import_app  # noqa: E402
from .jobs import jobs_app  # noqa: E402
from .utils import migrate  # noqa: E402

app.add_typer(import_app, name="import")
app.add_typer(jobs_app, name="jobs")
app.command()(migrate)


if __name__ == "__main__":
    app()
