"""repoingest CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from repoingest.cli.jobs import cancel_cmd, enqueue_cmd
from repoingest.cli.status import status_cmd
from repoingest.cli.worker import worker_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("repoingest")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"repoingest {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="repoingest",
    help=(
        "repoingest — GitHub repository ingestion worker.\n\n"
        "  repoingest worker   Consume ingest tasks from the queue.\n"
        "  repoingest enqueue  Queue a repository for ingestion."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """repoingest — GitHub repository ingestion worker."""


app.command("worker")(worker_cmd)
app.command("enqueue")(enqueue_cmd)
app.command("status")(status_cmd)
app.command("cancel")(cancel_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed repoingest version."""
    typer.echo(f"repoingest {_installed_version()}")


if __name__ == "__main__":
    app()
