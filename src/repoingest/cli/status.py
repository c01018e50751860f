"""repoingest status command.

Without a job id: table of the most recent ingest jobs.
With a job id: detail panel for that job.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from repoingest.cli.common import console, load_config_or_exit, open_db, resolve_db
from repoingest.cli.errors import err_job_not_found
from repoingest.db.catalog import Catalog
from repoingest.db.models import IngestJob

_STATUS_STYLE: dict[str, str] = {
    "queued": "dim",
    "running": "cyan",
    "completed": "green",
    "failed": "red",
    "canceled": "yellow",
    "cancel_requested": "yellow",
}


def status_cmd(
    job_id: Annotated[
        int | None,
        typer.Argument(help="Show one job in detail."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Number of recent jobs to list."),
    ] = 20,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the catalog database."),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to repoingest.yaml."),
    ] = None,
) -> None:
    """Show ingest job status."""
    cfg = load_config_or_exit(config)
    conn = open_db(resolve_db(db, cfg))
    try:
        catalog = Catalog(conn)
        if job_id is None:
            _show_jobs_table(catalog.list_jobs(limit))
            return

        job = catalog.get_job(job_id)
        if job is None:
            console.print(err_job_not_found(job_id))
            raise typer.Exit(1)
        _show_job_panel(job, catalog)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _styled(status: str) -> str:
    style = _STATUS_STYLE.get(status, "")
    return f"[{style}]{status}[/]" if style else status


def _progress(job: IngestJob) -> str:
    if job.total_files is None:
        return "-"
    return f"{job.files_processed}/{job.total_files}"


def _show_jobs_table(jobs: list[IngestJob]) -> None:
    if not jobs:
        console.print(
            Panel(
                "[dim]No ingest jobs yet.[/]\n"
                "  Run:  repoingest enqueue <repo-url>",
                title="[bold]Ingest Jobs[/]",
                expand=False,
            )
        )
        return

    table = Table(title="Ingest Jobs", show_lines=False)
    table.add_column("ID", justify="right", style="bold")
    table.add_column("Repo")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Updated", style="dim")
    table.add_column("Message", overflow="fold")

    for job in jobs:
        table.add_row(
            str(job.id),
            job.project_repo,
            _styled(job.status),
            _progress(job),
            f"{job.chunks_stored:,}",
            (job.updated_at or "")[:16],
            job.error or job.last_message or "",
        )
    console.print(table)


def _show_job_panel(job: IngestJob, catalog: Catalog) -> None:
    lines = [
        f"Repo:      [bold]{job.project_repo}[/]",
        f"Status:    {_styled(job.status)}",
        f"Files:     {_progress(job)}"
        + (f"  ({job.total_bytes:,} bytes selected)" if job.total_bytes is not None else ""),
        f"Chunks:    {job.chunks_stored:,}",
    ]
    if job.project_id is not None:
        lines.append(f"Project:   {job.project_id}")
    if job.tenant_id:
        lines.append(f"Tenant:    {job.tenant_id}")
    if job.last_message:
        lines.append(f"Message:   {job.last_message}")
    if job.error:
        lines.append(f"Error:     [red]{job.error}[/]")
    lines.append(
        f"[dim]Created {job.created_at or '-'}  |  Started {job.started_at or '-'}  |  "
        f"Finished {job.finished_at or '-'}[/]"
    )
    lines.append(f"[dim]Catalog: {catalog.count_sources():,} sources, {catalog.count_chunks():,} chunks[/]")

    console.print(Panel("\n".join(lines), title=f"[bold]Ingest Job {job.id}[/]", expand=False))
