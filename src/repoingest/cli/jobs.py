"""repoingest enqueue / cancel — submit and cancel ingest jobs.

Usage:
  repoingest enqueue https://github.com/owner/repo --project-id 3 --tenant-id acme
  repoingest cancel 12
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from redis.asyncio import Redis
from redis.exceptions import RedisError

from repoingest.cli.common import console, load_config_or_exit, open_db, resolve_db
from repoingest.cli.errors import (
    err_invalid_repo_url,
    err_job_not_found,
    err_queue_unreachable,
    warn_job_finished,
)
from repoingest.config import QueueCfg
from repoingest.db.catalog import Catalog, utcnow
from repoingest.db.models import JobStatus
from repoingest.github.urls import InvalidRepoUrlError, parse_repo_url
from repoingest.worker.consumer import enqueue
from repoingest.worker.controller import IngestTask


def enqueue_cmd(
    repo_url: Annotated[str, typer.Argument(help="GitHub repository URL.")],
    project_id: Annotated[
        int | None,
        typer.Option("--project-id", help="Project that owns the ingested sources."),
    ] = None,
    tenant_id: Annotated[
        str | None,
        typer.Option("--tenant-id", help="Tenant namespace for stored artifacts."),
    ] = None,
    no_job: Annotated[
        bool,
        typer.Option("--no-job", help="Push the task without creating a job record."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the catalog database."),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to repoingest.yaml."),
    ] = None,
) -> None:
    """Queue a repository for ingestion."""
    try:
        ref = parse_repo_url(repo_url)
    except InvalidRepoUrlError:
        console.print(err_invalid_repo_url(repo_url))
        raise typer.Exit(1) from None

    cfg = load_config_or_exit(config)
    task = IngestTask(
        repo=repo_url,
        project_id=project_id,
        tenant_id=tenant_id,
        task_type=cfg.queue.task_type,
    )

    catalog: Catalog | None = None
    conn = None
    if not no_job:
        conn = open_db(resolve_db(db, cfg), must_exist=False)
        catalog = Catalog(conn)
        task.job_id = catalog.create_job(repo_url, project_id=project_id, tenant_id=tenant_id)

    try:
        try:
            asyncio.run(_push(cfg.queue, task))
        except (RedisError, OSError) as exc:
            if catalog is not None:
                catalog.update_job(
                    task.job_id,
                    status=JobStatus.FAILED,
                    error=f"Could not enqueue: {exc}",
                    finished_at=utcnow(),
                    last_message="Enqueue failed",
                )
            console.print(err_queue_unreachable(cfg.queue.redis_url, str(exc)))
            raise typer.Exit(1) from None
    finally:
        if conn is not None:
            conn.close()

    if task.job_id is not None:
        console.print(f"[green]✓[/] Queued [bold]{ref.slug}[/] as job [bold]{task.job_id}[/]")
    else:
        console.print(f"[green]✓[/] Queued [bold]{ref.slug}[/] (no job record)")


async def _push(queue: QueueCfg, task: IngestTask) -> None:
    redis = Redis.from_url(queue.redis_url, decode_responses=True)
    try:
        await enqueue(redis, queue.name, task)
    finally:
        await redis.aclose()


def cancel_cmd(
    job_id: Annotated[int, typer.Argument(help="Ingest job id.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the catalog database."),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to repoingest.yaml."),
    ] = None,
) -> None:
    """Ask a queued or running job to stop at its next checkpoint."""
    cfg = load_config_or_exit(config)
    conn = open_db(resolve_db(db, cfg))
    try:
        catalog = Catalog(conn)
        if catalog.request_cancel(job_id):
            console.print(f"[green]✓[/] Cancel requested for job [bold]{job_id}[/]")
            return

        job = catalog.get_job(job_id)
        if job is None:
            console.print(err_job_not_found(job_id))
            raise typer.Exit(1)
        if JobStatus(job.status).is_terminal:
            console.print(warn_job_finished(job_id, job.status))
        else:
            console.print(f"[yellow]Cancel already requested for job {job_id}.[/]")
    finally:
        conn.close()
