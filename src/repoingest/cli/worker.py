"""repoingest worker — consume ingest tasks from the queue."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Annotated

import structlog
import typer
from redis.asyncio import Redis

from repoingest.cli.common import console, load_config_or_exit
from repoingest.cli.errors import err_no_api_key
from repoingest.config import IngestorConfig
from repoingest.ingest.embedder import MissingEmbeddingKeyError
from repoingest.log import configure_logging
from repoingest.worker.consumer import QueueConsumer
from repoingest.worker.context import open_run_context

log = structlog.get_logger(__name__)


def worker_cmd(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to repoingest.yaml."),
    ] = None,
    once: Annotated[
        bool,
        typer.Option("--once", help="Handle at most one task, then exit."),
    ] = False,
) -> None:
    """Run the ingest worker until SIGINT/SIGTERM."""
    cfg = load_config_or_exit(config)
    configure_logging(cfg.logging.level, cfg.logging.json)
    asyncio.run(run_worker(cfg, once=once))


async def run_worker(cfg: IngestorConfig, *, once: bool = False) -> None:
    redis = Redis.from_url(cfg.queue.redis_url, decode_responses=True)
    try:
        async with open_run_context(cfg) as ctx:
            try:
                ctx.embedder.check_credentials()
            except MissingEmbeddingKeyError:
                console.print(err_no_api_key(ctx.embedder.required_key_env() or "API key"))

            log.info(
                "worker_config",
                catalog=cfg.catalog.path,
                model=cfg.embedding.model,
                github_auth=ctx.broker.mode,
            )
            consumer = QueueConsumer(ctx, redis, cfg.queue)
            if once:
                await consumer.recover()
                await consumer.poll_once()
                return

            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, stop.set)
                except NotImplementedError:
                    # Windows event loops have no signal handler support.
                    pass
            await consumer.run(stop)
    finally:
        await redis.aclose()
