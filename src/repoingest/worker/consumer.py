"""QueueConsumer — reliable Redis-list consumer for ingest tasks.

Queue layout for a queue named ``ingest``::

    ingest                       pending tasks (LPUSH in, BLMOVE out from the right)
    ingest:processing:<worker>   tasks this worker has taken but not acknowledged
    ingest:failed                tasks that exhausted their attempts

A task stays in the processing list until it is handled, so a crashed
worker's in-flight task is returned to the queue the next time a worker
with the same id starts.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
from redis.asyncio import Redis

from repoingest.config import QueueCfg
from repoingest.db.models import JobStatus
from repoingest.worker.context import RunContext
from repoingest.worker.controller import IngestOutcome, IngestTask, JobController

log = structlog.get_logger(__name__)


class TaskDecodeError(ValueError):
    """A queue message is not a valid ingest task."""


# ---------------------------------------------------------------------------
# Wire codec
# ---------------------------------------------------------------------------


def encode_task(task: IngestTask) -> str:
    """Serialise *task* to the queue's JSON message format."""
    message: dict[str, Any] = {"taskType": task.task_type, "repo": task.repo}
    if task.job_id is not None:
        message["ingestJobId"] = task.job_id
    if task.project_id is not None:
        message["projectId"] = task.project_id
    if task.tenant_id is not None:
        message["tenantId"] = task.tenant_id
    message["attempts"] = task.attempts
    return json.dumps(message)


def decode_task(raw: str | bytes) -> IngestTask:
    """Parse a queue message.

    Raises:
        TaskDecodeError: If the message is not a JSON object with a ``repo``.
    """
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise TaskDecodeError(f"Queue message is not JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise TaskDecodeError("Queue message must be a JSON object")
    if not isinstance(message.get("repo"), str):
        raise TaskDecodeError("Queue message has no 'repo'")

    try:
        return IngestTask(
            repo=message["repo"],
            job_id=_opt_int(message.get("ingestJobId")),
            project_id=_opt_int(message.get("projectId")),
            tenant_id=str(message["tenantId"]) if message.get("tenantId") else None,
            task_type=str(message.get("taskType") or ""),
            attempts=int(message.get("attempts") or 0),
        )
    except (TypeError, ValueError) as exc:
        raise TaskDecodeError(f"Invalid queue message field: {exc}") from exc


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


async def enqueue(redis: Redis, queue_name: str, task: IngestTask) -> int:
    """Push *task* onto the queue. Returns the queue length."""
    return await redis.lpush(queue_name, encode_task(task))


# ---------------------------------------------------------------------------
# Consumer
# ---------------------------------------------------------------------------


class QueueConsumer:
    """Pull ingest tasks one at a time and drive a JobController.

    Args:
        ctx: Run context shared by every task of this worker.
        redis: Async Redis client.
        cfg: Queue section of the worker config.
        controller: Override for tests; built from *ctx* by default.
    """

    def __init__(
        self,
        ctx: RunContext,
        redis: Redis,
        cfg: QueueCfg,
        controller: JobController | None = None,
    ) -> None:
        self._redis = redis
        self._cfg = cfg
        self._controller = controller or JobController(ctx)

    @property
    def processing_key(self) -> str:
        return f"{self._cfg.name}:processing:{self._cfg.worker_id}"

    @property
    def failed_key(self) -> str:
        return f"{self._cfg.name}:failed"

    async def handle(self, task: IngestTask) -> IngestOutcome | None:
        """Run one task through the controller and record its terminal state.

        Returns None for tasks of another type. Failures are recorded on the
        job and re-raised.
        """
        if task.task_type != self._cfg.task_type:
            log.info("task_ignored", task_type=task.task_type)
            return None

        if task.job_id is not None and not self._controller.begin(task.job_id):
            log.info("task_canceled_before_start", job_id=task.job_id)
            return IngestOutcome(status=JobStatus.CANCELED)

        try:
            outcome = await self._controller.execute(task)
        except Exception as exc:
            self._controller.fail(task.job_id, exc)
            raise

        self._controller.complete(task.job_id, outcome)
        return outcome

    async def poll_once(self, timeout: float | None = None) -> bool:
        """Take and handle the next task. Returns False if the queue stayed empty."""
        wait = self._cfg.block_timeout if timeout is None else timeout
        raw = await self._redis.blmove(self._cfg.name, self.processing_key, wait, "RIGHT", "LEFT")
        if raw is None:
            return False

        try:
            task = decode_task(raw)
        except TaskDecodeError as exc:
            log.error("task_undecodable", error=str(exc))
            await self._redis.lpush(
                self.failed_key, json.dumps({"message": _as_text(raw), "error": str(exc)})
            )
            await self._redis.lrem(self.processing_key, 1, raw)
            return True

        try:
            await self.handle(task)
        except Exception as exc:
            log.exception(
                "task_failed", repo=task.repo, job_id=task.job_id, attempts=task.attempts + 1
            )
            await self._requeue_or_bury(task, exc)
        finally:
            await self._redis.lrem(self.processing_key, 1, raw)
        return True

    async def recover(self) -> int:
        """Return tasks left in this worker's processing list to the queue."""
        moved = 0
        while await self._redis.lmove(self.processing_key, self._cfg.name, "RIGHT", "RIGHT"):
            moved += 1
        if moved:
            log.warning("tasks_recovered", count=moved, worker_id=self._cfg.worker_id)
        return moved

    async def run(self, stop: asyncio.Event) -> None:
        """Consume until *stop* is set."""
        await self.recover()
        log.info("worker_started", queue=self._cfg.name, worker_id=self._cfg.worker_id)
        while not stop.is_set():
            await self.poll_once()
        log.info("worker_stopped", worker_id=self._cfg.worker_id)

    async def _requeue_or_bury(self, task: IngestTask, exc: Exception) -> None:
        task.attempts += 1
        if task.attempts < self._cfg.max_attempts:
            await self._redis.lpush(self._cfg.name, encode_task(task))
            log.info("task_requeued", job_id=task.job_id, attempts=task.attempts)
            return
        payload = json.loads(encode_task(task))
        payload["error"] = str(exc)
        await self._redis.lpush(self.failed_key, json.dumps(payload))


def _as_text(raw: str | bytes) -> str:
    return raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
