"""JobController — one repository ingest run.

State machine::

    queued → running → completed
                     → failed
                     → canceled   (cancel_requested observed at a checkpoint)

Cancellation is polled from the catalog before every tree entry and before
every file. Rows committed before a cancellation or failure stay in the
catalog; the next run purges them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

import structlog

from repoingest.config import INGEST_TASK_TYPE
from repoingest.db.catalog import utcnow
from repoingest.db.models import Chunk, JobStatus, Source
from repoingest.github.client import TreeEntry
from repoingest.github.urls import RepoRef, parse_repo_url
from repoingest.ingest.decode import decode_blob, is_likely_binary, to_text
from repoingest.storage.artifacts import build_object_key
from repoingest.worker.context import RunContext

log = structlog.get_logger(__name__)

CANCELED_MESSAGE = "Canceled by request"
NO_ELIGIBLE_FILES_MESSAGE = "No eligible files found to ingest."
DEFAULT_REF = "main"


class NoEligibleFilesError(RuntimeError):
    """The repository tree has no file that passes selection."""

    def __init__(self) -> None:
        super().__init__(NO_ELIGIBLE_FILES_MESSAGE)


class _Canceled(Exception):
    """Raised inside execute() when a checkpoint observes a cancel request."""


@dataclass
class IngestTask:
    """One queued ingest request. Wire format lives in worker.consumer."""

    repo: str
    job_id: int | None = None
    project_id: int | None = None
    tenant_id: str | None = None
    task_type: str = INGEST_TASK_TYPE
    attempts: int = 0


@dataclass
class IngestOutcome:
    status: JobStatus
    owner: str = ""
    repo: str = ""
    ref: str = ""
    total_files: int = 0
    total_bytes: int = 0
    files_processed: int = 0
    chunks_stored: int = 0

    @property
    def canceled(self) -> bool:
        return self.status is JobStatus.CANCELED


@dataclass
class _Progress:
    total_files: int = 0
    total_bytes: int = 0
    files_processed: int = 0
    chunks_stored: int = 0


class JobController:
    """Drive a single ingest run against a RunContext.

    The consumer calls ``begin``, then ``execute``, then ``complete`` or
    ``fail``. Only ``execute`` touches the code host.
    """

    def __init__(self, ctx: RunContext) -> None:
        self._ctx = ctx

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin(self, job_id: int | None) -> bool:
        """Move the job to ``running``. Returns False if it was already canceled."""
        if self._cancel_if_requested(job_id):
            return False
        self._ctx.catalog.update_job(
            job_id,
            status=JobStatus.RUNNING,
            started_at=utcnow(),
            last_message="Starting ingest",
        )
        return True

    def complete(self, job_id: int | None, outcome: IngestOutcome) -> None:
        if outcome.canceled:
            return
        self._ctx.catalog.update_job(
            job_id,
            status=JobStatus.COMPLETED,
            finished_at=utcnow(),
            last_message="Ingest completed",
        )

    def fail(self, job_id: int | None, exc: BaseException) -> None:
        self._ctx.catalog.update_job(
            job_id,
            status=JobStatus.FAILED,
            error=str(exc) or "Ingest failed",
            finished_at=utcnow(),
            last_message="Ingest failed",
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def execute(self, task: IngestTask) -> IngestOutcome:
        """Purge the repo's prior ingest and ingest its default branch.

        Raises:
            InvalidRepoUrlError: Malformed repo URL.
            MissingEmbeddingKeyError: No embedding provider key.
            NoEligibleFilesError: Nothing in the tree passes selection.
            GitHubApiError: Code host failure (RateLimitError when exhausted).
        """
        ref = parse_repo_url(task.repo)
        self._ctx.embedder.check_credentials()
        progress = _Progress()
        bound = log.bind(owner=ref.owner, repo=ref.repo, job_id=task.job_id)
        bound.info("ingest_started")

        try:
            branch = await self._run(task, ref, progress, bound)
        except _Canceled:
            self._flush(task.job_id, progress)
            self._mark_canceled(task.job_id)
            bound.info("ingest_canceled", files_processed=progress.files_processed)
            return self._outcome(JobStatus.CANCELED, ref, "", progress)
        except Exception:
            self._flush(task.job_id, progress)
            raise

        bound.info(
            "ingest_finished",
            files_processed=progress.files_processed,
            chunks_stored=progress.chunks_stored,
        )
        return self._outcome(JobStatus.COMPLETED, ref, branch, progress)

    async def _run(
        self,
        task: IngestTask,
        ref: RepoRef,
        progress: _Progress,
        bound: structlog.typing.FilteringBoundLogger,
    ) -> str:
        ctx = self._ctx
        cfg = ctx.config.ingest
        job_id = task.job_id

        await ctx.artifacts.ensure_bucket(ctx.bucket)
        meta = await ctx.client.get_repo_metadata(ref.owner, ref.repo)
        branch = meta.get("default_branch") or DEFAULT_REF
        tree = await ctx.client.get_tree(ref.owner, ref.repo, branch)

        purged = ctx.catalog.purge_sources(
            project_id=task.project_id, owner=ref.owner, repo=ref.repo
        )
        if purged:
            bound.info("prior_sources_purged", count=purged)

        selected = self._select(job_id, tree, progress)
        if not selected:
            raise NoEligibleFilesError()

        ctx.catalog.update_job(
            job_id,
            total_files=progress.total_files,
            total_bytes=progress.total_bytes,
            files_processed=0,
            chunks_stored=0,
            last_message=f"Selected {progress.total_files} files",
        )
        bound.info("files_selected", count=progress.total_files, bytes=progress.total_bytes)

        for entry in selected:
            self._checkpoint(job_id)
            stored = await self._ingest_file(task, ref, branch, entry)
            if stored is None:
                continue
            progress.files_processed += 1
            progress.chunks_stored += stored
            if progress.files_processed % cfg.progress_interval == 0:
                self._flush(
                    job_id,
                    progress,
                    f"Processed {progress.files_processed}/{progress.total_files} files",
                )
                bound.info(
                    "ingest_progress",
                    files_processed=progress.files_processed,
                    total_files=progress.total_files,
                    chunks_stored=progress.chunks_stored,
                )

        self._flush(job_id, progress, f"Completed {progress.files_processed} files")
        return branch

    def _select(
        self, job_id: int | None, tree: list[TreeEntry], progress: _Progress
    ) -> list[TreeEntry]:
        """Walk *tree* in listing order, applying selection and the run caps."""
        cfg = self._ctx.config.ingest
        selected: list[TreeEntry] = []
        total_bytes = 0
        for entry in tree:
            self._checkpoint(job_id)
            if entry.type != "blob" or not self._ctx.selector(entry.path, entry.size):
                continue
            if entry.size is not None:
                if total_bytes + entry.size > cfg.max_total_bytes:
                    break
                total_bytes += entry.size
            selected.append(entry)
            if len(selected) >= cfg.max_files:
                break
        progress.total_files = len(selected)
        progress.total_bytes = total_bytes
        return selected

    async def _ingest_file(
        self, task: IngestTask, ref: RepoRef, branch: str, entry: TreeEntry
    ) -> int | None:
        """Store one file. Returns the chunk count, or None if the file was skipped."""
        ctx = self._ctx
        blob = await ctx.client.get_blob(ref.owner, ref.repo, entry.sha)
        data = decode_blob(blob)
        if is_likely_binary(data):
            return None
        text = to_text(data)
        if not text.strip():
            return None

        pieces = ctx.chunker.chunk(text, limit=ctx.config.ingest.max_chunks_per_file)
        if not pieces:
            return None
        embeddings = await ctx.embedder.embed(pieces)

        key = build_object_key(
            task.tenant_id,
            ref.owner,
            ref.repo,
            branch,
            entry.path,
            default_tenant=ctx.config.storage.default_tenant_id,
        )
        await ctx.artifacts.put(ctx.bucket, key, text)

        source_id = ctx.catalog.insert_source(
            Source(
                project_id=task.project_id,
                repo_owner=ref.owner,
                repo_name=ref.repo,
                ref_type="branch",
                ref=branch,
                path=entry.path,
                commit_sha=entry.sha or None,
                url=f"https://github.com/{ref.owner}/{ref.repo}/blob/{branch}/{entry.path}",
            )
        )
        chunks = [
            Chunk(
                source_id=source_id,
                chunk_index=i,
                content=piece,
                embedding=vector,
                metadata=json.dumps(
                    {
                        "repo": ref.repo,
                        "owner": ref.owner,
                        "ref": branch,
                        "path": entry.path,
                        "chunkIndex": i,
                    }
                ),
            )
            for i, (piece, vector) in enumerate(zip(pieces, embeddings))
        ]
        return ctx.catalog.insert_chunks(chunks, ctx.vec_table)

    # ------------------------------------------------------------------
    # Job record helpers
    # ------------------------------------------------------------------

    def _cancel_observed(self, job_id: int | None) -> bool:
        status = self._ctx.catalog.read_job_status(job_id)
        return status in (JobStatus.CANCEL_REQUESTED.value, JobStatus.CANCELED.value)

    def _checkpoint(self, job_id: int | None) -> None:
        if self._cancel_observed(job_id):
            raise _Canceled()

    def _cancel_if_requested(self, job_id: int | None) -> bool:
        if not self._cancel_observed(job_id):
            return False
        self._mark_canceled(job_id)
        return True

    def _mark_canceled(self, job_id: int | None) -> None:
        self._ctx.catalog.update_job(
            job_id,
            status=JobStatus.CANCELED,
            finished_at=utcnow(),
            last_message=CANCELED_MESSAGE,
        )

    def _flush(self, job_id: int | None, progress: _Progress, message: str | None = None) -> None:
        fields: dict[str, object] = {
            "files_processed": progress.files_processed,
            "chunks_stored": progress.chunks_stored,
        }
        if message:
            fields["last_message"] = message
        self._ctx.catalog.update_job(job_id, **fields)

    @staticmethod
    def _outcome(status: JobStatus, ref: RepoRef, branch: str, progress: _Progress) -> IngestOutcome:
        return IngestOutcome(
            status=status,
            owner=ref.owner,
            repo=ref.repo,
            ref=branch,
            total_files=progress.total_files,
            total_bytes=progress.total_bytes,
            files_processed=progress.files_processed,
            chunks_stored=progress.chunks_stored,
        )
