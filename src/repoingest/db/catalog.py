"""Catalog — data access for sources, chunks, embeddings and ingest jobs.

Purge order is embeddings → chunks → sources, each step committed. The
source id set is always re-read from the catalog, so a purge interrupted
between steps is finished by the next one and no chunk ever references a
missing source.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone

from repoingest.db.models import Chunk, IngestJob, JobStatus, Source
from repoingest.db.vectors import list_vec_tables

# Columns the pipeline may write through update_job(); updated_at is always stamped.
_JOB_FIELDS: frozenset[str] = frozenset(
    [
        "status",
        "total_files",
        "total_bytes",
        "files_processed",
        "chunks_stored",
        "last_message",
        "error",
        "started_at",
        "finished_at",
    ]
)

_JOB_COLUMNS = (
    "id, project_id, tenant_id, project_repo, status, total_files, total_bytes, "
    "files_processed, chunks_stored, last_message, error, created_at, started_at, "
    "finished_at, updated_at"
)


def utcnow() -> str:
    """Current UTC time in the catalog's timestamp format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class Catalog:
    """Data access layer for the ingestion catalog.

    Wraps an open sqlite3.Connection (sqlite-vec loaded, schema initialised
    via repoingest.db.schema.initialize). The connection is owned by the
    caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def insert_source(self, source: Source) -> int:
        """Insert a source row and return its id (also set on *source*)."""
        cur = self._conn.execute(
            """
            INSERT INTO sources (project_id, repo_owner, repo_name, ref_type, ref, path, commit_sha, url)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                source.project_id,
                source.repo_owner,
                source.repo_name,
                source.ref_type,
                source.ref,
                source.path,
                source.commit_sha,
                source.url,
            ),
        )
        self._conn.commit()
        source.id = cur.lastrowid
        return source.id

    def list_sources(self, owner: str, repo: str) -> list[Source]:
        """Return all sources of *owner*/*repo* in insertion order."""
        rows = self._conn.execute(
            """
            SELECT id, project_id, repo_owner, repo_name, ref_type, ref, path, commit_sha, url, created_at
            FROM sources WHERE repo_owner = ? AND repo_name = ? ORDER BY id
            """,
            (owner, repo),
        ).fetchall()
        return [_row_to_source(r) for r in rows]

    def count_sources(self, owner: str | None = None, repo: str | None = None) -> int:
        """Count sources, optionally restricted to one repository."""
        if owner is None or repo is None:
            return self._conn.execute("SELECT COUNT(*) FROM sources").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM sources WHERE repo_owner = ? AND repo_name = ?",
            (owner, repo),
        ).fetchone()[0]

    def purge_sources(
        self,
        project_id: int | None = None,
        owner: str | None = None,
        repo: str | None = None,
    ) -> int:
        """Delete every source (and its chunks + embeddings) of a project or repo.

        ``project_id`` wins when given; otherwise both *owner* and *repo* are
        required. Without a usable predicate this is a no-op.

        Returns:
            Number of sources removed.
        """
        if project_id is not None:
            rows = self._conn.execute(
                "SELECT id FROM sources WHERE project_id = ?", (project_id,)
            ).fetchall()
        elif owner and repo:
            rows = self._conn.execute(
                "SELECT id FROM sources WHERE repo_owner = ? AND repo_name = ?",
                (owner, repo),
            ).fetchall()
        else:
            return 0

        source_ids = [r[0] for r in rows]
        if not source_ids:
            return 0

        placeholders = ",".join("?" * len(source_ids))
        chunk_ids = [
            r[0]
            for r in self._conn.execute(
                f"SELECT id FROM chunks WHERE source_id IN ({placeholders})",  # noqa: S608
                source_ids,
            ).fetchall()
        ]

        # ---- Embeddings, then chunks, then sources ----
        if chunk_ids:
            chunk_placeholders = ",".join("?" * len(chunk_ids))
            for table in list_vec_tables(self._conn):
                self._conn.execute(
                    f"DELETE FROM [{table}] WHERE rowid IN ({chunk_placeholders})",  # noqa: S608
                    chunk_ids,
                )
            self._conn.commit()

        self._conn.execute(
            f"DELETE FROM chunks WHERE source_id IN ({placeholders})",  # noqa: S608
            source_ids,
        )
        self._conn.commit()

        self._conn.execute(
            f"DELETE FROM sources WHERE id IN ({placeholders})",  # noqa: S608
            source_ids,
        )
        self._conn.commit()
        return len(source_ids)

    # ------------------------------------------------------------------
    # Chunks + embeddings
    # ------------------------------------------------------------------

    def insert_chunks(self, chunks: list[Chunk], vec_table: str) -> int:
        """Insert *chunks* and their embeddings in one transaction.

        Each chunk's ``id`` is set after insert and used as the vec rowid.

        Returns:
            Number of chunks inserted.
        """
        if not chunks:
            return 0
        with self._conn:
            for chunk in chunks:
                cur = self._conn.execute(
                    """
                    INSERT INTO chunks (source_id, chunk_index, content, metadata)
                    VALUES (?, ?, ?, ?)
                    """,
                    (chunk.source_id, chunk.chunk_index, chunk.content, chunk.metadata),
                )
                chunk.id = cur.lastrowid
                self._conn.execute(
                    f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
                    (chunk.id, json.dumps(chunk.embedding)),
                )
        return len(chunks)

    def list_chunks(self, source_id: int) -> list[Chunk]:
        """Return the chunks of *source_id* ordered by chunk_index (no embeddings)."""
        rows = self._conn.execute(
            """
            SELECT id, source_id, chunk_index, content, metadata, created_at
            FROM chunks WHERE source_id = ? ORDER BY chunk_index
            """,
            (source_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def count_embeddings(self, vec_table: str) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0]

    # ------------------------------------------------------------------
    # Ingest jobs
    # ------------------------------------------------------------------

    def create_job(
        self,
        project_repo: str,
        project_id: int | None = None,
        tenant_id: str | None = None,
    ) -> int:
        """Insert a new job in ``queued`` state and return its id."""
        cur = self._conn.execute(
            """
            INSERT INTO ingest_jobs (project_id, tenant_id, project_repo, status, last_message)
            VALUES (?, ?, ?, ?, ?)
            """,
            (project_id, tenant_id, project_repo, JobStatus.QUEUED.value, "Queued"),
        )
        self._conn.commit()
        return cur.lastrowid

    def get_job(self, job_id: int) -> IngestJob | None:
        row = self._conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM ingest_jobs WHERE id = ?", (job_id,)
        ).fetchone()
        return _row_to_job(row) if row else None

    def list_jobs(self, limit: int = 20) -> list[IngestJob]:
        """Return the most recent jobs, newest first."""
        rows = self._conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM ingest_jobs ORDER BY id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [_row_to_job(r) for r in rows]

    def update_job(self, job_id: int | None, **fields: object) -> None:
        """Write *fields* to the job row and stamp ``updated_at``.

        A ``None`` job id is a no-op (tasks enqueued without a job record).

        Raises:
            ValueError: If a field is not a writable job column.
        """
        if job_id is None:
            return
        unknown = set(fields) - _JOB_FIELDS
        if unknown:
            raise ValueError(f"Unknown ingest_jobs field(s): {', '.join(sorted(unknown))}")

        values = {
            k: (v.value if isinstance(v, JobStatus) else v) for k, v in fields.items()
        }
        values["updated_at"] = utcnow()
        assignments = ", ".join(f"{k} = ?" for k in values)
        self._conn.execute(
            f"UPDATE ingest_jobs SET {assignments} WHERE id = ?",  # noqa: S608
            (*values.values(), job_id),
        )
        self._conn.commit()

    def read_job_status(self, job_id: int | None) -> str | None:
        """Return the persisted status of *job_id*, or None if unknown."""
        if job_id is None:
            return None
        row = self._conn.execute(
            "SELECT status FROM ingest_jobs WHERE id = ?", (job_id,)
        ).fetchone()
        return row["status"] if row else None

    def request_cancel(self, job_id: int) -> bool:
        """Flag a queued or running job as ``cancel_requested``.

        Returns:
            True if the job was flagged, False if it is unknown or already
            finished / already flagged.
        """
        cur = self._conn.execute(
            """
            UPDATE ingest_jobs SET status = ?, last_message = ?, updated_at = ?
            WHERE id = ? AND status IN (?, ?)
            """,
            (
                JobStatus.CANCEL_REQUESTED.value,
                "Cancel requested",
                utcnow(),
                job_id,
                JobStatus.QUEUED.value,
                JobStatus.RUNNING.value,
            ),
        )
        self._conn.commit()
        return cur.rowcount > 0


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        project_id=row["project_id"],
        repo_owner=row["repo_owner"],
        repo_name=row["repo_name"],
        ref_type=row["ref_type"],
        ref=row["ref"],
        path=row["path"],
        commit_sha=row["commit_sha"],
        url=row["url"],
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        source_id=row["source_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )


def _row_to_job(row: sqlite3.Row) -> IngestJob:
    return IngestJob(
        id=row["id"],
        project_id=row["project_id"],
        tenant_id=row["tenant_id"],
        project_repo=row["project_repo"],
        status=row["status"],
        total_files=row["total_files"],
        total_bytes=row["total_bytes"],
        files_processed=row["files_processed"],
        chunks_stored=row["chunks_stored"],
        last_message=row["last_message"],
        error=row["error"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        updated_at=row["updated_at"],
    )
