"""Domain models for the catalog."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"
    CANCEL_REQUESTED = "cancel_requested"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED)

    @property
    def is_cancel(self) -> bool:
        """True for the states that stop a run at its next checkpoint."""
        return self in (JobStatus.CANCELED, JobStatus.CANCEL_REQUESTED)


@dataclass
class Source:
    repo_owner: str
    repo_name: str
    ref: str
    path: str
    url: str
    project_id: int | None = None
    ref_type: str = "branch"
    commit_sha: str | None = None
    id: int | None = None  # set after insert
    created_at: str | None = None


@dataclass
class Chunk:
    source_id: int
    chunk_index: int
    content: str
    embedding: list[float] = field(default_factory=list)
    metadata: str = field(default_factory=lambda: "{}")
    id: int | None = None  # set after insert; also the vec-table rowid
    created_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)


@dataclass
class IngestJob:
    id: int
    project_repo: str
    status: str
    project_id: int | None = None
    tenant_id: str | None = None
    total_files: int | None = None
    total_bytes: int | None = None
    files_processed: int = 0
    chunks_stored: int = 0
    last_message: str | None = None
    error: str | None = None
    created_at: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    updated_at: str | None = None
