"""Catalog schema migrations.

Versions only move forward; a database is brought up to date by applying
every migration newer than its recorded version, in order. Embedding tables
are created per model by ``db.vectors.ensure_vec_table`` instead.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id  INTEGER,
    repo_owner  TEXT,
    repo_name   TEXT,
    ref_type    TEXT,
    ref         TEXT,
    path        TEXT,
    commit_sha  TEXT,
    url         TEXT,
    created_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_sources_project ON sources(project_id);
CREATE INDEX IF NOT EXISTS idx_sources_repo ON sources(repo_owner, repo_name);

CREATE TABLE IF NOT EXISTS chunks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id   INTEGER NOT NULL REFERENCES sources(id),
    chunk_index INTEGER NOT NULL,
    content     TEXT NOT NULL,
    metadata    TEXT NOT NULL DEFAULT '{}',
    created_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_chunks_source ON chunks(source_id);

CREATE TABLE IF NOT EXISTS ingest_jobs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id      INTEGER,
    tenant_id       TEXT,
    project_repo    TEXT NOT NULL,
    status          TEXT NOT NULL,
    total_files     INTEGER,
    total_bytes     INTEGER,
    files_processed INTEGER NOT NULL DEFAULT 0,
    chunks_stored   INTEGER NOT NULL DEFAULT 0,
    last_message    TEXT,
    error           TEXT,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    started_at      DATETIME,
    finished_at     DATETIME,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

_V2_SQL = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_chunks_source_index ON chunks(source_id, chunk_index);
CREATE INDEX IF NOT EXISTS idx_ingest_jobs_status ON ingest_jobs(status);
"""

# (version, sql), append-only.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def schema_version(conn: sqlite3.Connection) -> int:
    """Highest applied migration version, 0 for an empty catalog."""
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()
    return conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version").fetchone()[0]


def run_migrations(conn: sqlite3.Connection) -> list[int]:
    """Apply pending migrations and return the versions applied (may be empty)."""
    current = schema_version(conn)
    applied: list[int] = []
    for version, sql in MIGRATIONS:
        if version <= current:
            continue
        # executescript() commits any open transaction first.
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
        conn.commit()
        applied.append(version)
    return applied
