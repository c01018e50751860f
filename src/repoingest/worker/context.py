"""RunContext — the collaborators of one worker process, built once."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from repoingest.config import IngestorConfig
from repoingest.db.catalog import Catalog
from repoingest.db.connection import Database
from repoingest.db.schema import initialize
from repoingest.db.vectors import ensure_vec_table, model_to_slug
from repoingest.github.client import ContentClient
from repoingest.github.credentials import CredentialBroker
from repoingest.ingest.chunker import TextChunker
from repoingest.ingest.embedder import Embedder, EmbeddingConfig
from repoingest.ingest.selector import FileSelector
from repoingest.storage.artifacts import ArtifactStore


@dataclass
class RunContext:
    """Everything JobController needs to run an ingest.

    Tests build this directly with fakes; workers use ``open_run_context``.
    """

    config: IngestorConfig
    catalog: Catalog
    broker: CredentialBroker
    client: ContentClient
    embedder: Embedder
    artifacts: ArtifactStore
    selector: FileSelector
    chunker: TextChunker
    vec_table: str

    @property
    def bucket(self) -> str:
        return self.config.storage.bucket


@asynccontextmanager
async def open_run_context(cfg: IngestorConfig) -> AsyncIterator[RunContext]:
    """Open the catalog and HTTP client, yield a RunContext, close both on exit."""
    conn = Database(cfg.catalog.path).connect()
    http = httpx.AsyncClient(timeout=cfg.github.timeout)
    try:
        initialize(conn)
        vec_table = ensure_vec_table(
            conn, model_to_slug(cfg.embedding.model), cfg.embedding.dimensions
        )
        broker = CredentialBroker(cfg.github, http)
        yield RunContext(
            config=cfg,
            catalog=Catalog(conn),
            broker=broker,
            client=ContentClient(cfg.github, http, broker),
            embedder=Embedder(
                EmbeddingConfig(model=cfg.embedding.model, dimensions=cfg.embedding.dimensions)
            ),
            artifacts=ArtifactStore.from_config(cfg.storage),
            selector=FileSelector(cfg.ingest.max_file_bytes),
            chunker=TextChunker(cfg.ingest.chunk_size, cfg.ingest.chunk_overlap),
            vec_table=vec_table,
        )
    finally:
        await http.aclose()
        conn.close()
