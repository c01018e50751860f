"""In-memory fakes for worker tests: code host, embedder, object store, Redis."""

from __future__ import annotations

import base64
from collections import defaultdict
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from repoingest.config import IngestorConfig
from repoingest.db.catalog import Catalog
from repoingest.db.vectors import ensure_vec_table
from repoingest.github.client import GitHubApiError, TreeEntry
from repoingest.ingest.chunker import TextChunker
from repoingest.ingest.embedder import MissingEmbeddingKeyError
from repoingest.ingest.selector import FileSelector
from repoingest.worker.context import RunContext

DIMS = 3


class FakeContentClient:
    def __init__(
        self,
        tree: list[TreeEntry],
        blobs: dict[str, bytes],
        metadata: dict | None = None,
    ) -> None:
        self.tree = tree
        self.blobs = blobs
        self.metadata = {"default_branch": "main"} if metadata is None else metadata
        self.calls: list[tuple] = []
        self.blob_hook: Callable[[str], None] | None = None
        self.fail_on: set[str] = set()

    async def get_repo_metadata(self, owner, repo):
        self.calls.append(("metadata", owner, repo))
        return self.metadata

    async def get_tree(self, owner, repo, ref):
        self.calls.append(("tree", owner, repo, ref))
        return self.tree

    async def get_blob(self, owner, repo, sha):
        self.calls.append(("blob", sha))
        if self.blob_hook:
            self.blob_hook(sha)
        if sha in self.fail_on:
            raise GitHubApiError("GitHub API error (502)", status=502)
        return {"content": base64.b64encode(self.blobs[sha]).decode(), "encoding": "base64"}

    @property
    def blob_shas(self) -> list[str]:
        return [c[1] for c in self.calls if c[0] == "blob"]


class FakeEmbedder:
    def __init__(self, has_key: bool = True) -> None:
        self.has_key = has_key
        self.batches: list[list[str]] = []

    def required_key_env(self):
        return "OPENAI_API_KEY"

    def check_credentials(self):
        if not self.has_key:
            raise MissingEmbeddingKeyError("No API key found. Set the OPENAI_API_KEY environment variable.")

    async def embed(self, texts):
        self.check_credentials()
        self.batches.append(list(texts))
        return [[0.1, 0.2, 0.3] for _ in texts]


class FakeArtifacts:
    def __init__(self) -> None:
        self.buckets: list[str] = []
        self.objects: dict[str, str] = {}

    async def ensure_bucket(self, bucket):
        self.buckets.append(bucket)

    async def put(self, bucket, key, text):
        self.objects[key] = text


class FakeRedis:
    """The list commands QueueConsumer uses. Index 0 is the left end."""

    def __init__(self) -> None:
        self.lists: dict[str, list] = defaultdict(list)

    async def lpush(self, key, *values):
        for value in values:
            self.lists[key].insert(0, value)
        return len(self.lists[key])

    async def lmove(self, src, dst, wherefrom="LEFT", whereto="RIGHT"):
        source = self.lists[src]
        if not source:
            return None
        value = source.pop(0) if wherefrom == "LEFT" else source.pop()
        if whereto == "LEFT":
            self.lists[dst].insert(0, value)
        else:
            self.lists[dst].append(value)
        return value

    async def blmove(self, src, dst, timeout, wherefrom="LEFT", whereto="RIGHT"):
        return await self.lmove(src, dst, wherefrom, whereto)

    async def lrem(self, key, count, value):
        items = self.lists[key]
        if value in items:
            items.remove(value)
            return 1
        return 0


@pytest.fixture
def make_ctx(tmp_db):
    """Build a RunContext over the tmp catalog and in-memory fakes."""

    def _make(files, *, metadata=None, has_key=True, extra_tree=(), **ingest):
        cfg = IngestorConfig()
        cfg.queue.worker_id = "w1"
        for name, value in ingest.items():
            setattr(cfg.ingest, name, value)

        tree = [entry for entry, _ in files] + list(extra_tree)
        client = FakeContentClient(
            tree, {entry.sha: content for entry, content in files}, metadata=metadata
        )
        ctx = RunContext(
            config=cfg,
            catalog=Catalog(tmp_db),
            broker=MagicMock(),
            client=client,
            embedder=FakeEmbedder(has_key=has_key),
            artifacts=FakeArtifacts(),
            selector=FileSelector(cfg.ingest.max_file_bytes),
            chunker=TextChunker(cfg.ingest.chunk_size, cfg.ingest.chunk_overlap),
            vec_table=ensure_vec_table(tmp_db, "test_model", DIMS),
        )
        return ctx

    return _make


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
