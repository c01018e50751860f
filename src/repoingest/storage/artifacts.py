"""ArtifactStore — raw file text in S3-compatible object storage (MinIO)."""

from __future__ import annotations

import asyncio
import io

import structlog
from minio import Minio

from repoingest.config import StorageCfg

log = structlog.get_logger(__name__)


def build_object_key(
    tenant_id: str | None,
    owner: str,
    repo: str,
    ref: str,
    path: str,
    default_tenant: str = "default",
) -> str:
    """Return ``tenants/{tenant}/repos/{owner}/{repo}/refs/{ref}/files/{path}``.

    Backslashes in *path* become ``/`` and leading slashes are dropped.
    """
    normalized = path.replace("\\", "/").lstrip("/")
    tenant = tenant_id or default_tenant
    return f"tenants/{tenant}/repos/{owner}/{repo}/refs/{ref}/files/{normalized}"


class ArtifactStore:
    """Async facade over the blocking ``minio`` client.

    Each call runs on a worker thread via ``asyncio.to_thread`` so the event
    loop is never blocked on storage I/O.

    Args:
        client: Configured ``Minio`` instance.
    """

    def __init__(self, client: Minio) -> None:
        self._client = client

    @classmethod
    def from_config(cls, cfg: StorageCfg) -> ArtifactStore:
        endpoint = f"{cfg.endpoint}:{cfg.port}" if cfg.port else cfg.endpoint
        return cls(
            Minio(
                endpoint,
                access_key=cfg.access_key,
                secret_key=cfg.secret_key,
                secure=cfg.use_ssl,
            )
        )

    async def ensure_bucket(self, bucket: str) -> None:
        """Create *bucket* if it does not exist. Safe to call repeatedly."""
        exists = await asyncio.to_thread(self._client.bucket_exists, bucket_name=bucket)
        if not exists:
            await asyncio.to_thread(self._client.make_bucket, bucket_name=bucket)
            log.info("artifact_bucket_created", bucket=bucket)

    async def put(self, bucket: str, key: str, text: str) -> None:
        """Store *text* as UTF-8 ``text/plain`` under *key*."""
        data = text.encode("utf-8")
        await asyncio.to_thread(
            self._client.put_object,
            bucket_name=bucket,
            object_name=key,
            data=io.BytesIO(data),
            length=len(data),
            content_type="text/plain; charset=utf-8",
        )
