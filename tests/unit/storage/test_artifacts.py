"""Tests for ArtifactStore and artifact key layout."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

from minio import Minio

from repoingest.config import StorageCfg
from repoingest.storage.artifacts import ArtifactStore, build_object_key


def test_object_key_with_tenant():
    key = build_object_key("acme", "octo", "widgets", "main", "docs/guide.md")
    assert key == "tenants/acme/repos/octo/widgets/refs/main/files/docs/guide.md"


def test_object_key_default_tenant():
    key = build_object_key(None, "octo", "widgets", "main", "README.md", default_tenant="shared")
    assert key == "tenants/shared/repos/octo/widgets/refs/main/files/README.md"


def test_object_key_normalises_separators():
    key = build_object_key("", "o", "r", "dev", "\\src\\app.py")
    assert key == "tenants/default/repos/o/r/refs/dev/files/src/app.py"


def test_ensure_bucket_creates_when_missing():
    client = MagicMock()
    client.bucket_exists.return_value = False
    asyncio.run(ArtifactStore(client).ensure_bucket("artifacts"))
    client.make_bucket.assert_called_once_with(bucket_name="artifacts")


def test_ensure_bucket_idempotent():
    client = MagicMock()
    client.bucket_exists.return_value = True
    store = ArtifactStore(client)
    asyncio.run(store.ensure_bucket("artifacts"))
    asyncio.run(store.ensure_bucket("artifacts"))
    client.make_bucket.assert_not_called()


def test_put_stores_utf8_text():
    client = MagicMock()
    asyncio.run(ArtifactStore(client).put("artifacts", "k/a.md", "héllo"))

    kwargs = client.put_object.call_args.kwargs
    assert kwargs["bucket_name"] == "artifacts"
    assert kwargs["object_name"] == "k/a.md"
    assert kwargs["data"].read() == "héllo".encode("utf-8")
    assert kwargs["length"] == len("héllo".encode("utf-8"))
    assert kwargs["content_type"].startswith("text/plain")


def test_from_config_builds_minio_client():
    store = ArtifactStore.from_config(StorageCfg(endpoint="minio.local", port=9100))
    assert isinstance(store._client, Minio)
