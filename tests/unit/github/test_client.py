"""Tests for ContentClient request classification and typed operations."""

from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from repoingest.config import GitHubCfg
from repoingest.github.client import (
    RATE_LIMIT_MESSAGE,
    ContentClient,
    GitHubApiError,
    RateLimitError,
)
from repoingest.github.credentials import CredentialBroker


def _client(handler, cfg: GitHubCfg | None = None):
    cfg = cfg or GitHubCfg(token="ghp_test")
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ContentClient(cfg, http, CredentialBroker(cfg, http)), http


def _run(handler, fn, cfg: GitHubCfg | None = None):
    async def go():
        client, http = _client(handler, cfg)
        async with http:
            return await fn(client)

    return asyncio.run(go())


# ---------------------------------------------------------------------------
# request_json
# ---------------------------------------------------------------------------


def test_request_attaches_standard_and_auth_headers():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    result = _run(handler, lambda c: c.request_json("GET", "/repos/acme/widgets", "acme", "widgets"))
    assert result.ok and result.data == {"ok": True}
    headers = seen[0].headers
    assert headers["Accept"] == "application/vnd.github+json"
    assert headers["X-GitHub-Api-Version"] == "2022-11-28"
    assert headers["User-Agent"] == "repoingest-worker"
    assert headers["Authorization"] == "Bearer ghp_test"
    assert str(seen[0].url) == "https://api.github.com/repos/acme/widgets"


def test_rate_limit_classified():
    def handler(request):
        return httpx.Response(
            403, json={"message": "API rate limit exceeded"}, headers={"x-ratelimit-remaining": "0"}
        )

    result = _run(handler, lambda c: c.request_json("GET", "/repos/acme/widgets"))
    assert result.is_rate_limit
    assert result.status == 403
    assert result.error == "API rate limit exceeded"


def test_403_with_remaining_quota_is_not_rate_limit():
    def handler(request):
        return httpx.Response(403, json={"message": "Forbidden"}, headers={"x-ratelimit-remaining": "12"})

    result = _run(handler, lambda c: c.request_json("GET", "/repos/acme/widgets"))
    assert not result.is_rate_limit
    assert result.error == "Forbidden"


def test_error_without_message_uses_status():
    result = _run(lambda r: httpx.Response(502, text="bad gateway"), lambda c: c.request_json("GET", "/x"))
    assert result.error == "GitHub API error (502)"
    assert result.status == 502


def test_transport_error_becomes_result():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = _run(handler, lambda c: c.request_json("GET", "/x"))
    assert not result.ok
    assert "connection refused" in result.error
    assert result.status is None


# ---------------------------------------------------------------------------
# Typed operations
# ---------------------------------------------------------------------------


def test_get_repo_metadata_rate_limit_raises_actionable_error():
    def handler(request):
        return httpx.Response(403, json={}, headers={"x-ratelimit-remaining": "0"})

    with pytest.raises(RateLimitError) as excinfo:
        _run(handler, lambda c: c.get_repo_metadata("acme", "widgets"))
    assert str(excinfo.value) == RATE_LIMIT_MESSAGE


def test_get_repo_metadata_not_found_raises():
    def handler(request):
        return httpx.Response(404, json={"message": "Not Found"})

    with pytest.raises(GitHubApiError, match="Not Found") as excinfo:
        _run(handler, lambda c: c.get_repo_metadata("acme", "missing"))
    assert excinfo.value.status == 404
    assert not isinstance(excinfo.value, RateLimitError)


def test_get_tree_encodes_ref_and_parses_entries():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "truncated": False,
                "tree": [
                    {"path": "README.md", "type": "blob", "sha": "a1", "size": 10},
                    {"path": "src", "type": "tree", "sha": "t1"},
                    {"path": "src/x.py", "type": "blob", "sha": "b2"},
                ],
            },
        )

    entries = _run(handler, lambda c: c.get_tree("acme", "widgets", "release/1.0"))
    assert "/git/trees/release%2F1.0" in seen[0].url.raw_path.decode()
    assert seen[0].url.params["recursive"] == "1"
    assert [(e.path, e.type, e.size) for e in entries] == [
        ("README.md", "blob", 10),
        ("src", "tree", None),
        ("src/x.py", "blob", None),
    ]


def test_get_tree_truncated_still_returns_entries():
    def handler(request):
        return httpx.Response(
            200, json={"truncated": True, "tree": [{"path": "a.md", "type": "blob", "sha": "1", "size": 1}]}
        )

    entries = _run(handler, lambda c: c.get_tree("acme", "widgets", "main"))
    assert [e.path for e in entries] == ["a.md"]


def test_get_blob_returns_payload():
    content = base64.b64encode(b"hello").decode()

    def handler(request):
        assert request.url.path == "/repos/acme/widgets/git/blobs/abc"
        return httpx.Response(200, json={"content": content, "encoding": "base64"})

    blob = _run(handler, lambda c: c.get_blob("acme", "widgets", "abc"))
    assert blob["content"] == content
