"""Typed async wrapper over the GitHub REST endpoints the ingest run needs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog

from repoingest.config import GitHubCfg

if TYPE_CHECKING:
    from repoingest.github.credentials import CredentialBroker

log = structlog.get_logger(__name__)

RATE_LIMIT_MESSAGE = (
    "GitHub rate limit exceeded. Configure GITHUB_TOKEN or GitHub App credentials."
)


class GitHubApiError(RuntimeError):
    """Non-2xx response or transport failure from the GitHub API."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitError(GitHubApiError):
    """GitHub refused the request because the rate limit is exhausted."""


@dataclass
class ApiResult:
    """Outcome of one API call: either ``data`` or ``error`` is set."""

    data: Any = None
    error: str | None = None
    status: int | None = None
    is_rate_limit: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TreeEntry:
    path: str
    type: str
    sha: str
    size: int | None = None


class ContentClient:
    """Repository metadata, recursive trees and blobs for one owner/repo.

    Args:
        cfg: GitHub section of the worker config (base URL, headers).
        http: Shared ``httpx.AsyncClient``.
        broker: Supplies the auth header for each request.
    """

    def __init__(self, cfg: GitHubCfg, http: httpx.AsyncClient, broker: CredentialBroker) -> None:
        self._cfg = cfg
        self._http = http
        self._broker = broker

    async def request_json(
        self,
        method: str,
        endpoint: str,
        owner: str | None = None,
        repo: str | None = None,
    ) -> ApiResult:
        """Send one request and classify the result.

        Never raises for HTTP or transport failures; those come back as an
        ``ApiResult`` with ``error`` set. Auth failures from the broker do
        propagate.
        """
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self._cfg.user_agent,
            "X-GitHub-Api-Version": self._cfg.api_version,
        }
        headers.update(await self._broker.auth_header(owner, repo))

        try:
            response = await self._http.request(
                method, f"{self._cfg.api_base}{endpoint}", headers=headers
            )
        except httpx.HTTPError as exc:
            return ApiResult(error=str(exc) or "GitHub API request failed.")

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if not response.is_success:
            message = payload.get("message") if isinstance(payload, dict) else None
            return ApiResult(
                error=message or f"GitHub API error ({response.status_code})",
                status=response.status_code,
                is_rate_limit=(
                    response.status_code == 403
                    and response.headers.get("x-ratelimit-remaining") == "0"
                ),
            )
        return ApiResult(data=payload, status=response.status_code)

    # ------------------------------------------------------------------
    # Typed operations
    # ------------------------------------------------------------------

    async def get_repo_metadata(self, owner: str, repo: str) -> dict[str, Any]:
        result = await self.request_json("GET", f"/repos/{owner}/{repo}", owner, repo)
        return _unwrap(result)

    async def get_tree(self, owner: str, repo: str, ref: str) -> list[TreeEntry]:
        """Return every entry of *ref*'s recursive tree in listing order."""
        endpoint = f"/repos/{owner}/{repo}/git/trees/{quote(ref, safe='')}?recursive=1"
        payload = _unwrap(await self.request_json("GET", endpoint, owner, repo))
        if payload.get("truncated"):
            log.warning("github_tree_truncated", owner=owner, repo=repo, ref=ref)

        entries: list[TreeEntry] = []
        for item in payload.get("tree") or []:
            if not isinstance(item, dict) or not item.get("path"):
                continue
            size = item.get("size")
            entries.append(
                TreeEntry(
                    path=item["path"],
                    type=item.get("type", ""),
                    sha=item.get("sha", ""),
                    size=size if isinstance(size, int) else None,
                )
            )
        return entries

    async def get_blob(self, owner: str, repo: str, sha: str) -> dict[str, Any]:
        """Return the blob payload (``content`` + ``encoding``) for *sha*."""
        result = await self.request_json("GET", f"/repos/{owner}/{repo}/git/blobs/{sha}", owner, repo)
        return _unwrap(result)


def _unwrap(result: ApiResult) -> Any:
    if result.is_rate_limit:
        raise RateLimitError(RATE_LIMIT_MESSAGE, status=result.status)
    if not result.ok:
        raise GitHubApiError(result.error or "GitHub API request failed.", status=result.status)
    return result.data if result.data is not None else {}
