"""Read credentials for the GitHub REST API.

Resolution order for ``CredentialBroker.auth_header()``:
  1. Static token (GITHUB_API_TOKEN / GITHUB_TOKEN) — always wins.
  2. GitHub App installation token, when app id + private key are set.
  3. No header (anonymous, lower rate limit).

Installation ids and installation tokens are held in ``TtlCache`` instances
with an injected clock, one pair per worker process.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Generic, TypeVar

import httpx
import jwt
import structlog

from repoingest.config import GitHubCfg
from repoingest.github.client import GitHubApiError

log = structlog.get_logger(__name__)

K = TypeVar("K")
V = TypeVar("V")

# Installation tokens are treated as expired this many seconds early.
TOKEN_EXPIRY_SKEW_SECONDS: float = 60.0
INSTALLATION_ID_TTL_SECONDS: float = 10 * 60
# Used when the token exchange response omits expires_at.
DEFAULT_TOKEN_LIFETIME_SECONDS: float = 55 * 60

# App JWT window: issued in the past for clock skew, below GitHub's 10 min cap.
_JWT_BACKDATE_SECONDS = 60
_JWT_LIFETIME_SECONDS = 9 * 60


class GitHubAuthError(GitHubApiError):
    """Raised when an installation token cannot be obtained."""


# ---------------------------------------------------------------------------
# TTL cache
# ---------------------------------------------------------------------------


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TtlCache(Generic[K, V]):
    """In-memory map whose entries expire at an absolute clock time.

    Args:
        clock: Returns the current time in seconds (``time.time`` by default).
        skew_seconds: Entries are reported missing this long before their
            stated expiry.
    """

    def __init__(self, clock: Callable[[], float] = time.time, skew_seconds: float = 0.0) -> None:
        self._clock = clock
        self._skew = skew_seconds
        self._entries: dict[K, _Entry[V]] = {}

    def get(self, key: K) -> V | None:
        """Return the cached value, evicting it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() < entry.expires_at - self._skew:
            return entry.value
        del self._entries[key]
        return None

    def set(self, key: K, value: V, expires_at: float) -> None:
        self._entries[key] = _Entry(value=value, expires_at=expires_at)

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------------


def resolve_private_key(cfg: GitHubCfg) -> str | None:
    """Return the app private key PEM from config, or read it from a file.

    Literal ``\\n`` sequences (common when the key is passed through a
    single-line env var) are turned into newlines. An unreadable key file
    is logged and treated as absent.
    """
    key = cfg.app_private_key
    if not key and cfg.app_private_key_path:
        try:
            key = Path(cfg.app_private_key_path).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            log.error("github_app_key_unreadable", path=cfg.app_private_key_path, error=str(exc))
            return None
    if not key:
        return None
    return key.replace("\\n", "\n") if "\\n" in key else key


class CredentialBroker:
    """Produces the ``Authorization`` header for repository-read API calls.

    Args:
        cfg: GitHub section of the worker config.
        http: Shared async HTTP client used for the app flow.
        clock: Time source for JWT claims and cache expiry.
        token_cache: Installation id → token cache (60 s early expiry).
        installation_cache: ``owner/repo`` → installation id cache.
    """

    def __init__(
        self,
        cfg: GitHubCfg,
        http: httpx.AsyncClient,
        *,
        clock: Callable[[], float] = time.time,
        token_cache: TtlCache[str, str] | None = None,
        installation_cache: TtlCache[str, str] | None = None,
    ) -> None:
        self._cfg = cfg
        self._http = http
        self._clock = clock
        self._private_key = resolve_private_key(cfg)
        self.token_cache: TtlCache[str, str] = (
            token_cache
            if token_cache is not None
            else TtlCache(clock, skew_seconds=TOKEN_EXPIRY_SKEW_SECONDS)
        )
        self.installation_cache: TtlCache[str, str] = (
            installation_cache if installation_cache is not None else TtlCache(clock)
        )

    @property
    def mode(self) -> str:
        """``token``, ``app`` or ``anonymous``."""
        if self._cfg.token:
            return "token"
        if self._cfg.app_id and self._private_key:
            return "app"
        return "anonymous"

    async def auth_header(self, owner: str | None = None, repo: str | None = None) -> dict[str, str]:
        """Return the auth header for a request against *owner*/*repo*.

        Raises:
            GitHubAuthError: If the installation token exchange fails.
        """
        if self._cfg.token:
            return {"Authorization": f"Bearer {self._cfg.token}"}

        if self._cfg.app_id and self._private_key:
            token = await self._installation_token(owner, repo)
            return {"Authorization": f"Bearer {token}"} if token else {}

        return {}

    # ------------------------------------------------------------------
    # App installation flow
    # ------------------------------------------------------------------

    def app_jwt(self) -> str:
        """Sign a short-lived RS256 assertion identifying the app."""
        now = int(self._clock())
        payload = {
            "iat": now - _JWT_BACKDATE_SECONDS,
            "exp": now + _JWT_LIFETIME_SECONDS,
            "iss": str(self._cfg.app_id),
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    def _app_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.app_jwt()}",
            "User-Agent": self._cfg.user_agent,
            "X-GitHub-Api-Version": self._cfg.api_version,
        }

    async def _installation_token(self, owner: str | None, repo: str | None) -> str | None:
        installation_id = self._cfg.app_installation_id
        if not installation_id and owner and repo:
            installation_id = await self._installation_id_for(owner, repo)
        if not installation_id:
            return None

        cached = self.token_cache.get(installation_id)
        if cached:
            return cached

        url = f"{self._cfg.api_base}/app/installations/{installation_id}/access_tokens"
        response = await self._http.post(url, headers=self._app_headers())
        payload = _json_or_empty(response)
        if not response.is_success:
            raise GitHubAuthError(
                payload.get("message") or "GitHub App auth failed", status=response.status_code
            )

        token = payload.get("token")
        if not token:
            raise GitHubAuthError("GitHub App auth returned no token", status=response.status_code)
        self.token_cache.set(installation_id, token, self._expiry_of(payload.get("expires_at")))
        log.debug("github_installation_token_issued", installation_id=installation_id)
        return token

    async def _installation_id_for(self, owner: str, repo: str) -> str | None:
        key = f"{owner}/{repo}".lower()
        cached = self.installation_cache.get(key)
        if cached:
            return cached

        url = f"{self._cfg.api_base}/repos/{owner}/{repo}/installation"
        try:
            response = await self._http.get(url, headers=self._app_headers())
        except httpx.HTTPError as exc:
            log.warning("github_installation_lookup_failed", owner=owner, repo=repo, error=str(exc))
            return None
        if not response.is_success:
            log.info(
                "github_installation_not_found", owner=owner, repo=repo, status=response.status_code
            )
            return None

        installation_id = _json_or_empty(response).get("id")
        if not installation_id:
            return None
        installation_id = str(installation_id)
        self.installation_cache.set(
            key, installation_id, self._clock() + INSTALLATION_ID_TTL_SECONDS
        )
        return installation_id

    def _expiry_of(self, expires_at: str | None) -> float:
        if expires_at:
            try:
                return datetime.fromisoformat(expires_at.replace("Z", "+00:00")).timestamp()
            except ValueError:
                log.warning("github_token_expiry_unparseable", expires_at=expires_at)
        return self._clock() + DEFAULT_TOKEN_LIFETIME_SECONDS


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
