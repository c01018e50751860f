"""Repository URL parsing."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

_GITHUB_HOSTS: frozenset[str] = frozenset(["github.com", "www.github.com"])


class InvalidRepoUrlError(ValueError):
    """Raised when a URL does not name a GitHub repository."""


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_repo_url(url: str) -> RepoRef:
    """Extract owner and repo from a GitHub web URL.

    Accepts ``https://github.com/owner/repo``, an optional ``.git`` suffix,
    trailing path segments (``/tree/main/docs``) and the ``www.`` host.

    Raises:
        InvalidRepoUrlError: If *url* is not an http(s) GitHub URL with at
            least an owner and a repo segment.
    """
    parsed = urlparse((url or "").strip())
    if parsed.scheme not in ("http", "https") or (parsed.hostname or "") not in _GITHUB_HOSTS:
        raise InvalidRepoUrlError(f"Not a GitHub repository URL: {url!r}")

    path = parsed.path.lstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    parts = [p for p in path.split("/") if p]
    if len(parts) < 2:
        raise InvalidRepoUrlError(f"GitHub URL must include owner and repo: {url!r}")

    return RepoRef(owner=parts[0], repo=parts[1])
