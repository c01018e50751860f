"""GitHub access: URL parsing, read credentials, REST client."""

from repoingest.github.client import (
    ApiResult,
    ContentClient,
    GitHubApiError,
    RateLimitError,
    TreeEntry,
)
from repoingest.github.credentials import CredentialBroker, GitHubAuthError, TtlCache
from repoingest.github.urls import InvalidRepoUrlError, RepoRef, parse_repo_url

__all__ = [
    "ApiResult",
    "ContentClient",
    "CredentialBroker",
    "GitHubApiError",
    "GitHubAuthError",
    "InvalidRepoUrlError",
    "RateLimitError",
    "RepoRef",
    "TreeEntry",
    "TtlCache",
    "parse_repo_url",
]
