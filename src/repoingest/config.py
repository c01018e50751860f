"""repoingest configuration loader.

Priority (high → low):
  1. CLI flags               (handled at call site — not in this module)
  2. Environment variables   (INGEST_*, GITHUB_*, MINIO_*, REDIS_URL, ...)
  3. repoingest.yaml         (CWD, or an explicit path)
  4. Hardcoded defaults

Secrets (tokens, private keys, storage keys) must never appear in the YAML
file; they are read from the environment only.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import socket
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CONFIG_NAME: str = "repoingest.yaml"

# Queue messages with any other taskType are ignored by the worker.
INGEST_TASK_TYPE = "ingest_repo_docs"

# Key names that suggest a credential; forbidden in the YAML file.
# Matches: token, github_token, private_key, secret_key, access_key, password.
# Does NOT match max_chunks_per_file, chunk_overlap, installation_id.
_SECRET_KEY_RE: re.Pattern[str] = re.compile(
    r"token"                     # token, github_token, api_token
    r"|secret"                   # secret_key, client_secret
    r"|private[_\-]?key"         # private_key, private-key
    r"|access[_\-]?key"          # access_key (object storage)
    r"|api[_\-]?key"             # api_key, apikey
    r"|passw(?:ord|d)",          # password, passwd
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["ingest", "embedding", "github", "storage", "queue", "catalog", "logging"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file or environment variable holds an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class IngestCfg:
    """Per-run limits and chunking (repoingest.yaml: ingest:)."""

    max_files: int = 300
    max_file_bytes: int = 200_000
    max_total_bytes: int = 5_000_000
    max_chunks_per_file: int = 30
    progress_interval: int = 10
    chunk_size: int = 1200
    chunk_overlap: int = 200


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (repoingest.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536


@dataclass
class GitHubCfg:
    """Code host access (repoingest.yaml: github:).

    ``token``, ``app_private_key`` and ``app_private_key_path`` are
    environment-only.
    """

    api_base: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    user_agent: str = "repoingest-worker"
    timeout: float = 30.0
    token: str | None = None
    app_id: str | None = None
    app_private_key: str | None = None
    app_private_key_path: str | None = None
    app_installation_id: str | None = None


@dataclass
class StorageCfg:
    """S3-compatible object storage (repoingest.yaml: storage:)."""

    endpoint: str = "localhost"
    port: int = 9000
    use_ssl: bool = False
    access_key: str = "minio"
    secret_key: str = "minio123"
    bucket: str = "artifacts"
    default_tenant_id: str = "default"


@dataclass
class QueueCfg:
    """Work queue (repoingest.yaml: queue:)."""

    redis_url: str = "redis://localhost:6379/0"
    name: str = "ingest"
    task_type: str = INGEST_TASK_TYPE
    max_attempts: int = 1
    block_timeout: float = 5.0
    worker_id: str = field(default_factory=socket.gethostname)


@dataclass
class CatalogCfg:
    """Catalog database location (repoingest.yaml: catalog:)."""

    path: str = ".repoingest.db"


@dataclass
class LoggingCfg:
    """Log output (repoingest.yaml: logging:)."""

    level: str = "INFO"
    json: bool = False


@dataclass
class IngestorConfig:
    """Root configuration object, built by load_config() from YAML + env."""

    ingest: IngestCfg = field(default_factory=IngestCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    github: GitHubCfg = field(default_factory=GitHubCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    queue: QueueCfg = field(default_factory=QueueCfg)
    catalog: CatalogCfg = field(default_factory=CatalogCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_secrets(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any credential-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else str(k)
                if _SECRET_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Config file '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and set the matching variable instead."
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _env_int(name: str, current: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return current
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, current: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return current
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


def _cfg_from_dict(data: dict[str, Any]) -> IngestorConfig:
    """Build an *IngestorConfig* from a raw YAML dict."""
    cfg = IngestorConfig()

    if "ingest" in data:
        i = data["ingest"] or {}
        d = cfg.ingest
        cfg.ingest = IngestCfg(
            max_files=int(i.get("max_files", d.max_files)),
            max_file_bytes=int(i.get("max_file_bytes", d.max_file_bytes)),
            max_total_bytes=int(i.get("max_total_bytes", d.max_total_bytes)),
            max_chunks_per_file=int(i.get("max_chunks_per_file", d.max_chunks_per_file)),
            progress_interval=int(i.get("progress_interval", d.progress_interval)),
            chunk_size=int(i.get("chunk_size", d.chunk_size)),
            chunk_overlap=int(i.get("chunk_overlap", d.chunk_overlap)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
        )

    if "github" in data:
        g = data["github"] or {}
        d = cfg.github
        cfg.github = GitHubCfg(
            api_base=str(g.get("api_base", d.api_base)).rstrip("/"),
            api_version=str(g.get("api_version", d.api_version)),
            user_agent=str(g.get("user_agent", d.user_agent)),
            timeout=float(g.get("timeout", d.timeout)),
            app_id=str(g["app_id"]) if g.get("app_id") else None,
            app_installation_id=(
                str(g["app_installation_id"]) if g.get("app_installation_id") else None
            ),
        )

    if "storage" in data:
        s = data["storage"] or {}
        d = cfg.storage
        cfg.storage = StorageCfg(
            endpoint=str(s.get("endpoint", d.endpoint)),
            port=int(s.get("port", d.port)),
            use_ssl=bool(s.get("use_ssl", d.use_ssl)),
            bucket=str(s.get("bucket", d.bucket)),
            default_tenant_id=str(s.get("default_tenant_id", d.default_tenant_id)),
        )

    if "queue" in data:
        q = data["queue"] or {}
        d = cfg.queue
        cfg.queue = QueueCfg(
            redis_url=str(q.get("redis_url", d.redis_url)),
            name=str(q.get("name", d.name)),
            task_type=str(q.get("task_type", d.task_type)),
            max_attempts=int(q.get("max_attempts", d.max_attempts)),
            block_timeout=float(q.get("block_timeout", d.block_timeout)),
            worker_id=str(q.get("worker_id", d.worker_id)),
        )

    if "catalog" in data:
        c = data["catalog"] or {}
        cfg.catalog = CatalogCfg(path=str(c.get("path", cfg.catalog.path)))

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)).upper(),
            json=bool(lg.get("json", cfg.logging.json)),
        )

    return cfg


def _apply_env_overrides(cfg: IngestorConfig) -> IngestorConfig:
    """Apply environment variable overrides (layer 2)."""
    ing = cfg.ingest
    ing.max_files = _env_int("INGEST_MAX_FILES", ing.max_files)
    ing.max_file_bytes = _env_int("INGEST_MAX_FILE_BYTES", ing.max_file_bytes)
    ing.max_total_bytes = _env_int("INGEST_MAX_TOTAL_BYTES", ing.max_total_bytes)
    ing.max_chunks_per_file = _env_int("INGEST_MAX_CHUNKS_PER_FILE", ing.max_chunks_per_file)
    ing.progress_interval = _env_int("INGEST_PROGRESS_INTERVAL", ing.progress_interval)
    ing.chunk_size = _env_int("INGEST_CHUNK_SIZE", ing.chunk_size)
    ing.chunk_overlap = _env_int("INGEST_CHUNK_OVERLAP", ing.chunk_overlap)

    if model := os.environ.get("EMBEDDING_MODEL"):
        cfg.embedding.model = model
    cfg.embedding.dimensions = _env_int("EMBEDDING_DIMENSIONS", cfg.embedding.dimensions)

    gh = cfg.github
    gh.token = os.environ.get("GITHUB_API_TOKEN") or os.environ.get("GITHUB_TOKEN") or None
    if app_id := os.environ.get("GITHUB_APP_ID"):
        gh.app_id = app_id
    if private_key := os.environ.get("GITHUB_APP_PRIVATE_KEY"):
        gh.app_private_key = private_key
    if key_path := os.environ.get("GITHUB_APP_PRIVATE_KEY_PATH"):
        gh.app_private_key_path = key_path
    if installation_id := os.environ.get("GITHUB_APP_INSTALLATION_ID"):
        gh.app_installation_id = installation_id

    st = cfg.storage
    if endpoint := os.environ.get("MINIO_ENDPOINT"):
        st.endpoint = endpoint
    st.port = _env_int("MINIO_PORT", st.port)
    st.use_ssl = _env_bool("MINIO_USE_SSL", st.use_ssl)
    if access_key := os.environ.get("MINIO_ACCESS_KEY"):
        st.access_key = access_key
    if secret_key := os.environ.get("MINIO_SECRET_KEY"):
        st.secret_key = secret_key
    if bucket := os.environ.get("MINIO_BUCKET_ARTIFACTS"):
        st.bucket = bucket
    if tenant := os.environ.get("DEFAULT_TENANT_ID"):
        st.default_tenant_id = tenant

    q = cfg.queue
    if redis_url := os.environ.get("REDIS_URL"):
        q.redis_url = redis_url
    if name := os.environ.get("INGEST_QUEUE_NAME"):
        q.name = name
    q.max_attempts = _env_int("INGEST_QUEUE_MAX_ATTEMPTS", q.max_attempts)

    if path := os.environ.get("CATALOG_PATH"):
        cfg.catalog.path = path

    if level := os.environ.get("LOG_LEVEL"):
        cfg.logging.level = level.upper()
    cfg.logging.json = _env_bool("LOG_JSON", cfg.logging.json)

    return cfg


def _normalise(cfg: IngestorConfig) -> IngestorConfig:
    """Clamp values that have a hard lower bound."""
    cfg.ingest.progress_interval = max(cfg.ingest.progress_interval, 1)
    cfg.queue.max_attempts = max(cfg.queue.max_attempts, 1)
    if cfg.ingest.chunk_size < 1:
        raise ConfigError(f"chunk_size must be >= 1, got {cfg.ingest.chunk_size}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding dimensions must be >= 1, got {cfg.embedding.dimensions}")
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: Path | None = None, *, search_dir: Path | None = None) -> IngestorConfig:
    """Load and return a merged *IngestorConfig*.

    Applies layers in order: defaults → YAML file → env vars.

    Args:
        config_path: Explicit YAML file. Must exist when given.
        search_dir: Directory to search for *repoingest.yaml* when no explicit
            path is given. Defaults to CWD.

    Returns:
        Fully merged *IngestorConfig* with env var overrides applied.

    Raises:
        ConfigError: If the YAML file is missing (explicit path), contains
            credential-like keys, or a numeric env var cannot be parsed.
    """
    if config_path is not None and not config_path.exists():
        raise ConfigError(f"Config file not found: '{config_path}'")

    path = config_path or (search_dir if search_dir is not None else Path.cwd()) / _CONFIG_NAME

    raw: dict[str, Any] = {}
    if path.exists():
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
        _check_no_secrets(raw, path)
        _warn_unknown_keys(raw, path)

    try:
        cfg = _cfg_from_dict(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value in '{path}': {exc}") from None
    cfg = _apply_env_overrides(cfg)
    return _normalise(cfg)
