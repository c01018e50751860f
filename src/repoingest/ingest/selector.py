"""File selection rules for repository trees.

``should_include`` is pure: the same (path, size, cap) always yields the
same answer. Rules run in a fixed order and the prefix and filename
rejections short-circuit before the extension and size checks.
"""

from __future__ import annotations

import posixpath

SKIP_PREFIXES: tuple[str, ...] = (
    "node_modules/",
    ".git/",
    "dist/",
    "build/",
    "out/",
    ".next/",
    "coverage/",
    "vendor/",
    "bin/",
    "obj/",
    "target/",
    ".venv/",
    "venv/",
    ".idea/",
    ".vscode/",
)

LOCKFILE_NAMES: frozenset[str] = frozenset(
    [
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "pnpm-lock.yml",
        "npm-shrinkwrap.json",
    ]
)

MINIFIED_MARKER = ".min."

# Basenames accepted despite having no extension.
NO_EXTENSION_ALLOWLIST: frozenset[str] = frozenset(
    ["dockerfile", "makefile", "license", "readme", "readme.md"]
)

TEXT_EXTENSIONS: frozenset[str] = frozenset(
    [
        # docs
        ".md", ".markdown", ".mdx", ".txt",
        # js / ts
        ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs",
        # data / config
        ".json", ".yml", ".yaml", ".toml", ".ini", ".env",
        # languages
        ".py", ".rb", ".go", ".rs", ".java", ".kt", ".kts", ".swift", ".php",
        ".cs", ".cpp", ".c", ".h", ".hpp",
        # web
        ".html", ".css", ".scss", ".less",
        # schemas / queries
        ".sql", ".graphql", ".gql", ".proto",
        # scripts
        ".sh", ".bash", ".ps1", ".bat", ".cmd",
    ]
)


def should_include(path: str, size: int | None, max_file_bytes: int) -> bool:
    """Return True if the file at *path* should be ingested.

    Args:
        path: Repository-relative path as listed in the tree.
        size: Declared blob size in bytes, or None when unknown.
        max_file_bytes: Per-file size cap. Unknown sizes always pass it.
    """
    if not path:
        return False

    normalized = path.replace("\\", "/").lower()
    if normalized.startswith(SKIP_PREFIXES):
        return False

    basename = posixpath.basename(normalized)
    if basename in LOCKFILE_NAMES:
        return False

    if MINIFIED_MARKER in normalized:
        return False

    ext = posixpath.splitext(basename)[1]
    if not ext:
        return basename in NO_EXTENSION_ALLOWLIST

    if ext not in TEXT_EXTENSIONS:
        return False

    if size is not None and size > max_file_bytes:
        return False

    return True


class FileSelector:
    """``should_include`` bound to a per-file byte cap."""

    def __init__(self, max_file_bytes: int) -> None:
        self.max_file_bytes = max_file_bytes

    def __call__(self, path: str, size: int | None) -> bool:
        return should_include(path, size, self.max_file_bytes)
