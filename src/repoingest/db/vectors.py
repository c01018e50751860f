"""Embedding tables: one sqlite-vec ``vec0`` table per embedding model.

Rows are keyed by ``chunks.id``, so a chunk's vector is looked up or deleted
with ``rowid = chunk.id``.
"""

from __future__ import annotations

import re
import sqlite3

VEC_TABLE_PREFIX = "vec_chunks_"

_SLUG_RE = re.compile(r"[a-z0-9_]+")


def model_to_slug(model: str) -> str:
    """Reduce a model name to ``[a-z0-9_]``.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
        "cohere/embed-english-v3.0"     -> "cohere_embed_english_v3_0"
    """
    return re.sub(r"[^a-z0-9]+", "_", model.lower()).strip("_")


def vec_table_name(model_slug: str) -> str:
    return f"{VEC_TABLE_PREFIX}{model_slug}"


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create the vec0 table for *model_slug* if missing and return its name.

    Raises:
        ValueError: If the slug is not ``[a-z0-9_]+`` or *dimensions* < 1.
    """
    if not _SLUG_RE.fullmatch(model_slug):
        raise ValueError(f"Invalid model_slug '{model_slug}'; pass it through model_to_slug().")
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    conn.execute(
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {table} USING vec0(embedding float[{dimensions}])"
    )
    conn.commit()
    return table


def list_vec_tables(conn: sqlite3.Connection) -> list[str]:
    """Names of every embedding table, shadow tables excluded."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name LIKE ? "
        "AND sql LIKE 'CREATE VIRTUAL TABLE%' ORDER BY name",
        (f"{VEC_TABLE_PREFIX}%",),
    ).fetchall()
    return [r[0] for r in rows]
