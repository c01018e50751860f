"""Repoingest catalog layer."""

from repoingest.db.catalog import Catalog
from repoingest.db.connection import Database
from repoingest.db.migrations import MIGRATIONS, run_migrations, schema_version
from repoingest.db.schema import initialize
from repoingest.db.vectors import (
    ensure_vec_table,
    list_vec_tables,
    model_to_slug,
    vec_table_name,
)

__all__ = [
    "Catalog",
    "Database",
    "initialize",
    "run_migrations",
    "schema_version",
    "MIGRATIONS",
    "ensure_vec_table",
    "list_vec_tables",
    "model_to_slug",
    "vec_table_name",
]
