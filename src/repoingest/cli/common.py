"""Helpers shared by the CLI commands."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from repoingest.cli.errors import err_config, err_no_db
from repoingest.config import ConfigError, IngestorConfig, load_config
from repoingest.db.connection import Database
from repoingest.db.schema import initialize

console = Console()


def load_config_or_exit(config_path: Path | None) -> IngestorConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from None


def resolve_db(db: Path | None, cfg: IngestorConfig) -> Path:
    """--db wins over the configured catalog path."""
    return db if db is not None else Path(cfg.catalog.path)


def open_db(db_path: Path, *, must_exist: bool = True) -> sqlite3.Connection:
    """Open the catalog with the schema initialised, or exit if it is missing."""
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn
