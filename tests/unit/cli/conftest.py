"""Shared fixtures for CLI tests."""

from __future__ import annotations

import pytest

from repoingest.cli.common import console
from repoingest.db.catalog import Catalog
from repoingest.db.connection import Database
from repoingest.db.schema import initialize


@pytest.fixture(autouse=True)
def _isolated(tmp_path, monkeypatch):
    """Run every command from an empty directory with a wide console."""
    monkeypatch.chdir(tmp_path)
    for name in ("REDIS_URL", "CATALOG_PATH", "INGEST_QUEUE_NAME", "LOG_LEVEL", "LOG_JSON"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(console, "width", 200)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "catalog.db"


@pytest.fixture
def catalog(db_path):
    conn = Database(db_path).connect()
    initialize(conn)
    yield Catalog(conn)
    conn.close()
