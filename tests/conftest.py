"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from repoingest.db.connection import Database
from repoingest.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based catalog in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".repoingest.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()
