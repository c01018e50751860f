"""Tests for repoingest status and the version commands."""

from __future__ import annotations

from typer.testing import CliRunner

from repoingest.cli.main import app
from repoingest.db.models import JobStatus

runner = CliRunner()

REPO_URL = "https://github.com/acme/widgets"


# ---------------------------------------------------------------------------
# repoingest --version / version
# ---------------------------------------------------------------------------


def test_version_flag_exits_zero() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "repoingest" in result.output


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.output.startswith("repoingest ")


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("worker", "enqueue", "status", "cancel"):
        assert name in result.output


# ---------------------------------------------------------------------------
# repoingest status
# ---------------------------------------------------------------------------


def test_status_missing_db_exits_1(db_path) -> None:
    result = runner.invoke(app, ["status", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "No catalog found" in result.output


def test_status_empty(catalog, db_path) -> None:
    result = runner.invoke(app, ["status", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "No ingest jobs yet" in result.output


def test_status_lists_jobs_newest_first(catalog, db_path) -> None:
    first = catalog.create_job(REPO_URL)
    second = catalog.create_job("https://github.com/acme/gadgets")
    catalog.update_job(first, status=JobStatus.COMPLETED, total_files=3, files_processed=3)

    result = runner.invoke(app, ["status", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "Ingest Jobs" in result.output
    assert "completed" in result.output
    assert "3/3" in result.output
    assert result.output.index("gadgets") < result.output.index("widgets")
    assert str(second) in result.output


def test_status_limit(catalog, db_path) -> None:
    catalog.create_job(REPO_URL)
    catalog.create_job("https://github.com/acme/gadgets")

    result = runner.invoke(app, ["status", "-n", "1", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "gadgets" in result.output
    assert "widgets" not in result.output


def test_status_shows_error_instead_of_message(catalog, db_path) -> None:
    job_id = catalog.create_job(REPO_URL)
    catalog.update_job(job_id, status=JobStatus.FAILED, error="Rate limit hit", last_message="Ingest failed")

    result = runner.invoke(app, ["status", "--db", str(db_path)])
    assert "Rate limit hit" in result.output


def test_status_detail(catalog, db_path) -> None:
    job_id = catalog.create_job(REPO_URL, project_id=9, tenant_id="acme")
    catalog.update_job(
        job_id,
        status=JobStatus.RUNNING,
        total_files=10,
        total_bytes=2048,
        files_processed=4,
        chunks_stored=12,
        last_message="Processed 4/10 files",
    )

    result = runner.invoke(app, ["status", str(job_id), "--db", str(db_path)])
    assert result.exit_code == 0
    assert f"Ingest Job {job_id}" in result.output
    assert "4/10" in result.output
    assert "2,048 bytes" in result.output
    assert "Project:   9" in result.output
    assert "Tenant:    acme" in result.output
    assert "Processed 4/10 files" in result.output


def test_status_unknown_job_exits_1(catalog, db_path) -> None:
    result = runner.invoke(app, ["status", "42", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "Ingest job 42 not found" in result.output


def test_status_uses_configured_catalog_path(tmp_path, catalog, db_path) -> None:
    catalog.create_job(REPO_URL)
    (tmp_path / "repoingest.yaml").write_text(f"catalog:\n  path: {db_path}\n")

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "widgets" in result.output


def test_status_bad_config_exits_1(tmp_path) -> None:
    result = runner.invoke(app, ["status", "--config", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
