"""repoingest rich error messages — actionable feedback.

Every error shown to the operator must contain:
  1. What went wrong (clear cause)
  2. The exact action to take to fix it

Usage:
    from repoingest.cli.errors import err_no_db
    console.print(err_no_db(".repoingest.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_config(message: str) -> str:
    """Config file or environment variable is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix repoingest.yaml or the environment variable and retry."
    )


def err_no_db(db_path: str = ".repoingest.db") -> str:
    """Catalog database file does not exist."""
    return (
        f"[red]Error:[/] No catalog found at '{db_path}'.\n"
        "  Run:  repoingest enqueue <repo-url>  to create it, or pass --db <path>."
    )


def err_invalid_repo_url(url: str) -> str:
    """URL does not name a GitHub repository."""
    return (
        f"[red]Error:[/] Not a GitHub repository URL: '{url}'\n"
        "  Use:  https://github.com/<owner>/<repo>"
    )


def err_job_not_found(job_id: int) -> str:
    """No ingest job with that id."""
    return (
        f"[red]Error:[/] Ingest job {job_id} not found.\n"
        "  Run:  repoingest status  to list recent jobs."
    )


def err_queue_unreachable(redis_url: str, reason: str) -> str:
    """Redis could not be reached."""
    return (
        f"[red]Error:[/] Cannot reach the work queue at '{redis_url}': {reason}\n"
        "  Start Redis or set:  export REDIS_URL=redis://<host>:6379/0"
    )


def err_no_api_key(env_var: str) -> str:
    """Embedding provider key missing — every ingest would fail."""
    return (
        f"[yellow]Warning:[/] {env_var} is not set; ingest jobs will fail.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def warn_job_finished(job_id: int, status: str) -> str:
    """Cancel requested for a job that can no longer be canceled."""
    return (
        f"[yellow]Job {job_id} is already {status}.[/] Nothing to cancel.\n"
        "  Run:  repoingest status  to see its final state."
    )
