"""structlog setup for the worker and the operator CLI.

Call ``configure_logging()`` once per process, before the first log call.
Modules obtain loggers with ``structlog.get_logger(__name__)``.
"""

from __future__ import annotations

import logging
import sys

import litellm
import structlog

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Route structlog (and stdlib logging from libraries) to stderr.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ...).
        json_output: Render one JSON object per line instead of the console
            renderer. Use in containers where logs are shipped.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric, force=True)
    # httpx logs every request at INFO; keep it at WARNING so tokens in URLs never leak.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        # ConsoleRenderer formats exceptions itself.
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
