"""structlog configuration for the rate limiter.

Modules log through ``structlog.get_logger(__name__)`` and never configure
structlog themselves. Applications call ``configure_logging`` once at startup
(or rely on their own structlog setup).

- Development: human-readable console renderer with colors
- Testing/CI/production: JSON renderer for machine parsing
"""

import logging
import sys

import structlog

from ratekeeper.config import get_settings


def configure_logging(level: str | None = None, *, use_json: bool | None = None) -> None:
    """Configure structlog processors and level filtering.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to ``RATEKEEPER_LOG_LEVEL``.
        use_json: JSON output when True, console output when False.
            Defaults to ``RATEKEEPER_LOG_JSON``.

    Raises:
        ValueError: If ``level`` is not a known level name.
    """
    if level is None or use_json is None:
        settings = get_settings()
        level = settings.log_level if level is None else level
        use_json = settings.log_json if use_json is None else use_json

    numeric_level = logging.getLevelNamesMapping().get(level.upper())
    if numeric_level is None:
        raise ValueError(f"Unknown log level: {level!r}")

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )
