"""
Structured logging configuration for nswot.

Provides consistent, structured logging with analysis-id correlation and rich formatting.
"""

import logging
import sys
import uuid
from typing import Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler


SECRET_KEYS = frozenset({"api_key", "authorization", "x-api-key", "x_api_key"})


def redact_secrets(logger, method_name, event_dict):
    """Mask credential-looking fields so keys never reach a log sink."""
    for key in event_dict:
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def bind_analysis_id(analysis_id: Optional[str] = None) -> str:
    """Bind an analysis id to every log entry emitted from the current context."""
    analysis_id = analysis_id or str(uuid.uuid4())[:8]
    structlog.contextvars.bind_contextvars(analysis_id=analysis_id)
    return analysis_id


def clear_analysis_id() -> None:
    """Remove the analysis id from the logging context."""
    structlog.contextvars.unbind_contextvars("analysis_id")


def setup_logging(debug: bool = False, rich_output: bool = True) -> None:
    """
    Configure structured logging for the application.

    Args:
        debug: Enable debug level logging
        rich_output: Use rich formatting for console output
    """
    level = logging.DEBUG if debug else logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        redact_secrets,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.dev.set_exc_info,
    ]

    if rich_output:
        console = Console(stderr=True)
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True, exception_formatter=structlog.dev.rich_traceback
            )
        )
        logging.basicConfig(
            level=level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    else:
        # JSON output for production
        processors.append(structlog.processors.JSONRenderer())
        logging.basicConfig(level=level, format="%(message)s", stream=sys.stdout)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)
