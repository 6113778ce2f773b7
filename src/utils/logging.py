"""Structured logging for the slideshow engine.

Render sessions are correlated through structlog's context variables: every
event logged while a session is bound carries its ``session_id``, including
records from plain ``logging`` loggers routed through the formatter.
"""

import logging
import sys

import structlog


def setup_structured_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Route stdlib and structlog loggers through one structlog formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: JSON lines instead of colored console output
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Pillow logs every plugin import at DEBUG
    logging.getLogger("PIL").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_session_context(session_id: str) -> None:
    """Attach ``session_id`` to every event logged in the current context."""
    structlog.contextvars.bind_contextvars(session_id=session_id)


def clear_session_context() -> None:
    structlog.contextvars.unbind_contextvars("session_id")
