"""structlog setup for ragchat.

:func:`configure_logging` installs one processor chain for structlog
loggers and, through ``foreign_pre_chain``, for the stdlib loggers that
chromadb, httpx and openai write to.  The chain ends in a console renderer
or, when ``json_output`` is set, a JSON renderer.

:func:`conversation_context` binds ``user_id``, ``store`` and
``session_id`` as context variables for the duration of one question, so
every event logged while answering it (retrieval, fallbacks, provider
retries) carries the conversation it belongs to.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from ragchat.utils.errors import ConfigurationError

# Third-party loggers that are chatty at INFO (telemetry, HTTP request lines).
QUIET_LOGGERS = ("chromadb", "httpx", "openai")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.set_exc_info,
    ]


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_output: Render JSON lines instead of console output.

    Raises:
        ConfigurationError: *log_level* is not a known level name.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ConfigurationError(message=f"Unknown log level '{log_level}'")

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*_shared_processors(), renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, level))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Named logger; applies the default configuration on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def conversation_context(*, user_id: str, store: str, session_id: str) -> Iterator[None]:
    """Bind the conversation key to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(user_id=user_id, store=store, session_id=session_id):
        yield
