"""
Structured logging configuration using structlog.

JSON lines in production so batch-run summaries can be shipped to a log
aggregator; colored console output everywhere else. Module loggers keep
using ``logging.getLogger(__name__)`` with %-style messages; their records
go through the same ``ProcessorFormatter`` as structlog events, so both
styles end up in one stream with the same run context.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from src.config.settings import get_settings

# Driver loggers that only matter when debugging the store itself
QUIET_LOGGERS = ("asyncpg", "asyncio")


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Optional override for ``Settings.log_level`` (the CLI passes
            ``DEBUG`` when ``--debug`` is set).

    Usage:
        setup_logging()
        logger = structlog.get_logger()
        logger.info("Partition evaluated", metric="tickets_total", level="global")
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)
    shared = _shared_processors()

    renderer: Processor
    if settings.is_production:
        renderer = structlog.processors.JSONRenderer()
        shared.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    # No-op when the root logger already has handlers (test runners, embedding apps)
    logging.basicConfig(handlers=[handler], level=log_level)
    logging.getLogger().setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_run_context(**kwargs) -> None:
    """
    Bind fields (e.g. ``as_of``, ``dry_run``) to every log line of a batch run.

    Args:
        **kwargs: Key-value pairs to bind
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
