"""structlog setup shared by the engine, the SQLite store and the CLI."""

import logging
import sys

import structlog

# Applied to every event before rendering.
_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.format_exc_info,
]


def configure_logging(*, debug: bool = False, json_logs: bool | None = None) -> None:
    """Route engine events to stderr.

    Args:
        debug: Emit load/save progress events. Otherwise only warnings and
            errors (rejected or failed saves) are shown.
        json_logs: Render one JSON object per line. Defaults to JSON when
            stderr is not a terminal.
    """
    if json_logs is None:
        json_logs = not sys.stderr.isatty()

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=logging.DEBUG if debug else logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[*_PROCESSORS, renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_database(sqlite_path: object) -> None:
    """Tag every later event in this context with the database in use."""

    structlog.contextvars.bind_contextvars(database=str(sqlite_path))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
