# src/rnadeseq/core/logging.py
"""Structured logging for rnadeseq runs.

structlog and stdlib logging share one processor chain: stdlib records
(tenacity, smtplib helpers, anything using logging.getLogger) are routed
through ProcessorFormatter, so a run's log is uniformly console or JSON.

Logs always go to stderr. Stdout belongs to the CLI, which may be streaming
run events as JSON lines.

Run identity is carried in contextvars: after bind_run(), every record
emitted from the run, including those from stage worker threads started
under a copied context, carries ``run_name`` and ``mode``.
"""

import logging
import sys
from pathlib import PurePath
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Loggers that chatter at DEBUG without saying anything about the run
_QUIET_LOGGERS: tuple[str, ...] = (
    "asyncio",
    "concurrent.futures",
    "markdown_it",
    "dynaconf",
)


def _drop_formatter_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    # Always present when the record came through ProcessorFormatter
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _render_paths(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Render Path values (and tuples of them) as plain strings."""
    for key, value in event_dict.items():
        if isinstance(value, PurePath):
            event_dict[key] = str(value)
        elif isinstance(value, tuple | list) and value and all(isinstance(v, PurePath) for v in value):
            event_dict[key] = [str(v) for v in value]
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
) -> None:
    """Configure structlog and stdlib logging for a run.

    Args:
        json_output: Render JSON lines instead of the console format
        level: Root log level name (DEBUG, INFO, WARNING, ERROR)
    """
    log_level = getattr(logging, level.upper())

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        _render_paths,
    ]

    if json_output:
        renderers: list[Any] = [
            _drop_formatter_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [
            _drop_formatter_fields,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure logging between runs
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=renderers, foreign_pre_chain=shared_processors))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    quiet_level = max(log_level, logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def bind_run(run_name: str, mode: str) -> None:
    """Attach the run's identity to every subsequent record in this context."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_name=run_name, mode=mode)


def unbind_run() -> None:
    structlog.contextvars.unbind_contextvars("run_name", "mode")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Bound structlog logger for ``name`` (typically __name__)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
