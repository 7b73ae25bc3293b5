# src/flowstage/core/logging.py
"""Structured logging configuration for flowstage.

Stages receive a bound structlog logger as their logging collaborator and
call it with a level, a message and, for failures, the causing exception:

    logger.error("Failed to read the flowfile", record_id=..., exc_info=cause)

stdlib records are routed through structlog's processor chain by a
ProcessorFormatter on the root handler, so both kinds of logger render the
same way (JSON lines or console text).

Each stage invocation runs inside ``invocation_context``; its stage and
session identifiers are attached to every event logged on that thread until
the invocation ends, whichever module emits them.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

# Never louder than WARNING, even when flowstage runs at DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = (
    "dynaconf",
    "urllib3",
    "urllib3.connectionpool",
)


def _remove_internal_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Drop ProcessorFormatter bookkeeping (``_record``, ``_from_structlog``)."""
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _shared_processors() -> list[Any]:
    """Processors applied to structlog and stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]


def _rendering_processors(json_output: bool) -> list[Any]:
    if json_output:
        # Tracebacks become a string field so each event stays one JSON line
        return [
            _remove_internal_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        _remove_internal_fields,
        structlog.dev.ConsoleRenderer(colors=False),
    ]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and stdlib logging for flowstage.

    Args:
        json_output: If True, output JSON lines. If False, human-readable.
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        stream: Destination, defaults to the current ``sys.stdout``.
    """
    log_level = getattr(logging, level.upper())
    shared_processors = _shared_processors()

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Caching disabled so tests can reconfigure logging
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(
        ProcessorFormatter(
            processors=_rendering_processors(json_output),
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    noisy_level = max(log_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a bound logger for a module.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Bound structlog logger.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def invocation_context(stage: str, session_id: str) -> Iterator[None]:
    """Attach ``stage`` and ``session_id`` to every event logged in the block.

    Context is thread-local through contextvars, so concurrent invocations
    on a thread pool never see each other's identifiers.
    """
    with structlog.contextvars.bound_contextvars(stage=stage, session_id=session_id):
        yield
