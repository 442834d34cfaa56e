"""Structured logging setup for Local Web Brain.

Log events are snake_case names with key/value context, rendered as JSON or
as console lines. Console output goes to stderr so command output on stdout
stays clean. HTTP client libraries are held at WARNING: their INFO records
carry full request URLs.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, List, Optional, Union

import structlog
from structlog.types import EventDict, Processor

# Third-party loggers whose INFO output leaks request details
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def add_exception_info(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Flatten ``exc_info`` into ``exception_type`` / ``exception_message`` fields.

    Accepts ``True``, an exception instance, or an ``exc_info`` tuple.
    """
    exc_info = event_dict.get('exc_info')
    if not exc_info:
        return event_dict

    if exc_info is True:
        exc_info = sys.exc_info()
    elif isinstance(exc_info, BaseException):
        exc_info = (type(exc_info), exc_info, exc_info.__traceback__)

    if isinstance(exc_info, tuple) and len(exc_info) == 3 and exc_info[0] is not None:
        event_dict.setdefault('exception_type', exc_info[0].__name__)
        event_dict.setdefault('exception_message', str(exc_info[1]))
    return event_dict


def _processors(json_format: bool) -> List[Processor]:
    renderer: Processor = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        add_exception_info,
        structlog.processors.format_exc_info,
        renderer,
    ]


def _handlers(
    level: int,
    log_file: Optional[Union[str, Path]],
    max_bytes: int,
    backup_count: int,
    console: bool,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []

    if console:
        handlers.append(logging.StreamHandler(sys.stderr))

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            filename=log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8',
        ))

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    enable_console: bool = True,
) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown means INFO)
        json_format: Render JSON lines instead of console output
        log_file: Optional rotating log file
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep
        enable_console: Also log to stderr

    Examples:
        >>> setup_logging(log_level="DEBUG")
        >>> setup_logging(json_format=True, log_file="logs/brain.json")
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=_handlers(level, log_file, max_bytes, backup_count, enable_console),
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def log_exception(
    logger: structlog.stdlib.BoundLogger,
    event: str,
    exception: BaseException,
    level: str = "error",
    **context: Any
) -> None:
    """Log an exception with its type, message and traceback.

    Examples:
        >>> try:
        ...     await crypto.decrypt(summary)
        ... except DecryptionFailure as e:
        ...     log_exception(logger, "decryption_failed", e, level="warning", url=url)
    """
    log_method = getattr(logger, level, logger.error)
    log_method(event, exc_info=exception, **context)
