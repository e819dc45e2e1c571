"""
Application Logger

This module provides the logging setup shared by the gradebook engine:
a configured application logger, a JSON formatter for log shipping,
context adapters that stamp attempt/learner identifiers onto records,
and a timing decorator for engine operations.
"""

import os
import sys
import json
import time
import asyncio
import logging
import datetime
import functools
from typing import Any, Callable, Dict, Optional, TypeVar, Union

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
APP_LOGGER_NAME = "gradebook"

F = TypeVar('F', bound=Callable[..., Any])

__all__ = [
    'configure_logger',
    'get_logger',
    'LoggerAdapter',
    'JsonFormatter',
    'with_context',
    'app_logger',
    'log_execution_time'
]


class JsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as a single JSON object.

    Context attached through ``LoggerAdapter`` (the ``data`` extra) is
    merged into the top level of the object.
    """

    def __init__(self, datefmt: Optional[str] = None, *, indent: Optional[int] = None):
        super().__init__(datefmt=datefmt)
        self.indent = indent

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "logger": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        if record.exc_info:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        data = getattr(record, "data", None)
        if isinstance(data, dict):
            payload.update(data)

        return json.dumps(payload, indent=self.indent, default=str)


def configure_logger(
    name: str = APP_LOGGER_NAME,
    level: Union[str, int] = logging.INFO,
    format_string: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    use_json: bool = False,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure a logger with console and/or file handlers.

    Args:
        name: Logger name
        level: Log level name or number
        format_string: Format used by the plain-text formatter
        date_format: Date format used by the plain-text formatter
        use_json: Emit JSON records instead of plain text
        log_file: Optional path of a log file
        console_output: Whether to log to stdout

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    formatter: logging.Formatter
    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(format_string, date_format)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except (FileNotFoundError, PermissionError) as e:
            logger.warning(f"Could not create log file {log_file}: {e}")

    return logger


def get_logger(name: str, parent: Optional[logging.Logger] = None) -> logging.Logger:
    """Get a logger, optionally as a child of ``parent``."""
    if parent:
        return parent.getChild(name)
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that attaches a fixed context to every record.

    The context ends up in the ``data`` extra, which ``JsonFormatter``
    merges into its output.
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        super().__init__(logger, context or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs = dict(kwargs)
        extra = dict(kwargs.get('extra') or {})
        data = dict(extra.get('data') or {})
        data.update(self.extra)
        extra['data'] = data
        kwargs['extra'] = extra
        return msg, kwargs

    def with_context(self, **context: Any) -> 'LoggerAdapter':
        """Return a new adapter with ``context`` merged over the current one."""
        merged = dict(self.extra)
        merged.update(context)
        return LoggerAdapter(self.logger, merged)


def with_context(name: Optional[str] = None, **context: Any) -> LoggerAdapter:
    """Create a context adapter over ``name`` (or the application logger)."""
    logger = get_logger(name) if name else app_logger
    return LoggerAdapter(logger, context)


def get_app_logger() -> logging.Logger:
    """Get the application logger, configuring it on first use."""
    logger = logging.getLogger(APP_LOGGER_NAME)

    if not logger.handlers:
        return configure_logger(
            name=APP_LOGGER_NAME,
            level=os.environ.get("LOG_LEVEL", "INFO"),
            use_json=os.environ.get("LOG_JSON", "false").lower() == "true",
            log_file=os.environ.get("LOG_FILE"),
            console_output=True
        )

    return logger


app_logger = get_app_logger()


def log_execution_time(logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None) -> Callable[[F], F]:
    """
    Decorator that logs how long a function (sync or async) took.

    Successful calls are logged at DEBUG, failures at WARNING with the
    exception type; the exception itself is re-raised untouched.
    """
    def decorator(func: F) -> F:
        def _log(started: float, error: Optional[BaseException] = None) -> None:
            elapsed = time.perf_counter() - started
            target = logger or app_logger
            if error is None:
                target.debug(f"{func.__name__} executed in {elapsed:.3f} seconds")
            else:
                target.warning(
                    f"{func.__name__} failed after {elapsed:.3f} seconds: "
                    f"{type(error).__name__}: {error}"
                )

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _log(started, e)
                raise
            _log(started)
            return result

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _log(started, e)
                raise
            _log(started)
            return result

        return async_wrapper if asyncio.iscoroutinefunction(func) else wrapper  # type: ignore[return-value]
    return decorator
