"""
structlog setup, failure classification and per-operation log scopes.

Generation calls and streamed responses log through `operation_context`, so
every failure carries the same `error_category` and `duration_ms` fields.
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from writer_llm.llm.exceptions import (
    ConfigError,
    MalformedResponseError,
    MissingCredentialError,
    StreamingError,
    TransportError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(level: str | int = "INFO") -> None:
    """Route stdlib logging (and so structlog) at the given level."""
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ConfigError(f"Unknown logging level '{level}'")
        level = numeric
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger().setLevel(level)


class GenerationErrorHandler:
    """Error classification for structured failure logs."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """
        Classify an error into a log category.

        Args:
            error: The exception to classify

        Returns:
            Category name used as `error_category` in logs
        """
        if isinstance(error, ConfigError | ValidationError):
            return "config_error"
        if isinstance(error, MissingCredentialError):
            return "credential_error"
        if isinstance(error, TransportError):
            if error.status_code is None:
                return "connection_error"
            return "http_status_error"
        if isinstance(error, MalformedResponseError):
            return "response_format_error"
        if isinstance(error, StreamingError):
            return "streaming_error"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return "timeout_error"
        if isinstance(error, ConnectionError | OSError | httpx.TransportError):
            return "connection_error"
        if isinstance(error, ValueError | TypeError):
            return "parameter_error"
        return "unknown_error"


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
) -> AsyncIterator[Any]:
    """
    Log the start, outcome and duration of one operation.

    Failures are logged with an `error_category` and re-raised unchanged.
    A generator closed early (GeneratorExit) logs neither outcome.

    Yields:
        Logger bound to the operation name and context
    """
    operation_logger = logger.bind(operation=operation, **(context or {}))
    operation_logger.debug("Operation started")
    start_time = time.perf_counter()

    try:
        yield operation_logger
    except Exception as e:
        operation_logger.error(
            "Operation failed",
            error_type=type(e).__name__,
            error_category=GenerationErrorHandler.classify_error(e),
            error_message=str(e),
            duration_ms=_elapsed_ms(start_time),
        )
        raise

    operation_logger.info("Operation completed", duration_ms=_elapsed_ms(start_time))


def log_operation(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """Decorator form of `operation_context` for coroutine functions."""
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async with operation_context(
                operation, context={"function": func.__name__, **(context or {})}
            ):
                return await func(*args, **kwargs)

        return wrapper
    return decorator
