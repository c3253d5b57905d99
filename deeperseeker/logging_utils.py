"""
Centralized logging and error classification for DeeperSeeker.

This module provides the structlog setup plus helpers that standardize how
operations are logged across the codebase:
- Structured logging with contextual information
- Error classification into stable log categories
- Performance timing for async operations
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure stdlib logging and structlog processors.

    Args:
        level: Log level name for the root logger
        json_output: Render JSON lines instead of the colored console format
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class ErrorClassifier:
    """Maps exceptions to the categories used in structured logs."""

    @staticmethod
    def classify_error(error: BaseException) -> str:
        """
        Classify an error into a log category.

        Args:
            error: The exception to classify

        Returns:
            Category name
        """
        if isinstance(error, asyncio.CancelledError):
            return "cancelled"
        # Client errors carry their own category
        category = getattr(error, "category", None)
        if isinstance(category, str):
            return category
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return "timeout_error"
        if isinstance(error, httpx.TransportError | ConnectionError):
            return "transport_error"
        if isinstance(error, ValidationError | ValueError | TypeError):
            return "parameter_error"
        return "unknown_error"


def log_operation(
    operation: str,
    *,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async with operation_context(
                operation,
                context={"function": func.__name__, **(context or {})},
                log_timing=log_timing,
            ):
                return await func(*args, **kwargs)

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager for operation logging.

    Args:
        operation: Description of the operation
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(
        operation=operation,
        **(context or {}),
    )

    operation_logger.debug("Operation started")
    start_time = time.perf_counter() if log_timing else None

    def _timing() -> dict[str, Any]:
        if start_time is None:
            return {}
        return {"duration_ms": round((time.perf_counter() - start_time) * 1000, 2)}

    try:
        yield operation_logger
    except asyncio.CancelledError:
        operation_logger.info("Operation cancelled", **_timing())
        raise
    except Exception as e:
        operation_logger.error(
            "Operation failed",
            error_type=type(e).__name__,
            error_category=ErrorClassifier.classify_error(e),
            error_message=str(e),
            **_timing(),
        )
        raise
    else:
        operation_logger.info("Operation completed successfully", **_timing())
