"""
Error hierarchy and retry logic for external service calls.

This module provides:
- Error type hierarchy (retryable vs non-retryable)
- Mapping of httpx failures onto that hierarchy
- A tenacity-based retry decorator for transient HTTP failures

Only the HTTP clients retry. The execution pipeline treats any error that
escapes a client as a terminal failure for that attempt.

Usage:
    from launchsniper.retry import retry_transient, classify_http_error

    @retry_transient(max_attempts=3)
    async def fetch_quote():
        ...
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from .logging import get_logger

log = get_logger("retry")


# =============================================================================
# Error Type Hierarchy
# =============================================================================


class ErrorCategory(str, Enum):
    """Classification of error types for retry decisions."""

    TRANSIENT = "transient"  # Network issues, rate limits - should retry
    PERMANENT = "permanent"  # Bad request, rejected swap - should NOT retry
    UNKNOWN = "unknown"


class SniperError(Exception):
    """Base exception for all agent errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class TransientError(SniperError):
    """Error that may succeed on retry."""

    category = ErrorCategory.TRANSIENT


class NetworkError(TransientError):
    """Connection reset, DNS failure, read timeout."""

    pass


class RateLimitError(TransientError):
    """Rate limit exceeded - should retry after backoff."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, cause)
        self.retry_after = retry_after


class ServiceUnavailableError(TransientError):
    """External service returned a 5xx."""

    pass


class PermanentError(SniperError):
    """Error that will NOT succeed on retry."""

    category = ErrorCategory.PERMANENT


class QuoteError(PermanentError):
    """No route or invalid quote request."""

    pass


class SwapError(PermanentError):
    """Swap transaction could not be built, signed or submitted."""

    pass


class ConfirmationError(PermanentError):
    """Submitted transaction failed or was not confirmed."""

    pass


class WalletError(PermanentError):
    """Wallet RPC call failed."""

    pass


class ConfigurationError(PermanentError):
    """Unrecoverable startup condition."""

    pass


# =============================================================================
# Error Classification
# =============================================================================


def classify_http_error(error: Exception, context: str) -> SniperError:
    """Map an httpx exception onto the agent error hierarchy.

    Args:
        error: Exception raised by httpx.
        context: Short description of the failed operation.

    Returns:
        A TransientError for network faults, 429 and 5xx; a PermanentError otherwise.
    """
    if isinstance(error, SniperError):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        message = f"{context}: HTTP {status}"
        if status == 429:
            retry_after = error.response.headers.get("retry-after")
            return RateLimitError(
                message,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                cause=error,
            )
        if status >= 500:
            return ServiceUnavailableError(message, cause=error)
        return PermanentError(message, cause=error)

    if isinstance(error, httpx.TransportError):
        return NetworkError(f"{context}: {type(error).__name__}", cause=error)

    return PermanentError(f"{context}: {error}", cause=error)


# =============================================================================
# Retry Decorator
# =============================================================================

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 0.5
DEFAULT_MAX_WAIT_SECONDS = 4.0

F = TypeVar("F", bound=Callable[..., Any])


def _create_retry_callback(
    log_context: Optional[dict[str, Any]] = None,
) -> Callable[[RetryCallState], None]:
    """Create a before-sleep callback that logs each retry."""
    context = log_context or {}

    def callback(state: RetryCallState) -> None:
        exception = state.outcome.exception() if state.outcome else None
        log.warning(
            "Retrying external call",
            attempt=state.attempt_number,
            error=str(exception) if exception else None,
            error_type=type(exception).__name__ if exception else None,
            wait_seconds=state.next_action.sleep if state.next_action else 0,
            **context,
        )

    return callback


def retry_transient(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
    log_context: Optional[dict[str, Any]] = None,
) -> Callable[[F], F]:
    """Decorator to retry an async function on TransientError with jittered backoff.

    Args:
        max_attempts: Maximum number of attempts (including initial).
        min_wait: Minimum wait time between retries in seconds.
        max_wait: Maximum wait time between retries in seconds.
        log_context: Additional context for log messages.

    Returns:
        Decorator function.
    """

    def decorator(func: F) -> F:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError("retry_transient only supports async functions")

        callback = _create_retry_callback(log_context)
        wait_strategy = wait_random_exponential(min=min_wait, max=max_wait)

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_strategy,
                retry=retry_if_exception_type(TransientError),
                before_sleep=callback,
                reraise=True,
            ):
                with attempt:
                    return await func(*args, **kwargs)

        return async_wrapper  # type: ignore

    return decorator
