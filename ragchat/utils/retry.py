"""Bounded retry for transient provider failures.

Every attempt is reduced to an explicit :class:`AttemptResult` so the
retry loop decides on an ``outcome`` value instead of on exception types
scattered across call sites:

- ``SUCCESS``   -- return the value
- ``RETRIABLE`` -- rate limits, provider outages, timeouts; back off and retry
- ``FATAL``     -- anything else; stop immediately

:func:`call_with_retry` raises :class:`ProviderError` once the attempt
budget is spent.  Cancellation is never caught here.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

import structlog

from ragchat.utils.errors import (
    ProviderError,
    ProviderUnavailableError,
    RagChatError,
    RateLimitError,
)

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 8.0


class Outcome(str, Enum):
    """Classification of a single provider attempt."""

    SUCCESS = "success"
    RETRIABLE = "retriable"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptResult(Generic[_T]):
    """Result of one provider attempt: a value or a classified error."""

    outcome: Outcome
    value: _T | None = None
    error: Exception | None = None


def classify_error(exc: Exception) -> Outcome:
    """Map an exception raised by a provider call to an :class:`Outcome`."""
    if isinstance(exc, (RateLimitError, ProviderUnavailableError, asyncio.TimeoutError)):
        return Outcome.RETRIABLE
    return Outcome.FATAL


async def attempt(operation: Callable[[], Awaitable[_T]]) -> AttemptResult[_T]:
    """Run *operation* once and wrap the result in an :class:`AttemptResult`."""
    try:
        value = await operation()
    except Exception as exc:
        return AttemptResult(outcome=classify_error(exc), error=exc)
    return AttemptResult(outcome=Outcome.SUCCESS, value=value)


def backoff_delay(attempt_number: int, base_delay: float, max_delay: float = DEFAULT_MAX_DELAY) -> float:
    """Exponential backoff for the 1-based *attempt_number*, capped at *max_delay*."""
    return min(base_delay * (2 ** (attempt_number - 1)), max_delay)


async def call_with_retry(
    operation: Callable[[], Awaitable[_T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    operation_name: str = "provider_call",
    provider_name: str | None = None,
) -> _T:
    """Await *operation* with at most *max_attempts* tries.

    Parameters
    ----------
    operation:
        Zero-argument coroutine factory.  Called once per attempt.
    max_attempts:
        Attempt budget (at least 1).
    base_delay:
        Delay in seconds before the second attempt; doubled each time.
    operation_name:
        Event label used in log lines and the final error message.
    provider_name:
        Copied onto the raised :class:`ProviderError`.

    Raises
    ------
    ProviderError
        When a fatal error occurs or every attempt was retriable.  Errors
        that are already part of the ragchat hierarchy are re-raised as is
        when fatal.
    """
    max_attempts = max(1, max_attempts)
    last_error: Exception | None = None

    for attempt_number in range(1, max_attempts + 1):
        result = await attempt(operation)

        if result.outcome is Outcome.SUCCESS:
            return result.value  # type: ignore[return-value]

        last_error = result.error
        if result.outcome is Outcome.FATAL:
            logger.warning(
                "provider_call_failed",
                operation=operation_name,
                attempt=attempt_number,
                error=str(last_error),
            )
            if isinstance(last_error, RagChatError):
                raise last_error
            raise ProviderError(
                message=f"{operation_name} failed: {last_error}",
                provider_name=provider_name,
            ) from last_error

        if attempt_number < max_attempts:
            delay = backoff_delay(attempt_number, base_delay, max_delay)
            logger.warning(
                "provider_call_retry",
                operation=operation_name,
                attempt=attempt_number,
                backoff_s=delay,
                error=str(last_error),
            )
            await asyncio.sleep(delay)

    raise ProviderError(
        message=f"{operation_name} failed after {max_attempts} attempts: {last_error}",
        provider_name=provider_name,
    ) from last_error
