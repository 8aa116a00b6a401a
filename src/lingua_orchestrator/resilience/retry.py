"""Retry with exponential backoff for calls to unreliable services.

An error is retried only when it looks transient (rate limits, gateway and
server errors, timeouts, dropped connections) and is not a known permanent
failure such as an invalid prompt or a policy violation. Permanent failures
are re-raised at once without consuming a retry.
"""

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from lingua_orchestrator.errors import EmbeddingProviderError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404, 422})
NON_RETRYABLE_MARKERS = ("invalid_prompt", "violating", "content_filter", "policy")
JITTER_RANGE = (0.1, 0.5)

_RETRY_AFTER_PATTERN = re.compile(r"retry after (\d+(?:\.\d+)?) second", re.IGNORECASE)


def _status_code(error: BaseException) -> int | None:
    """Extract an HTTP status code from the error, if it carries one."""
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _provider_message(error: BaseException) -> str | None:
    """Lower-cased text of a provider error, including an HTTP response body.

    Returns None for errors that did not come from a provider, whose
    messages may carry arbitrary names and paths.
    """
    if isinstance(error, EmbeddingProviderError):
        return str(error).lower()
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.text
        except httpx.ResponseNotRead:
            body = ""
        return f"{error} {body}".lower()
    return None


def is_non_retryable_error(error: BaseException) -> bool:
    """Whether the error is a permanent failure that retrying cannot fix.

    Message markers such as "policy" are only matched against provider
    errors.
    """
    if getattr(error, "transient", None) is False:
        return True

    message = _provider_message(error)
    if message is not None and any(marker in message for marker in NON_RETRYABLE_MARKERS):
        return True

    return _status_code(error) in NON_RETRYABLE_STATUS_CODES


def is_transient_error(error: BaseException) -> bool:
    """Whether the error is a transient failure worth retrying."""
    if getattr(error, "transient", None) is True:
        return True

    if _status_code(error) in TRANSIENT_STATUS_CODES:
        return True

    if isinstance(
        error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException, httpx.TransportError)
    ):
        return True
    if isinstance(error, ConnectionError):
        return True

    message = str(error).lower()
    return "timeout" in message or "timed out" in message


def get_retry_after(error: BaseException) -> float | None:
    """Return the wait the provider asked for, in seconds, if any."""
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)) and retry_after >= 0:
        return float(retry_after)

    if isinstance(error, httpx.HTTPStatusError):
        header = error.response.headers.get("retry-after")
        if header:
            try:
                return float(header)
            except ValueError:
                pass

    match = _RETRY_AFTER_PATTERN.search(str(error))
    if match:
        return float(match.group(1))
    return None


def next_delay(delay: float) -> float:
    """Double the delay and add jitter."""
    return delay * 2 + random.uniform(*JITTER_RANGE)


async def _wait(delay: float, cancel_event: asyncio.Event | None) -> None:
    if cancel_event is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise asyncio.CancelledError("Retry cancelled during backoff")


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    retry_predicate: Callable[[BaseException], bool] | None = None,
    *,
    cancel_event: asyncio.Event | None = None,
    operation_name: str = "operation",
) -> T:
    """Run an async operation, retrying transient failures with backoff.

    The operation runs at most max_retries + 1 times. Callers must make sure
    the operation is safe to repeat.

    Args:
        operation: Zero-argument coroutine factory to run
        max_retries: Number of retries after the first attempt
        initial_delay: Seconds to wait before the first retry
        retry_predicate: Decides whether an error is retryable
            (default: is_transient_error). Non-retryable errors are
            always re-raised immediately.
        cancel_event: When set, stops the loop before the next attempt
        operation_name: Name used in log messages

    Returns:
        The operation's result

    Raises:
        RetryExhaustedError: When every attempt failed with a retryable error
        asyncio.CancelledError: When cancel_event is set
        Exception: Any non-retryable error, unchanged
    """
    predicate = retry_predicate or is_transient_error
    delay = initial_delay
    attempt = 0

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise asyncio.CancelledError(f"{operation_name} cancelled")

        attempt += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if is_non_retryable_error(e) or not predicate(e):
                logger.debug(f"{operation_name} failed with non-retryable error: {e}")
                raise

            if attempt > max_retries:
                logger.error(f"{operation_name} failed after {attempt} attempts: {e}")
                raise RetryExhaustedError(e, attempt) from e

            wait = get_retry_after(e)
            if wait is None:
                wait = delay
            logger.warning(
                f"{operation_name} failed ({e}); retrying in {wait:.1f}s "
                f"(attempt {attempt} of {max_retries})"
            )
            await _wait(wait, cancel_event)
            delay = next_delay(delay)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters bundled for reuse across call sites."""

    max_retries: int = 3
    initial_delay: float = 1.0

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        retry_predicate: Callable[[BaseException], bool] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        operation_name: str = "operation",
    ) -> T:
        """Run an operation under this policy (see execute_with_retry)."""
        return await execute_with_retry(
            operation,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            retry_predicate=retry_predicate,
            cancel_event=cancel_event,
            operation_name=operation_name,
        )
