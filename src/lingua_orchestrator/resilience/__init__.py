"""Resilience helpers for calls to unreliable external services."""

from lingua_orchestrator.resilience.retry import (
    RetryPolicy,
    execute_with_retry,
    get_retry_after,
    is_non_retryable_error,
    is_transient_error,
)

__all__ = [
    "RetryPolicy",
    "execute_with_retry",
    "get_retry_after",
    "is_non_retryable_error",
    "is_transient_error",
]
