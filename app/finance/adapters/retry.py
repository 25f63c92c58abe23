"""
Retry helpers shared by the processor and accounting adapters.
"""

from __future__ import annotations

import random

from core.exceptions import ExternalServiceError


def is_retryable_error(error: Exception) -> bool:
    """
    Check if an external service error is transient.

    Only ExternalServiceError subclasses flagged `is_retryable` qualify;
    anything else is treated as permanent. Used by the accounting sync and
    the payout reconcile task to decide whether to schedule another attempt.
    """
    if isinstance(error, ExternalServiceError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Jitter prevents thundering herd when many jobs fail at the same moment.

    Args:
        attempt: Attempts already made (0-indexed)
        base: Base delay in seconds
        max_delay: Cap on the delay before jitter

    Returns:
        Delay in seconds with 0-25% jitter added

    Example:
        # base=60, max_delay=3600: attempt 0 -> 60-75s, attempt 1 -> 120-150s,
        # attempt 2 -> 240-300s. With the default max_delay every attempt is 60-75s.
        delay = backoff_delay(attempt=2, base=60, max_delay=3600)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter
