"""
Tests for retry helpers.
"""

from unittest.mock import patch

import pytest

from core.exceptions import ValidationError
from finance.adapters import backoff_delay, is_retryable_error
from finance.exceptions import (
    AccountingRateLimitError,
    AccountingValidationError,
    StripeInvalidRequestError,
    StripeTimeoutError,
)


class TestIsRetryableError:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (StripeTimeoutError("timed out"), True),
            (AccountingRateLimitError("slow down"), True),
            (StripeInvalidRequestError("bad"), False),
            (AccountingValidationError("rejected"), False),
            (ValidationError("not external"), False),
            (RuntimeError("unknown"), False),
        ],
    )
    def test_classification(self, error, expected):
        assert is_retryable_error(error) is expected


class TestBackoffDelay:
    """Exponential growth with up to 25% jitter."""

    def test_without_jitter(self):
        with patch("finance.adapters.retry.random.uniform", return_value=0):
            assert backoff_delay(0, base=60, max_delay=3600) == 60
            assert backoff_delay(1, base=60, max_delay=3600) == 120
            assert backoff_delay(2, base=60, max_delay=3600) == 240

    def test_capped(self):
        with patch("finance.adapters.retry.random.uniform", return_value=0):
            assert backoff_delay(10, base=60, max_delay=3600) == 3600

    def test_jitter_bounds(self):
        for _ in range(50):
            delay = backoff_delay(1, base=60, max_delay=3600)
            assert 120 <= delay <= 150

    def test_default_cap(self):
        with patch("finance.adapters.retry.random.uniform", return_value=0):
            assert backoff_delay(1, base=60) == 60
