"""
Unit tests for RetryPolicy.
"""
import pytest

from remote_file_browser.core.errors import ConfigurationError, ErrorCategory
from remote_file_browser.core.retry_policy import RetryPolicy


class TestRetryPolicy:
    """Test exponential backoff and retry decisions."""

    def test_delays_double_until_cap(self):
        policy = RetryPolicy(max_retries=6, base_delay=1.0, max_delay=10.0)
        delays = [policy.next_delay(n) for n in range(1, 7)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_delays_strictly_increase_below_cap(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=1000.0)
        delays = [policy.next_delay(n) for n in range(1, 11)]
        assert all(a < b for a, b in zip(delays, delays[1:]))

    def test_no_delay_before_first_attempt(self):
        assert RetryPolicy().next_delay(0) == 0.0

    def test_huge_attempt_is_capped(self):
        assert RetryPolicy(max_delay=10.0).next_delay(10_000) == 10.0

    @pytest.mark.parametrize("category", [
        ErrorCategory.CONNECTION_LOST,
        ErrorCategory.TIMEOUT,
        ErrorCategory.UNREACHABLE,
        ErrorCategory.REFUSED,
    ])
    def test_transport_errors_retried(self, category):
        policy = RetryPolicy(max_retries=3)
        assert policy.should_retry(category, 1)
        assert policy.should_retry(category, 3)
        assert not policy.should_retry(category, 4)

    @pytest.mark.parametrize("category", [
        ErrorCategory.AUTH_FAILURE,
        ErrorCategory.NOT_FOUND,
        ErrorCategory.ALREADY_EXISTS,
        ErrorCategory.UNKNOWN,
    ])
    def test_other_errors_never_retried(self, category):
        assert not RetryPolicy(max_retries=3).should_retry(category, 1)

    def test_zero_retries(self):
        assert not RetryPolicy(max_retries=0).should_retry(ErrorCategory.TIMEOUT, 1)

    def test_wait_uses_injected_sleep(self):
        slept = []
        policy = RetryPolicy(base_delay=0.25, sleep=slept.append)

        policy.wait(1)
        policy.wait(3)

        assert slept == [0.25, 1.0]

    def test_invalid_settings(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ConfigurationError):
            RetryPolicy(base_delay=-1)
