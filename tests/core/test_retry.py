"""Tests for retry utilities."""

from unittest.mock import MagicMock, patch

import pytest

from ridehail.core.exceptions import (
    ConcurrentModificationError,
    PermanentError,
    TransientError,
    ValidationError,
)
from ridehail.core.retry import RetryConfig, with_retry_sync


@pytest.mark.unit
class TestRetryConfig:
    def test_default_config(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 0.5
        assert config.multiplier == 2.0
        assert config.max_delay == 30.0
        assert config.retryable_exceptions == (TransientError,)


@pytest.mark.unit
class TestWithRetrySync:
    def test_success_first_attempt(self):
        operation = MagicMock(return_value="ok")
        assert with_retry_sync(operation) == "ok"
        assert operation.call_count == 1

    @patch("ridehail.core.retry.time.sleep")
    def test_retries_transient_then_succeeds(self, mock_sleep):
        operation = MagicMock(side_effect=[ConcurrentModificationError("lost race"), "ok"])
        config = RetryConfig(max_attempts=3, base_delay=0.1)

        assert with_retry_sync(operation, config) == "ok"
        assert operation.call_count == 2
        mock_sleep.assert_called_once_with(0.1)

    @patch("ridehail.core.retry.time.sleep")
    def test_exponential_backoff_capped(self, mock_sleep):
        operation = MagicMock(side_effect=TransientError("down"))
        config = RetryConfig(max_attempts=4, base_delay=1.0, multiplier=2.0, max_delay=3.0)

        with pytest.raises(TransientError):
            with_retry_sync(operation, config)

        assert operation.call_count == 4
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0, 3.0]

    def test_permanent_error_not_retried(self):
        operation = MagicMock(side_effect=ValidationError("bad input"))

        with pytest.raises(PermanentError):
            with_retry_sync(operation, RetryConfig(max_attempts=5))

        assert operation.call_count == 1

    @patch("ridehail.core.retry.time.sleep")
    def test_custom_retryable_exceptions(self, mock_sleep):
        operation = MagicMock(side_effect=[ValueError("flaky"), "ok"])
        config = RetryConfig(max_attempts=2, retryable_exceptions=(ValueError,))

        assert with_retry_sync(operation, config, operation_name="flaky op") == "ok"
