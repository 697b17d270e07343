"""
Tests for retry utilities.

Organization
------------
- TestCalculateDelay: Exponential backoff math
- TestIsRetryableError: Transient error detection
- TestRetryDecorator: @retry behavior
- TestBatchExecuteWithRetry: Per-batch retry with partial failure
"""

from unittest.mock import patch

import pytest

from hybridrag.core.exceptions import CircuitOpenError
from hybridrag.core.retry import (
    RetryConfig,
    RetryError,
    batch_execute_with_retry,
    calculate_delay,
    is_retryable_error,
    retry,
)


class _StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code


# ============================================================================
# Test Classes
# ============================================================================


class TestCalculateDelay:
    """Tests for calculate_delay."""

    def test_exponential_growth(self):
        delays = [calculate_delay(a, 1.0, 60.0, 2.0, jitter=False) for a in range(4)]

        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max(self):
        assert calculate_delay(10, 1.0, 5.0, 2.0, jitter=False) == 5.0

    def test_jitter_adds_at_most_quarter(self):
        for _ in range(20):
            delay = calculate_delay(1, 1.0, 60.0, 2.0, jitter=True)
            assert 2.0 <= delay <= 2.5


class TestIsRetryableError:
    """Tests for is_retryable_error."""

    def test_connection_and_timeout(self):
        assert is_retryable_error(ConnectionError("reset"))
        assert is_retryable_error(TimeoutError())

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_retryable_status_codes(self, status):
        assert is_retryable_error(_StatusError(status))

    def test_client_errors_not_retryable(self):
        assert not is_retryable_error(ValueError("bad input"))

    def test_message_markers(self):
        assert is_retryable_error(RuntimeError("ECONNRESET while reading"))
        assert is_retryable_error(RuntimeError("Service temporarily unavailable"))

    def test_open_circuit_never_retryable(self):
        assert not is_retryable_error(CircuitOpenError("network is down", retry_after_seconds=1))


class TestRetryDecorator:
    """Tests for @retry."""

    def test_succeeds_after_transient_failures(self):
        calls = []

        @retry(max_attempts=3, base_delay=0)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_raises_retry_error_when_exhausted(self):
        @retry(max_attempts=2, base_delay=0)
        def broken():
            raise ConnectionError("down")

        with pytest.raises(RetryError) as exc_info:
            broken()

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, ConnectionError)

    def test_non_matching_exceptions_propagate(self):
        @retry(max_attempts=3, base_delay=0, retryable_exceptions=(ConnectionError,))
        def wrong():
            raise KeyError("x")

        with pytest.raises(KeyError):
            wrong()

    def test_on_retry_callback(self):
        seen = []

        @retry(max_attempts=3, base_delay=0, on_retry=lambda e, n: seen.append(n))
        def broken():
            raise ConnectionError("down")

        with pytest.raises(RetryError):
            broken()

        assert seen == [1, 2]

    def test_sleeps_between_attempts(self):
        @retry(max_attempts=3, base_delay=1.0, jitter=False)
        def broken():
            raise ConnectionError("down")

        with patch("hybridrag.core.retry.time.sleep") as sleep:
            with pytest.raises(RetryError):
                broken()

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]


class TestBatchExecuteWithRetry:
    """Tests for batch_execute_with_retry."""

    def test_all_batches_succeed(self):
        summary = batch_execute_with_retry([[1, 2], [3]], lambda b: sum(b))

        assert summary.results == [(0, 3), (1, 3)]
        assert summary.failures == []
        assert summary.completed_batches == 2

    def test_failed_batch_does_not_abort_run(self):
        def operation(batch):
            if batch == ["bad"]:
                raise ConnectionError("provider down")
            return len(batch)

        config = RetryConfig(max_attempts=3, base_delay=0, jitter=False)
        summary = batch_execute_with_retry([["a"], ["bad"], ["c", "d"]], operation, config)

        assert summary.results == [(0, 1), (2, 2)]
        assert summary.failed_indices == [1]
        failure = summary.failures[0]
        assert failure.attempts == 3
        assert failure.error_type == "ConnectionError"
        assert failure.size == 1

    def test_non_retryable_fails_fast(self):
        calls = []

        def operation(batch):
            calls.append(batch)
            raise ValueError("malformed")

        config = RetryConfig(max_attempts=3, base_delay=0)
        summary = batch_execute_with_retry([["x"]], operation, config)

        assert len(calls) == 1
        assert summary.failures[0].attempts == 1

    def test_open_circuit_not_retried(self):
        calls = []

        def operation(batch):
            calls.append(batch)
            raise CircuitOpenError("open", retry_after_seconds=30)

        summary = batch_execute_with_retry([["x"], ["y"]], operation, RetryConfig(base_delay=0))

        assert len(calls) == 2
        assert summary.failed_indices == [0, 1]
        assert summary.failures[0].error_type == "CircuitOpenError"
