"""
Retry Utilities for Resilient Operations.

Retry logic with exponential backoff and jitter for transient failures in
external service calls (LLM APIs, embedding providers, vector databases).

    ┌─────────────────┐
    │  LLM Clients    │──┐
    ├─────────────────┤  │
    │  Embeddings     │──┼──→  @retry / batch_execute_with_retry
    ├─────────────────┤  │     (exponential backoff + jitter)
    │  Vector upserts │──┘
    └─────────────────┘

Components
----------
**@retry decorator**
    Wraps synchronous functions with retry logic:

        @retry(max_attempts=3, retryable_exceptions=(APIError,))
        def call_api(data: Any):
            return api.post(data)

**batch_execute_with_retry()**
    Runs an operation over a list of batches, retrying each batch
    independently. Exhausted batches are recorded and processing continues,
    so a single bad batch never aborts an ingestion run.

Backoff Strategy
----------------
Delay increases exponentially: `base_delay * (exponential_base ^ attempt)`,
capped at max_delay, plus 0-25% random jitter.
"""

import random
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from hybridrag.core.exceptions import CircuitOpenError
from hybridrag.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Substrings marking an error message as transient
RETRYABLE_MARKERS = (
    "network",
    "timeout",
    "timed out",
    "econnreset",
    "econnrefused",
    "etimedout",
    "enotfound",
    "socket hang up",
    "connection",
    "rate limit",
    "too many requests",
    "temporary",
    "unavailable",
)
RETRYABLE_STATUS_CODES = (408, 429, 500, 502, 503, 504)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception, attempts: int) -> None:
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool,
) -> float:
    """Calculate delay for next retry attempt."""
    delay = base_delay * (exponential_base**attempt)
    delay = min(delay, max_delay)

    # 0-25% random variation
    if jitter:
        delay += delay * 0.25 * random.random()

    return delay


def is_retryable_error(error: BaseException) -> bool:
    """Return True when an error looks transient.

    An open circuit is never retryable: retrying would only spin against
    the breaker until the cooldown elapses.
    """
    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True

    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if isinstance(status, int) and status in RETRYABLE_STATUS_CODES:
        return True

    message = str(error).lower()
    if any(marker in message for marker in RETRYABLE_MARKERS):
        return True
    return any(str(code) in message for code in RETRYABLE_STATUS_CODES)


def _log_retry_attempt(
    exception: Exception, attempt: int, max_attempts: int, delay: float, func_name: str
) -> None:
    logger.warning(
        f"Attempt {attempt + 1}/{max_attempts} failed, retrying in {delay:.2f}s",
        error=str(exception),
        function=func_name,
    )


def _log_final_failure(exception: Exception, max_attempts: int, func_name: str) -> None:
    logger.error(
        f"All {max_attempts} attempts failed",
        error=str(exception),
        function=func_name,
    )


def _handle_retry_attempt(
    exception: Exception,
    attempt: int,
    config: RetryConfig,
    func_name: str,
    on_retry: Optional[Callable[[Exception, int], None]],
) -> None:
    """
    Handle logic for a retry attempt (logging, delay, callback).

    Rule #1: Extracted helper reduces nesting

    Args:
        exception: Exception that triggered retry
        attempt: Current attempt number (0-based)
        config: Backoff settings
        func_name: Name of function being retried
        on_retry: Optional callback to invoke
    """
    if attempt >= config.max_attempts - 1:
        _log_final_failure(exception, config.max_attempts, func_name)
        return

    delay = calculate_delay(
        attempt,
        config.base_delay,
        config.max_delay,
        config.exponential_base,
        config.jitter,
    )
    _log_retry_attempt(exception, attempt, config.max_attempts, delay, func_name)

    if on_retry:
        on_retry(exception, attempt + 1)

    if delay > 0:
        time.sleep(delay)


def _execute_with_retry(
    func: Callable[..., Any],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    config: RetryConfig,
    on_retry: Optional[Callable[[Exception, int], None]],
    should_retry: Optional[Callable[[Exception], bool]] = None,
) -> Any:
    """
    Execute function with retry logic.

    Exceptions outside ``config.retryable_exceptions`` or rejected by
    ``should_retry`` propagate immediately.

    Raises:
        RetryError: If all attempts fail
    """
    last_exception: Optional[Exception] = None

    for attempt in range(config.max_attempts):
        try:
            return func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if should_retry is not None and not should_retry(e):
                raise
            last_exception = e
            _handle_retry_attempt(e, attempt, config, func.__name__, on_retry)

    raise RetryError(
        f"Failed after {config.max_attempts} attempts: {last_exception}",
        last_exception,  # type: ignore[arg-type]
        config.max_attempts,
    )


def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (including first try)
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries
        exponential_base: Base for exponential backoff
        jitter: Add random jitter to delays
        retryable_exceptions: Exception types to retry on
        on_retry: Callback(exception, attempt) called before each retry

    Example:
        @retry(retryable_exceptions=(ConnectionError, TimeoutError))
        def fetch_data() -> None:
            ...
    """
    config = RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        exponential_base=exponential_base,
        jitter=jitter,
        retryable_exceptions=retryable_exceptions or (Exception,),
    )

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return _execute_with_retry(func, args, kwargs, config, on_retry)

        return wrapper

    return decorator


@dataclass
class BatchFailure:
    """A batch that exhausted its retries."""

    batch_index: int
    size: int
    error: str
    error_type: str
    attempts: int


@dataclass
class BatchRunSummary(Generic[R]):
    """Outcome of batch_execute_with_retry."""

    results: List[Tuple[int, R]] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)
    total_time: float = 0.0

    @property
    def completed_batches(self) -> int:
        return len(self.results)

    @property
    def failed_indices(self) -> List[int]:
        return [f.batch_index for f in self.failures]


def batch_execute_with_retry(
    batches: Sequence[Sequence[T]],
    operation: Callable[[Sequence[T]], R],
    config: Optional[RetryConfig] = None,
    should_retry: Callable[[Exception], bool] = is_retryable_error,
) -> BatchRunSummary[R]:
    """Run ``operation`` over every batch, retrying each independently.

    A batch that fails with a non-retryable error, or exhausts its attempts,
    is recorded as a BatchFailure; remaining batches still run.

    Args:
        batches: Batches of items.
        operation: Callable applied to one batch.
        config: Backoff settings (defaults to RetryConfig()).
        should_retry: Predicate deciding whether an error is transient.

    Returns:
        BatchRunSummary with (batch_index, result) pairs and failures.
    """
    config = config or RetryConfig()
    summary: BatchRunSummary[R] = BatchRunSummary()
    start = time.perf_counter()

    for index, batch in enumerate(batches):
        try:
            result = _execute_with_retry(
                operation, (batch,), {}, config, None, should_retry
            )
            summary.results.append((index, result))
        except RetryError as e:
            summary.failures.append(
                _batch_failure(index, batch, e.last_exception, e.attempts)
            )
        except Exception as e:
            summary.failures.append(_batch_failure(index, batch, e, 1))

    summary.total_time = time.perf_counter() - start
    if summary.failures:
        logger.warning(
            "Batch run finished with failures",
            completed=summary.completed_batches,
            failed=len(summary.failures),
        )
    return summary


def _batch_failure(
    index: int, batch: Sequence[Any], error: Exception, attempts: int
) -> BatchFailure:
    logger.error(
        "Batch failed", batch_index=index, size=len(batch), error=str(error)
    )
    return BatchFailure(
        batch_index=index,
        size=len(batch),
        error=str(error),
        error_type=type(error).__name__,
        attempts=attempts,
    )


# =============================================================================
# Pre-configured retry decorators for common use cases
# =============================================================================

# LLM API calls (rate limits, timeouts): 1s -> 2s -> 4s
llm_retry = retry(
    max_attempts=3,
    base_delay=1.0,
    max_delay=30.0,
    exponential_base=2.0,
    jitter=True,
)
