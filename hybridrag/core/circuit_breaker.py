"""
Circuit Breaker for external provider calls.

Wraps calls to the embedding provider and vector database so that a
failing upstream is isolated quickly instead of being hammered with
retries.

State machine
-------------
    CLOSED ──(failures >= threshold)──→ OPEN
    OPEN ──(reset timeout elapsed, next call)──→ HALF_OPEN
    HALF_OPEN ──(success)──→ CLOSED
    HALF_OPEN ──(failure)──→ OPEN

In CLOSED state a success resets the failure count, so only consecutive
failures trip the breaker. While OPEN, calls fail fast with
CircuitOpenError carrying the time until the next probe. In HALF_OPEN a
single probe call is admitted; concurrent calls are rejected until it
resolves.

Usage
-----
    breaker = CircuitBreaker(failure_threshold=5, reset_timeout=60.0)
    vectors = breaker.call(embedder.embed_documents, texts)
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from hybridrag.core.exceptions import CircuitOpenError
from hybridrag.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerState:
    """Point-in-time snapshot of a breaker."""

    state: CircuitState
    failure_count: int
    last_failure_time: Optional[float]
    retry_after_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "failureCount": self.failure_count,
            "lastFailureTime": self.last_failure_time,
            "retryAfterSeconds": round(self.retry_after_seconds, 2),
        }


class CircuitBreaker:
    """Thread-safe consecutive-failure circuit breaker.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        reset_timeout: Seconds to stay OPEN before admitting a probe.
        name: Label used in log messages.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        name: str = "vector-store",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if reset_timeout < 0:
            raise ValueError("reset_timeout must be non-negative")

        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def get_state(self) -> CircuitBreakerState:
        """Return a snapshot of the breaker state."""
        with self._lock:
            return CircuitBreakerState(
                state=self._state,
                failure_count=self._failure_count,
                last_failure_time=self._last_failure_time,
                retry_after_seconds=self._time_until_retry(),
            )

    def _time_until_retry(self) -> float:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        elapsed = self._clock() - self._opened_at
        return max(0.0, self.reset_timeout - elapsed)

    def _before_call(self) -> None:
        """Admit or reject a call, moving OPEN to HALF_OPEN when due."""
        with self._lock:
            if self._state == CircuitState.OPEN:
                remaining = self._time_until_retry()
                if remaining > 0:
                    raise CircuitOpenError(
                        f"Circuit '{self.name}' is OPEN; retry in {remaining:.1f}s",
                        retry_after_seconds=remaining,
                    )
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False
                logger.info("Circuit half-open, admitting probe", circuit=self.name)

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitOpenError(
                        f"Circuit '{self.name}' is HALF_OPEN; probe in flight",
                        retry_after_seconds=0.0,
                    )
                self._probe_in_flight = True

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info("Circuit closed after successful probe", circuit=self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None
            self._probe_in_flight = False

    def record_failure(self, error: Optional[BaseException] = None) -> None:
        with self._lock:
            now = self._clock()
            self._failure_count += 1
            self._last_failure_time = now
            self._probe_in_flight = False

            should_open = (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self.failure_threshold
            )
            if should_open and self._state != CircuitState.OPEN:
                self._state = CircuitState.OPEN
                self._opened_at = now
                logger.warning(
                    "Circuit opened",
                    circuit=self.name,
                    failures=self._failure_count,
                    error=str(error) if error else None,
                )

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Invoke ``func`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is OPEN (no call is made).
        """
        self._before_call()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        """Force the breaker back to CLOSED with a zero failure count."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._opened_at = None
            self._probe_in_flight = False
        logger.info("Circuit manually reset", circuit=self.name)
