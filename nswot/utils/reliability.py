"""
Reliability patterns for nswot.

Provides retry with exponential backoff and the circuit breaker used to
guard vendor endpoints.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar

import httpx
import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_none,
    wait_random,
)
from tenacity.wait import wait_base

from nswot.core.exceptions import CircuitOpenError, LLMRequestError, RequestCancelledError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

NON_RETRYABLE_STATUSES = frozenset({400, 401, 403, 404})


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether a failed call is worth repeating.

    Network failures, 429 and 5xx are retryable. Caller, auth and permanent
    errors are not, and neither is a tripped circuit or a cancelled request.
    """
    if isinstance(error, (CircuitOpenError, RequestCancelledError)):
        return False

    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        if status in NON_RETRYABLE_STATUSES:
            return False
        return status == 429 or status >= 500

    if isinstance(error, LLMRequestError):
        return error.network

    return isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError))


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for :func:`call_with_retry`."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: bool = True
    jitter_max: float = 0.5

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before the n-th retry (1-based), without jitter."""
        return min(self.base_delay * (2 ** (retry_number - 1)), self.max_delay)


class wait_retry_after(wait_base):
    """Prefer a vendor-supplied Retry-After over the computed backoff."""

    def __init__(self, fallback: wait_base, max_delay: float):
        self.fallback = fallback
        self.max_delay = max_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(error, "retry_after", None)
        if isinstance(retry_after, (int, float)) and retry_after > 0:
            return min(float(retry_after), self.max_delay)
        return self.fallback(retry_state)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retry_scheduled",
        attempt=retry_state.attempt_number,
        delay_seconds=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
        error=str(error),
        error_type=type(error).__name__,
        status=getattr(error, "status_code", None),
    )


def call_with_retry(
    func: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Invoke ``func`` with retry and exponential backoff.

    Exhausting the retries re-raises the last error unchanged so callers see
    the original error kind.
    """
    policy = policy or RetryPolicy()

    backoff = wait_exponential(multiplier=policy.base_delay, max=policy.max_delay, exp_base=2)
    jitter = wait_random(0, policy.jitter_max) if policy.jitter else wait_none()

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_retry_after(backoff + jitter, policy.max_delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    return retrying(func)


class CircuitBreakerState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker pattern implementation.

    Consecutive tripping failures (network, 429, 5xx) open the circuit for
    ``recovery_timeout`` seconds. While open, calls fail fast with
    :class:`CircuitOpenError`. After the cool-down a single probe call is let
    through; concurrent callers keep failing fast until it settles.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        should_trip: Callable[[BaseException], bool] = is_retryable,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.should_trip = should_trip
        self._clock = clock

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self._state = CircuitBreakerState.CLOSED
        self._probe_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitBreakerState:
        with self._lock:
            if self._state == CircuitBreakerState.OPEN and self._should_attempt_reset():
                return CircuitBreakerState.HALF_OPEN
            return self._state

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Execute function with circuit breaker protection."""
        with self._lock:
            if self._state == CircuitBreakerState.OPEN:
                if not self._should_attempt_reset():
                    raise CircuitOpenError(
                        f"Circuit '{self.name}' is open. Try again in "
                        f"{self._seconds_until_retry():.0f}s.",
                        details={"breaker": self.name},
                    )
                self._state = CircuitBreakerState.HALF_OPEN
                logger.info("circuit_breaker_half_open", name=self.name)

            probing = self._state == CircuitBreakerState.HALF_OPEN
            if probing:
                if self._probe_in_flight:
                    raise CircuitOpenError(
                        f"Circuit '{self.name}' is half-open and a probe call is in flight.",
                        details={"breaker": self.name},
                    )
                self._probe_in_flight = True

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e, probing)
            raise

        self._on_success(probing)
        return result

    def reset(self) -> None:
        """Force the circuit closed and forget past failures."""
        with self._lock:
            self.failure_count = 0
            self.last_failure_time = None
            self._state = CircuitBreakerState.CLOSED
            self._probe_in_flight = False

    def _should_attempt_reset(self) -> bool:
        return (
            self.last_failure_time is not None
            and self._clock() >= self.last_failure_time + self.recovery_timeout
        )

    def _seconds_until_retry(self) -> float:
        if self.last_failure_time is None:
            return 0.0
        return max(0.0, self.last_failure_time + self.recovery_timeout - self._clock())

    def _on_success(self, probing: bool) -> None:
        with self._lock:
            self.failure_count = 0
            if probing:
                self._probe_in_flight = False
            if self._state == CircuitBreakerState.HALF_OPEN:
                self._state = CircuitBreakerState.CLOSED
                logger.info("circuit_breaker_closed", name=self.name)

    def _on_failure(self, error: BaseException, probing: bool) -> None:
        with self._lock:
            if probing:
                self._probe_in_flight = False
            if not self.should_trip(error):
                return

            self.failure_count += 1
            self.last_failure_time = self._clock()

            if probing or self.failure_count >= self.failure_threshold:
                self._state = CircuitBreakerState.OPEN
                logger.warning(
                    "circuit_breaker_opened",
                    name=self.name,
                    failure_count=self.failure_count,
                    threshold=self.failure_threshold,
                    error_type=type(error).__name__,
                )

    @property
    def status(self) -> Dict[str, Any]:
        """Get current circuit breaker status."""
        state = self.state
        with self._lock:
            return {
                "name": self.name,
                "state": state.value,
                "failure_count": self.failure_count,
                "seconds_until_retry": (
                    round(self._seconds_until_retry(), 1)
                    if state == CircuitBreakerState.OPEN
                    else 0.0
                ),
            }


# Process-wide registry: one breaker per logical endpoint
_breakers: Dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_circuit_breaker(
    name: str, failure_threshold: int = 5, recovery_timeout: float = 60.0
) -> CircuitBreaker:
    """Return the shared breaker for ``name``, creating it on first use."""
    with _registry_lock:
        breaker = _breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, failure_threshold, recovery_timeout)
            _breakers[name] = breaker
        return breaker


def get_circuit_breaker_status() -> Dict[str, Any]:
    """Get status of all circuit breakers."""
    with _registry_lock:
        breakers = list(_breakers.items())
    return {name: breaker.status for name, breaker in breakers}


def reset_circuit_breaker(name: str) -> bool:
    """Reset a circuit breaker by name."""
    with _registry_lock:
        breaker = _breakers.get(name)
    if breaker is None:
        return False
    breaker.reset()
    logger.info("circuit_breaker_reset", name=name)
    return True


def clear_circuit_breakers() -> None:
    """Drop every registered breaker."""
    with _registry_lock:
        _breakers.clear()
