"""
Circuit breaker for outbound provider calls.

Defaults:
- Failure threshold: 50% error rate over 1 minute (at least 10 requests)
- Open duration: 30 seconds
- Half-open: 10% of requests are let through as probes; 3 successes out
  of 5 probes close the circuit, otherwise it re-opens

An open circuit raises CircuitBreakerOpenError. Provider transports map it
to a SERVICE_UNAVAILABLE ProviderError so the fallback policy treats it
like any other outage.
"""
import time
from collections import deque
from enum import Enum
from threading import Lock
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from app.core.logging import get_logger
from app.core.metrics import update_circuit_breaker_state

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Probing recovery


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit rejects a call."""

    def __init__(self, name: str, state: CircuitState):
        super().__init__(f"Circuit breaker {name} is {state.value.upper()}; call rejected")
        self.name = name
        self.state = state


class CircuitBreaker:
    """Sliding-window error-rate circuit breaker."""

    HALF_OPEN_PROBES = 5
    HALF_OPEN_SUCCESSES_TO_CLOSE = 3

    def __init__(
        self,
        name: str,
        failure_threshold: float = 0.5,
        time_window_seconds: int = 60,
        open_duration_seconds: int = 30,
        half_open_test_percentage: float = 0.1,
        min_requests_for_threshold: int = 10,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.time_window_seconds = time_window_seconds
        self.open_duration_seconds = open_duration_seconds
        self.half_open_test_percentage = half_open_test_percentage
        self.min_requests_for_threshold = min_requests_for_threshold

        self._state = CircuitState.CLOSED
        self._lock = Lock()
        self._request_history: Deque[Tuple[float, bool]] = deque()
        self._opened_at: Optional[float] = None
        self._half_open_seen = 0
        self._half_open_successes = 0
        self._half_open_failures = 0
        update_circuit_breaker_state(self.name, self._state.value)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh(time.time())
            return self._state

    def _transition(self, new_state: CircuitState, now: float, **log_fields: Any) -> None:
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = now
            logger.warning("circuit_breaker_opened", circuit_breaker=self.name, **log_fields)
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_seen = 0
            self._half_open_successes = 0
            self._half_open_failures = 0
            logger.info("circuit_breaker_half_open", circuit_breaker=self.name)
        else:
            self._opened_at = None
            self._request_history.clear()
            logger.info("circuit_breaker_closed", circuit_breaker=self.name, **log_fields)
        update_circuit_breaker_state(self.name, new_state.value)

    def _refresh(self, now: float) -> None:
        """Expire old history and apply time- or rate-based transitions. Caller holds the lock."""
        cutoff = now - self.time_window_seconds
        while self._request_history and self._request_history[0][0] < cutoff:
            self._request_history.popleft()

        if self._state == CircuitState.OPEN:
            if self._opened_at is not None and now - self._opened_at >= self.open_duration_seconds:
                self._transition(CircuitState.HALF_OPEN, now)
        elif self._state == CircuitState.CLOSED:
            total = len(self._request_history)
            if total >= self.min_requests_for_threshold:
                failures = sum(1 for _, ok in self._request_history if not ok)
                error_rate = failures / total
                if error_rate >= self.failure_threshold:
                    self._transition(
                        CircuitState.OPEN,
                        now,
                        error_rate=error_rate,
                        failures=failures,
                        total=total,
                    )

    def _admit(self) -> None:
        """Raise CircuitBreakerOpenError unless this call may proceed."""
        with self._lock:
            self._refresh(time.time())
            if self._state == CircuitState.OPEN:
                raise CircuitBreakerOpenError(self.name, self._state)
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_seen += 1
                every = max(1, int(round(1 / self.half_open_test_percentage)))
                if self._half_open_seen % every != 0:
                    raise CircuitBreakerOpenError(self.name, self._state)

    def _record_result(self, success: bool) -> None:
        now = time.time()
        with self._lock:
            if self._state != CircuitState.HALF_OPEN:
                self._request_history.append((now, success))
                self._refresh(now)
                return

            if success:
                self._half_open_successes += 1
            else:
                self._half_open_failures += 1

            probes = self._half_open_successes + self._half_open_failures
            if probes >= self.HALF_OPEN_PROBES:
                if self._half_open_successes >= self.HALF_OPEN_SUCCESSES_TO_CLOSE:
                    self._transition(
                        CircuitState.CLOSED,
                        now,
                        success_count=self._half_open_successes,
                        failure_count=self._half_open_failures,
                    )
                else:
                    self._transition(
                        CircuitState.OPEN,
                        now,
                        reopened=True,
                        success_count=self._half_open_successes,
                        failure_count=self._half_open_failures,
                    )

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Execute a sync function under circuit breaker protection."""
        self._admit()
        try:
            result = func(*args, **kwargs)
        except Exception:
            self._record_result(False)
            raise
        self._record_result(True)
        return result

    async def call_async(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Execute an async function under circuit breaker protection."""
        self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._record_result(False)
            raise
        self._record_result(True)
        return result

    def get_metrics(self) -> dict:
        """Snapshot for health reporting."""
        with self._lock:
            self._refresh(time.time())
            total = len(self._request_history)
            failures = sum(1 for _, ok in self._request_history if not ok)
            return {
                "name": self.name,
                "state": self._state.value,
                "recent_requests": total,
                "recent_failures": failures,
                "error_rate": failures / total if total else 0.0,
                "opened_at": self._opened_at,
                "half_open_probes": self._half_open_successes + self._half_open_failures,
                "half_open_successes": self._half_open_successes,
                "half_open_failures": self._half_open_failures,
            }
