"""
Circuit Breaker Pattern Implementation.

Fails fast while the Unify API is known to be unhealthy so neither the
foreground client nor the background queue poller keeps hammering it.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Backend failing, calls are rejected until the cooldown elapses
- HALF_OPEN: Cooldown elapsed, the next call probes the backend

Transitions:
- CLOSED → OPEN: When consecutive failures reach the threshold
- OPEN → HALF_OPEN: When a call is attempted after the cooldown
- HALF_OPEN → CLOSED: If the probe succeeds
- HALF_OPEN → OPEN: If the probe fails

One instance is shared by reference between the APIClient and the
PersistentQueueManager, so all state access is serialized on a lock.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, ParamSpec, TypeVar

from ..errors import ErrorCode

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open and a call is rejected without running."""

    code = ErrorCode.CIRCUIT_BREAKER_OPEN
    retryable = True

    def __init__(self, name: str, remaining_seconds: float):
        self.name = name
        self.remaining_seconds = max(0.0, remaining_seconds)
        self.until = datetime.now(timezone.utc) + timedelta(seconds=self.remaining_seconds)
        super().__init__(
            f"Circuit breaker '{name}' is open. "
            f"Retry after {int(self.remaining_seconds) + 1} seconds"
        )


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 3           # Failures before opening
    reset_timeout_seconds: float = 60.0  # Cooldown in open state before a probe


@dataclass
class CircuitMetrics:
    """Counters for a circuit breaker."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_state_change: Optional[float] = None


class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Usage:
        cb = CircuitBreaker("unify_api")

        response = cb.execute(lambda: session.post(url, json=body))

        @cb
        def send(body):
            ...

        if cb.is_open():
            print(f"Backend down, {cb.remaining_seconds():.0f}s left")
    """

    def __init__(
        self,
        name: str = "unify_api",
        config: CircuitBreakerConfig = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0  # epoch ms
        self._metrics = CircuitMetrics()
        self._lock = threading.Lock()

        logger.info(
            f"Circuit breaker '{name}' initialized "
            f"(threshold={self.config.failure_threshold}, "
            f"timeout={self.config.reset_timeout_seconds}s)"
        )

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def last_failure_time(self) -> float:
        """Epoch milliseconds of the most recent failure, 0 if none."""
        with self._lock:
            return self._last_failure_time

    @property
    def metrics(self) -> CircuitMetrics:
        return self._metrics

    @staticmethod
    def _now_ms() -> float:
        return time.time() * 1000

    def _remaining_locked(self) -> float:
        elapsed = (self._now_ms() - self._last_failure_time) / 1000
        return self.config.reset_timeout_seconds - elapsed

    def remaining_seconds(self) -> float:
        """Seconds left in the cooldown, 0 when not open or already elapsed."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return 0.0
            return max(0.0, self._remaining_locked())

    def is_open(self) -> bool:
        """True while open and still inside the cooldown window."""
        with self._lock:
            return self._state == CircuitState.OPEN and self._remaining_locked() > 0

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._metrics.state_changes += 1
        self._metrics.last_state_change = time.time()
        logger.info(f"Circuit '{self.name}' transitioned: {old_state.value} → {new_state.value}")

    def _before_call(self) -> None:
        with self._lock:
            if self._state == CircuitState.OPEN:
                remaining = self._remaining_locked()
                if remaining > 0:
                    self._metrics.rejected_calls += 1
                    logger.warning(
                        f"Circuit '{self.name}' is open, rejecting call "
                        f"({remaining:.1f}s remaining)"
                    )
                    raise CircuitBreakerOpen(self.name, remaining)
                self._transition_to(CircuitState.HALF_OPEN)

    def _record_success(self) -> None:
        with self._lock:
            self._metrics.total_calls += 1
            self._metrics.successful_calls += 1
            if self._state == CircuitState.HALF_OPEN:
                self._failure_count = 0
                self._transition_to(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        with self._lock:
            self._metrics.total_calls += 1
            self._metrics.failed_calls += 1
            self._failure_count += 1
            self._last_failure_time = self._now_ms()

            if self._state != CircuitState.OPEN and self._failure_count >= self.config.failure_threshold:
                self._transition_to(CircuitState.OPEN)

    def execute(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """
        Execute function through the circuit breaker.

        Args:
            func: Operation to run
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Function result

        Raises:
            CircuitBreakerOpen: If circuit is open and the cooldown has not elapsed
            Exception: Any exception from the function
        """
        self._before_call()

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def __call__(self, func: Callable[P, T]) -> Callable[P, T]:
        """Use as decorator."""
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return self.execute(func, *args, **kwargs)
        return wrapper

    def reset(self) -> None:
        """Manually reset the circuit breaker to closed state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = 0.0
        logger.info(f"Circuit '{self.name}' manually reset")

    def to_dict(self) -> dict[str, Any]:
        """Snapshot for status reporting."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "remaining_seconds": (
                    max(0.0, self._remaining_locked())
                    if self._state == CircuitState.OPEN else 0.0
                ),
                "metrics": {
                    "total_calls": self._metrics.total_calls,
                    "successful_calls": self._metrics.successful_calls,
                    "failed_calls": self._metrics.failed_calls,
                    "rejected_calls": self._metrics.rejected_calls,
                    "state_changes": self._metrics.state_changes,
                },
                "config": {
                    "failure_threshold": self.config.failure_threshold,
                    "reset_timeout_seconds": self.config.reset_timeout_seconds,
                },
                "last_failure_at": datetime.fromtimestamp(
                    self._last_failure_time / 1000, tz=timezone.utc
                ).isoformat() if self._last_failure_time else None,
            }
