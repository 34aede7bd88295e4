"""
Retry with Exponential Backoff.

Wraps an operation with bounded retries, exponential backoff with jitter,
and circuit-breaker-aware waiting: when the shared breaker rejects a call,
the strategy sleeps out the remaining cooldown and probes again instead of
burning a regular attempt.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Callable, Optional, ParamSpec, TypeVar

from ..errors import CLIENT_ERROR_CODES, ErrorCode, ErrorDetail, SDKError
from .circuit_breaker import CircuitBreaker, CircuitBreakerOpen

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Seconds-remaining marks at which a circuit-open wait is logged
COUNTDOWN_CHECKPOINTS = (58, 30, 15, 10, 5, 3, 2, 1)

DEFAULT_RETRYABLE_ERROR_CODES = frozenset({
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT_ERROR,
    ErrorCode.SERVER_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCode.RATE_LIMIT_EXCEEDED,
    ErrorCode.CIRCUIT_BREAKER_OPEN,
})

DEFAULT_RETRYABLE_HTTP_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior. Delays are in milliseconds."""
    max_attempts: int = 5
    base_delay: int = 500
    max_delay: int = 30000
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.25           # 0 disables jitter
    retryable_error_codes: frozenset = field(default=DEFAULT_RETRYABLE_ERROR_CODES)
    retryable_http_codes: frozenset = field(default=DEFAULT_RETRYABLE_HTTP_CODES)
    circuit_breaker_enabled: bool = True

    @classmethod
    def default(cls) -> "RetryConfig":
        return cls()

    @classmethod
    def conservative(cls) -> "RetryConfig":
        """Fewer, slower retries for rate-sensitive backends."""
        return cls(max_attempts=5, base_delay=2000, max_delay=60000, backoff_multiplier=2.0)

    @classmethod
    def aggressive(cls) -> "RetryConfig":
        """Quick retries, no jitter."""
        return cls(max_attempts=2, base_delay=500, max_delay=5000,
                   backoff_multiplier=1.5, jitter_factor=0.0)

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        return cls(max_attempts=1, circuit_breaker_enabled=False)


def calculate_delay(attempt: int, config: RetryConfig) -> int:
    """Backoff delay in whole milliseconds for a given attempt number."""
    # Exponential backoff, capped
    delay = config.base_delay * (config.backoff_multiplier ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter_factor > 0:
        delay = delay * (1 + random.uniform(-config.jitter_factor, config.jitter_factor))

    return int(max(0, delay))


def _error_code(exc: Exception) -> Optional[ErrorCode]:
    code = getattr(exc, "code", None)
    return code if isinstance(code, ErrorCode) else None


def _http_status(exc: Exception) -> Optional[int]:
    if isinstance(exc, SDKError):
        return exc.http_status
    try:
        return int(getattr(exc, "http_status", None))
    except (TypeError, ValueError):
        return None


def is_client_error(exc: Exception) -> bool:
    """True for 4xx-class failures (other than 408/429) that retrying cannot fix."""
    status = _http_status(exc)
    if status is not None and 400 <= status < 500 and status not in (408, 429):
        return True
    return _error_code(exc) in CLIENT_ERROR_CODES


class RetryStrategy:
    """
    Executes operations with retry, backoff and circuit breaker integration.

    Usage:
        strategy = RetryStrategy(RetryConfig(), circuit_breaker=shared_cb)
        response = strategy.execute(lambda: send(body), "send_unify_request")
    """

    def __init__(
        self,
        config: RetryConfig = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config or RetryConfig()
        self.circuit_breaker = circuit_breaker if self.config.circuit_breaker_enabled else None

    def calculate_delay(self, attempt: int) -> int:
        return calculate_delay(attempt, self.config)

    def should_retry(self, exc: Exception, attempt: int) -> bool:
        """Decide whether a failure on *attempt* is worth another try."""
        if isinstance(exc, CircuitBreakerOpen):
            return True

        if attempt >= self.config.max_attempts:
            return False

        if is_client_error(exc):
            return False

        # Every operation gets at least one redrive
        if attempt == 1:
            return True

        if getattr(exc, "retryable", False):
            return True

        if _error_code(exc) in self.config.retryable_error_codes:
            return True

        status = _http_status(exc)
        return status is not None and status in self.config.retryable_http_codes

    def _invoke(self, operation: Callable[[], T]) -> T:
        if self.circuit_breaker is not None:
            return self.circuit_breaker.execute(operation)
        return operation()

    def _wait_for_circuit(self, exc: CircuitBreakerOpen, operation_name: str) -> None:
        """Sleep out the remaining cooldown, logging at countdown checkpoints."""
        remaining = exc.remaining_seconds
        logger.warning(
            f"Circuit '{exc.name}' open during {operation_name}, "
            f"waiting {remaining:.1f}s before recovery attempt"
        )

        for checkpoint in COUNTDOWN_CHECKPOINTS:
            if remaining > checkpoint:
                time.sleep(remaining - checkpoint)
                remaining = checkpoint
                logger.info(f"{checkpoint} seconds remaining until circuit '{exc.name}' probe")

        if remaining > 0:
            time.sleep(remaining)

        logger.info(f"Circuit cooldown complete, attempting recovery for {operation_name}")

    def execute(self, operation: Callable[[], T], operation_name: str = "operation") -> T:
        """
        Run *operation* until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument callable
            operation_name: Label used in log messages

        Returns:
            Result from the successful call

        Raises:
            Exception: The last failure once retries are exhausted or the
                failure is not retryable
        """
        attempt = 1
        circuit_waits = 0
        last_exception: Optional[Exception] = None

        while attempt <= self.config.max_attempts:
            try:
                result = self._invoke(operation)
                if attempt > 1:
                    logger.info(f"{operation_name} succeeded on attempt {attempt}")
                return result

            except CircuitBreakerOpen as e:
                # Waits have their own budget of max_attempts, separate from regular attempts
                last_exception = e
                if circuit_waits >= self.config.max_attempts:
                    logger.warning(
                        f"Circuit '{e.name}' still open after {circuit_waits} waits, giving up on {operation_name}"
                    )
                    raise
                circuit_waits += 1
                self._wait_for_circuit(e, operation_name)

            except Exception as e:
                last_exception = e

                if not self.should_retry(e, attempt):
                    if attempt >= self.config.max_attempts:
                        logger.warning(
                            f"All {self.config.max_attempts} attempts failed for {operation_name}: {e}"
                        )
                    else:
                        logger.debug(f"Not retrying {operation_name}: {type(e).__name__}: {e}")
                    raise

                delay = self.calculate_delay(attempt)
                logger.info(
                    f"Retry {attempt}/{self.config.max_attempts} for {operation_name} "
                    f"after {delay}ms: {type(e).__name__}: {e}"
                )
                time.sleep(delay / 1000)
                attempt += 1

        if last_exception is not None:
            raise last_exception
        raise SDKError(ErrorDetail.max_retries_exceeded(operation_name, self.config.max_attempts))


def retry(config: RetryConfig = None, circuit_breaker: Optional[CircuitBreaker] = None):
    """
    Decorator for retry with backoff.

    Usage:
        @retry(RetryConfig.aggressive())
        def fetch_status(submission_id):
            ...
    """
    strategy = RetryStrategy(config, circuit_breaker)

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return strategy.execute(lambda: func(*args, **kwargs), func.__name__)
        return wrapper

    return decorator
