"""
Resilience module for delivering submissions despite outages.

Provides:
- Circuit breaker shared by the client and the queue poller
- Retry with exponential backoff and circuit-aware waiting
- Persistent on-disk submission queue with background redelivery
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpen, CircuitState
from .locks import FileLock
from .queue import PersistentQueueManager, QueueStatus, is_successful_response
from .records import PayloadSubmission, PersistentSubmissionRecord
from .retry import RetryConfig, RetryStrategy, calculate_delay, retry

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "FileLock",
    "PersistentQueueManager",
    "QueueStatus",
    "is_successful_response",
    "PayloadSubmission",
    "PersistentSubmissionRecord",
    "RetryConfig",
    "RetryStrategy",
    "calculate_delay",
    "retry",
]
