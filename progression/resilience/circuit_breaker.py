"""Circuit breaker around the Postgres ledger store

When the database is down, store calls fail fast with CircuitBreakerError
instead of queueing on the connection pool.

State Machine:
    CLOSED (normal) → OPEN (failing fast) → HALF_OPEN (testing) → CLOSED/OPEN
"""

import pybreaker
import logging
from typing import Callable, Any, TypeVar
from functools import wraps

from progression.config import STORE_BREAKER_FAIL_MAX, STORE_BREAKER_RESET_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Listener to log circuit breaker state changes and emit metrics"""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        """Called when circuit breaker changes state"""
        old_name = old_state.name if old_state else "none"
        logger.warning(f"[CIRCUIT_BREAKER] {cb.name}: {old_name} → {new_state.name}")

        from progression.observability.metrics import record_breaker_state
        record_breaker_state(cb.name, new_state.name)

    def failure(self, cb: pybreaker.CircuitBreaker, exc: Exception) -> None:
        """Called when circuit breaker records a failure"""
        logger.error(f"[CIRCUIT_BREAKER] {cb.name} recorded failure: {type(exc).__name__}: {exc}")

    def success(self, cb: pybreaker.CircuitBreaker) -> None:
        logger.debug(f"[CIRCUIT_BREAKER] {cb.name} recorded success")


STORE_BREAKER = pybreaker.CircuitBreaker(
    fail_max=STORE_BREAKER_FAIL_MAX,
    reset_timeout=STORE_BREAKER_RESET_SECONDS,
    name="ledger_store",
    listeners=[CircuitBreakerListener()]
)


def with_circuit_breaker(breaker: pybreaker.CircuitBreaker) -> Callable:
    """
    Decorator to wrap async functions with circuit breaker protection.

    When the circuit is OPEN, calls fail immediately with CircuitBreakerError
    instead of attempting to call the underlying function.

    Example:
        @with_circuit_breaker(STORE_BREAKER)
        async def fetch_row():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                # The breaker's RLock is thread-scoped; calls on one event loop still overlap
                return await breaker.call_async(func, *args, **kwargs)
            except pybreaker.CircuitBreakerError:
                logger.warning(f"[CIRCUIT_BREAKER] {breaker.name} is OPEN - failing fast")
                raise
        return wrapper
    return decorator
