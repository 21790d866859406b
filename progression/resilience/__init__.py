"""Resilience patterns for the ledger store"""

from progression.resilience.circuit_breaker import (
    STORE_BREAKER,
    CircuitBreakerListener,
    with_circuit_breaker,
)

__all__ = [
    "STORE_BREAKER",
    "CircuitBreakerListener",
    "with_circuit_breaker",
]
