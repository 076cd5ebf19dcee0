"""
Resilience patterns for calls to external services.
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitState

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
]
