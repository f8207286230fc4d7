"""Resilience primitives for calls to the primary store."""

from media_catalog.resilience.circuit_breaker import (
    CallTimeoutError,
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitState,
    PassthroughBreaker,
)

__all__ = [
    "CallTimeoutError",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "PassthroughBreaker",
]
