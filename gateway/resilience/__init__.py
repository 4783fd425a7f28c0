"""Circuit breakers and the health report built from them."""

from gateway.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState

__all__ = ["CircuitBreaker", "CircuitBreakerRegistry", "CircuitState"]
