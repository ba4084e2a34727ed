"""Circuit breakers guarding the remote extraction backends."""

from .models import BreakerConfig, BreakerSnapshot, CircuitState
from .registry import DEFAULT_BREAKER_CONFIGS, CircuitBreaker, CircuitBreakerRegistry

__all__ = [
    "DEFAULT_BREAKER_CONFIGS",
    "BreakerConfig",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
]
