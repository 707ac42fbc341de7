"""Resilient CMS transport: timeouts, retries and circuit breaking."""

from .circuit_breaker import CircuitBreaker, CircuitState
from .http_client import AsyncHTTPClient
from .retry_handler import RetryHandler, calculate_backoff_delay

__all__ = ["AsyncHTTPClient", "CircuitBreaker", "CircuitState", "RetryHandler", "calculate_backoff_delay"]
