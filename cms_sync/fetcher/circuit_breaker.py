"""Circuit breaker implementation with explicit state management."""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Protocol

from cms_sync.models.data_models import CircuitBreakerState
from cms_sync.monitoring.logger import StructuredLogger


class Clock(Protocol):
    """Clock interface for testable time management."""

    def now(self) -> float:
        """Return current time in seconds."""
        ...


class WallClock:
    """Default clock implementation using time.time."""

    def now(self) -> float:
        """Return current epoch time in seconds."""
        return time.time()


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class _Circuit:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None
    next_attempt_time: Optional[float] = None
    trial_started_at: Optional[float] = None


def _to_datetime(ts: Optional[float]) -> Optional[datetime]:
    return datetime.fromtimestamp(ts, tz=timezone.utc) if ts is not None else None


class CircuitBreaker:
    """
    Circuit breaker with CLOSED/OPEN/HALF_OPEN states guarding CMS calls.

    - Opens after ``failure_threshold`` consecutive failures (default 5)
    - Stays open for ``recovery_timeout`` seconds (default 60)
    - Then half-opens: one trial call at a time is let through; a trial
      that never reports back is abandoned after another ``recovery_timeout``
    - A successful trial closes the circuit (after ``success_threshold``
      successes, default 1); a failed trial reopens it for another window
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 1,
        clock: Optional[Clock] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of consecutive failures before opening circuit
            recovery_timeout: Time to wait before attempting a half-open trial call
            success_threshold: Trial successes required to close from half-open
            clock: Clock interface for time management (defaults to WallClock)
            logger: Optional structured logger for state transitions
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.clock = clock or WallClock()
        self.logger = logger
        self._circuit = _Circuit()

    @property
    def state(self) -> CircuitState:
        """Current state, promoting OPEN to HALF_OPEN once the window has passed."""
        circuit = self._circuit
        if circuit.state == CircuitState.OPEN and circuit.next_attempt_time is not None:
            if self.clock.now() >= circuit.next_attempt_time:
                circuit.state = CircuitState.HALF_OPEN
                circuit.success_count = 0
                self._log_transition()
        return circuit.state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def allow_request(self) -> bool:
        """
        Decide whether a CMS call may proceed.

        Returns:
            True when closed, or when half-open and no trial call is in flight
            (the caller then owns that trial and must record its outcome);
            False otherwise
        """
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.OPEN:
            return False

        circuit = self._circuit
        now = self.clock.now()
        if circuit.trial_started_at is not None and now - circuit.trial_started_at < self.recovery_timeout:
            # Trial call already in flight
            return False
        circuit.trial_started_at = now
        return True

    def record_success(self) -> None:
        """Record successful CMS call."""
        circuit = self._circuit
        if self.state == CircuitState.HALF_OPEN:
            circuit.success_count += 1
            circuit.trial_started_at = None
            if circuit.success_count < self.success_threshold:
                return
        changed = circuit.state != CircuitState.CLOSED
        self._circuit = _Circuit()
        if changed:
            self._log_transition()

    def record_failure(self) -> None:
        """Record failed CMS call."""
        circuit = self._circuit
        now = self.clock.now()
        state = self.state

        circuit.failure_count += 1
        circuit.last_failure_time = now

        if state == CircuitState.HALF_OPEN or circuit.failure_count >= self.failure_threshold:
            # Failed trial, or threshold reached
            circuit.state = CircuitState.OPEN
            circuit.failure_count = max(circuit.failure_count, self.failure_threshold)
            circuit.next_attempt_time = now + self.recovery_timeout
            circuit.trial_started_at = None
            self._log_transition()

    def snapshot(self) -> CircuitBreakerState:
        """Point-in-time copy of breaker state for reporting."""
        is_open = self.is_open
        circuit = self._circuit
        return CircuitBreakerState(
            is_open=is_open,
            failure_count=circuit.failure_count,
            last_failure_time=_to_datetime(circuit.last_failure_time),
            next_attempt_time=_to_datetime(circuit.next_attempt_time),
        )

    def reset(self) -> None:
        """Force the circuit closed and forget all failures."""
        self._circuit = _Circuit()

    def _log_transition(self) -> None:
        if self.logger:
            self.logger.circuit_breaker_state(self._circuit.state.value, self._circuit.failure_count)
