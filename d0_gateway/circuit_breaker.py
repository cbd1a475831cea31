"""
Circuit breaker for provider calls

Opens after consecutive failures, lets trial calls through once the
recovery window has elapsed, and closes again after enough successes.
"""
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional

from core.logging import get_logger

from .types import CircuitBreakerConfig, CircuitBreakerState


class CircuitBreaker:
    """Per-provider circuit breaker"""

    def __init__(
        self,
        provider: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[Callable[[str, CircuitBreakerState], None]] = None,
    ):
        self.provider = provider
        self.config = config or CircuitBreakerConfig()
        self.logger = get_logger(f"circuit_breaker.{provider}", domain="d0")
        self._clock = clock
        self._on_state_change = on_state_change

        self._state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self._half_open_successes = 0
        self._opened_at = 0.0
        self._lock = Lock()

    def _transition(self, state: CircuitBreakerState) -> None:
        if state is self._state:
            return
        self.logger.info(f"Circuit for {self.provider}: {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change:
            self._on_state_change(self.provider, state)

    def _refresh(self) -> None:
        # Caller holds the lock
        if (
            self._state is CircuitBreakerState.OPEN
            and self._clock() - self._opened_at >= self.config.recovery_timeout_seconds
        ):
            self._half_open_successes = 0
            self._transition(CircuitBreakerState.HALF_OPEN)

    @property
    def state(self) -> CircuitBreakerState:
        with self._lock:
            self._refresh()
            return self._state

    def can_execute(self) -> bool:
        return self.state is not CircuitBreakerState.OPEN

    def record_success(self) -> None:
        with self._lock:
            self._refresh()
            if self._state is CircuitBreakerState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.success_threshold:
                    self.failure_count = 0
                    self._transition(CircuitBreakerState.CLOSED)
            else:
                self.failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self._refresh()
            self.failure_count += 1
            if self._state is CircuitBreakerState.HALF_OPEN or (
                self._state is CircuitBreakerState.CLOSED
                and self.failure_count >= self.config.failure_threshold
            ):
                self._opened_at = self._clock()
                self.logger.warning(f"Opening circuit for {self.provider} after {self.failure_count} failures")
                self._transition(CircuitBreakerState.OPEN)

    def get_state_info(self) -> Dict[str, Any]:
        state = self.state
        return {
            "provider": self.provider,
            "state": state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.config.failure_threshold,
            "can_execute": state is not CircuitBreakerState.OPEN,
        }

    def reset(self) -> None:
        with self._lock:
            self.failure_count = 0
            self._half_open_successes = 0
            self._transition(CircuitBreakerState.CLOSED)


_breakers: Dict[str, CircuitBreaker] = {}
_registry_lock = Lock()


def get_circuit_breaker(
    provider: str,
    on_state_change: Optional[Callable[[str, CircuitBreakerState], None]] = None,
) -> CircuitBreaker:
    """Process-wide breaker for a provider, shared by every client instance"""
    with _registry_lock:
        breaker = _breakers.get(provider)
        if breaker is None:
            breaker = CircuitBreaker(provider, on_state_change=on_state_change)
            _breakers[provider] = breaker
        return breaker


def reset_all_circuit_breakers() -> None:
    with _registry_lock:
        for breaker in _breakers.values():
            breaker.reset()
