"""
Test circuit breaker pattern implementation
"""
import pytest

from d0_gateway.circuit_breaker import CircuitBreaker, get_circuit_breaker, reset_all_circuit_breakers
from d0_gateway.types import CircuitBreakerConfig, CircuitBreakerState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestCircuitBreakerStates:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def circuit_breaker(self, clock):
        """Create circuit breaker for testing"""
        config = CircuitBreakerConfig(failure_threshold=3, recovery_timeout_seconds=30, success_threshold=2)
        return CircuitBreaker("test_provider", config, clock=clock)

    def test_three_states_closed_open_half_open(self, circuit_breaker, clock):
        """Test that circuit breaker implements three states: closed/open/half-open"""
        assert circuit_breaker.state == CircuitBreakerState.CLOSED
        assert circuit_breaker.can_execute() is True

        for _ in range(3):
            circuit_breaker.record_failure()

        assert circuit_breaker.state == CircuitBreakerState.OPEN
        assert circuit_breaker.can_execute() is False

        clock.advance(31)
        assert circuit_breaker.can_execute() is True
        assert circuit_breaker.state == CircuitBreakerState.HALF_OPEN

        for _ in range(2):
            circuit_breaker.record_success()

        assert circuit_breaker.state == CircuitBreakerState.CLOSED

    def test_success_resets_failure_count_when_closed(self, circuit_breaker):
        circuit_breaker.record_failure()
        assert circuit_breaker.failure_count == 1

        circuit_breaker.record_success()
        assert circuit_breaker.failure_count == 0
        assert circuit_breaker.state == CircuitBreakerState.CLOSED

    def test_stays_open_until_recovery_timeout(self, circuit_breaker, clock):
        for _ in range(3):
            circuit_breaker.record_failure()

        clock.advance(29)
        assert circuit_breaker.can_execute() is False

    def test_failure_in_half_open_reopens(self, circuit_breaker, clock):
        for _ in range(3):
            circuit_breaker.record_failure()
        clock.advance(31)
        assert circuit_breaker.state == CircuitBreakerState.HALF_OPEN

        circuit_breaker.record_failure()
        assert circuit_breaker.state == CircuitBreakerState.OPEN

    def test_state_change_callback(self, clock):
        changes = []
        breaker = CircuitBreaker(
            "callback_provider",
            CircuitBreakerConfig(failure_threshold=1),
            clock=clock,
            on_state_change=lambda provider, state: changes.append((provider, state)),
        )

        breaker.record_failure()
        breaker.reset()

        assert changes == [
            ("callback_provider", CircuitBreakerState.OPEN),
            ("callback_provider", CircuitBreakerState.CLOSED),
        ]

    def test_state_info(self, circuit_breaker):
        circuit_breaker.record_failure()
        info = circuit_breaker.get_state_info()

        assert info["provider"] == "test_provider"
        assert info["state"] == "closed"
        assert info["failure_count"] == 1
        assert info["failure_threshold"] == 3
        assert info["can_execute"] is True


class TestCircuitBreakerRegistry:
    def test_registry_shares_breaker_per_provider(self):
        first = get_circuit_breaker("shared_provider")
        second = get_circuit_breaker("shared_provider")

        assert first is second
        assert get_circuit_breaker("other_provider") is not first

    def test_reset_all_closes_every_breaker(self):
        breaker = get_circuit_breaker("reset_provider")
        for _ in range(breaker.config.failure_threshold):
            breaker.record_failure()
        assert breaker.state == CircuitBreakerState.OPEN

        reset_all_circuit_breakers()

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0
