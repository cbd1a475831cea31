"""
Prometheus metrics for D0 Gateway monitoring
"""
from typing import Any, Dict

from prometheus_client import Counter, Gauge, Histogram

from core.logging import get_logger

from .types import CircuitBreakerState

CIRCUIT_STATE_VALUES = {
    CircuitBreakerState.CLOSED: 0,
    CircuitBreakerState.OPEN: 1,
    CircuitBreakerState.HALF_OPEN: 2,
}


class GatewayMetrics:
    """Prometheus metrics collector for D0 Gateway"""

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.logger = get_logger("gateway.metrics", domain="d0")

        self.api_calls_total = Counter(
            "enrichment_gateway_api_calls_total",
            "Total number of API calls made through gateway",
            ["provider", "endpoint", "status_code"],
        )

        self.api_latency_seconds = Histogram(
            "enrichment_gateway_api_latency_seconds",
            "API call latency in seconds",
            ["provider", "endpoint"],
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 30.0],
        )

        self.circuit_breaker_state = Gauge(
            "enrichment_gateway_circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=open, 2=half-open)",
            ["provider"],
        )

        self.quota_denials_total = Counter(
            "enrichment_gateway_quota_denials_total",
            "Requests refused because the daily quota was used up",
            ["service"],
        )

        self.quota_usage = Gauge(
            "enrichment_gateway_quota_usage",
            "Units of daily quota consumed",
            ["service"],
        )

        self.ai_provider_failures_total = Counter(
            "enrichment_gateway_ai_provider_failures_total",
            "AI completions that failed or returned unusable output",
            ["provider", "reason"],
        )

        self.__class__._initialized = True

    def record_api_call(self, provider: str, endpoint: str, status_code: int, duration: float) -> None:
        """Record an API call with metrics"""
        try:
            self.api_calls_total.labels(provider=provider, endpoint=endpoint, status_code=str(status_code)).inc()
            self.api_latency_seconds.labels(provider=provider, endpoint=endpoint).observe(duration)

            self.logger.debug(f"Recorded API call: {provider}/{endpoint} status={status_code} duration={duration:.3f}s")

        except Exception as e:
            self.logger.error(f"Failed to record API call metrics: {e}")

    def record_circuit_breaker_state(self, provider: str, state: CircuitBreakerState) -> None:
        try:
            self.circuit_breaker_state.labels(provider=provider).set(CIRCUIT_STATE_VALUES[state])
        except Exception as e:
            self.logger.error(f"Failed to record circuit breaker state: {e}")

    def record_quota_denied(self, service: str) -> None:
        try:
            self.quota_denials_total.labels(service=service).inc()
            self.logger.warning(f"Quota exhausted for {service}")
        except Exception as e:
            self.logger.error(f"Failed to record quota denial: {e}")

    def update_quota_usage(self, service: str, used: int) -> None:
        try:
            self.quota_usage.labels(service=service).set(used)
        except Exception as e:
            self.logger.error(f"Failed to update quota usage: {e}")

    def record_ai_failure(self, provider: str, reason: str) -> None:
        try:
            self.ai_provider_failures_total.labels(provider=provider, reason=reason).inc()
        except Exception as e:
            self.logger.error(f"Failed to record AI provider failure: {e}")

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Names of the collectors this gateway exports"""
        return {
            "metrics_enabled": True,
            "collectors": [
                "api_calls_total",
                "api_latency_seconds",
                "circuit_breaker_state",
                "quota_denials_total",
                "quota_usage",
                "ai_provider_failures_total",
            ],
        }
