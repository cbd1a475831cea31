"""
Gateway-specific exceptions
"""
from typing import Optional

from core.exceptions import EnrichmentEngineError


class GatewayError(EnrichmentEngineError):
    """Base exception for gateway domain"""

    pass


class APIProviderError(GatewayError):
    """Error from external API provider"""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int = None,
        response_data: dict = None,
    ):
        self.provider = provider
        self.response_data = response_data
        super().__init__(message=f"{provider}: {message}", status_code=status_code or 500)


class AuthenticationError(APIProviderError):
    """Authentication failed with API provider"""

    def __init__(self, provider: str, message: str = "Authentication failed", status_code: int = 401):
        super().__init__(provider, message, status_code=status_code)


class RateLimitExceededError(APIProviderError):
    """Provider answered 429"""

    def __init__(self, provider: str, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        message = "Rate limit exceeded"
        if retry_after:
            message += f", retry after {retry_after}s"
        super().__init__(provider, message, status_code=429)


class QuotaExceededError(GatewayError):
    """Daily quota for a metered service is used up"""

    SERVICE_LABELS = {
        "serpapi": "SerpAPI",
        "screenshots": "Screenshots",
        "pagespeed": "PageSpeed",
        "builtwith": "BuiltWith",
    }

    def __init__(self, service: str, reset_in: str):
        self.service = service
        self.reset_in = reset_in
        label = self.SERVICE_LABELS.get(service, service)
        super().__init__(
            message=f"Quota excedida para {label}. Reset en {reset_in}",
            error_code="QUOTA_EXCEEDED",
            details={"service": service, "reset_in": reset_in},
            status_code=429,
        )


class CircuitBreakerOpenError(GatewayError):
    """Circuit breaker is open, preventing API calls"""

    def __init__(self, provider: str, failure_count: int):
        self.provider = provider
        self.failure_count = failure_count
        super().__init__(
            f"Circuit breaker open for {provider} after {failure_count} failures",
            status_code=503,
        )


class InvalidResponseError(APIProviderError):
    """Invalid or unexpected response from API provider"""

    def __init__(self, provider: str, expected_format: str, received_data: str = None):
        message = f"Invalid response format, expected {expected_format}"
        super().__init__(provider, message, status_code=502, response_data={"received": received_data})


class TimeoutError(APIProviderError):
    """Request to API provider timed out"""

    def __init__(self, provider: str, timeout_seconds: float):
        message = f"Request timed out after {timeout_seconds}s"
        super().__init__(provider, message, status_code=408)


class ProviderNotConfiguredError(GatewayError):
    """No API key is configured for the provider"""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(
            f"Provider {provider} is not configured or disabled",
            error_code="PROVIDER_NOT_CONFIGURED",
            details={"provider": provider},
            status_code=400,
        )
