"""
Base API client with common functionality for all external API providers
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from core.config import get_settings
from core.logging import get_logger

from .circuit_breaker import get_circuit_breaker
from .exceptions import (
    APIProviderError,
    AuthenticationError,
    CircuitBreakerOpenError,
    InvalidResponseError,
    RateLimitExceededError,
    TimeoutError,
)
from .metrics import GatewayMetrics


class BaseAPIClient(ABC):
    """Abstract base class for all external API clients"""

    def __init__(
        self,
        provider: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider = provider
        self.settings = get_settings()
        self.logger = get_logger(f"gateway.{provider}", domain="d0")

        self.api_key = api_key if api_key is not None else self._configured_key()
        self.base_url = base_url or self._get_base_url()
        self.timeout = timeout or self._get_timeout()

        # Gateway components
        self.metrics = GatewayMetrics()
        self.circuit_breaker = get_circuit_breaker(provider, on_state_change=self.metrics.record_circuit_breaker_state)

        # Headers are attached per request so an injected client works too
        self.client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    @abstractmethod
    def _get_base_url(self) -> str:
        """Get the base URL for this provider"""

    @abstractmethod
    def _get_headers(self) -> Dict[str, str]:
        """Get default headers for this provider"""

    def _get_timeout(self) -> float:
        return float(self.settings.verification_request_timeout)

    def _configured_key(self) -> Optional[str]:
        try:
            return self.settings.get_api_key(self.provider)
        except ValueError:
            return None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def make_request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """
        Make an API request through the circuit breaker

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Dict containing the decoded JSON response

        Raises:
            CircuitBreakerOpenError: When the provider's circuit is open
            AuthenticationError: On 401/403
            RateLimitExceededError: On 429
            TimeoutError: When the request exceeds the client timeout
            APIProviderError: For any other failure
        """
        if not self.circuit_breaker.can_execute():
            self.logger.warning(f"Circuit breaker open for {self.provider}")
            raise CircuitBreakerOpenError(self.provider, self.circuit_breaker.failure_count)

        start_time = time.time()
        response = None

        try:
            url = f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
            headers = {**self._get_headers(), **kwargs.pop("headers", {})}
            response = await self.client.request(method, url, headers=headers, **kwargs)

            if response.status_code >= 400:
                raise self._error_for_response(response)

            try:
                response_data = response.json()
            except ValueError as e:
                raise InvalidResponseError(self.provider, "JSON", response.text[:200]) from e

            self.circuit_breaker.record_success()
            return response_data

        except APIProviderError:
            self.circuit_breaker.record_failure()
            raise
        except httpx.TimeoutException as e:
            self.circuit_breaker.record_failure()
            raise TimeoutError(self.provider, self.timeout) from e
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            raise APIProviderError(self.provider, str(e) or e.__class__.__name__, status_code=503) from e

        finally:
            self.metrics.record_api_call(
                provider=self.provider,
                endpoint=endpoint,
                status_code=response.status_code if response is not None else 0,
                duration=time.time() - start_time,
            )

    def _error_for_response(self, response: httpx.Response) -> APIProviderError:
        """Map an HTTP error response to a gateway exception"""
        status = response.status_code
        message = f"HTTP {status}"
        response_data = None
        try:
            response_data = response.json()
            error = response_data.get("error") if isinstance(response_data, dict) else None
            if isinstance(error, dict):
                message = error.get("message", message)
            elif isinstance(error, str):
                message = error
        except ValueError:
            if response.text:
                message = f"HTTP {status} - {response.text[:200]}"

        if status in (401, 403):
            return AuthenticationError(self.provider, message, status_code=status)
        if status == 429:
            retry_after = response.headers.get("retry-after")
            return RateLimitExceededError(
                self.provider, int(retry_after) if retry_after and retry_after.isdigit() else None
            )
        return APIProviderError(self.provider, message, status_code=status, response_data=response_data)
