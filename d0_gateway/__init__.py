"""
D0 Gateway - every outbound call the enrichment engine makes

AI completions, email verification, map listings, place details, URL
safety and social search, behind circuit breakers, metrics and the
daily quota gate.
"""

from .base import BaseAPIClient
from .circuit_breaker import CircuitBreaker, get_circuit_breaker
from .exceptions import (
    APIProviderError,
    AuthenticationError,
    CircuitBreakerOpenError,
    GatewayError,
    InvalidResponseError,
    ProviderNotConfiguredError,
    QuotaExceededError,
    RateLimitExceededError,
    TimeoutError,
)
from .factory import GatewayClientFactory, create_client, get_gateway_factory
from .metrics import GatewayMetrics
from .quota import InMemoryQuotaStore, QuotaGate, QuotaStore, RedisQuotaStore
from .types import (
    AIProvider,
    CircuitBreakerConfig,
    CircuitBreakerState,
    CompletionOptions,
    CompletionResult,
    EmailVerification,
    LocalBusinessResult,
    PlaceDetails,
    PlaceLookup,
    ProviderFailure,
    QuotaDecision,
    SafetyCheck,
    SerpSocialProfile,
    SocialSearchResult,
)

__all__ = [
    "BaseAPIClient",
    "CircuitBreaker",
    "get_circuit_breaker",
    "GatewayMetrics",
    "GatewayClientFactory",
    "get_gateway_factory",
    "create_client",
    "QuotaGate",
    "QuotaStore",
    "InMemoryQuotaStore",
    "RedisQuotaStore",
    # Exceptions
    "GatewayError",
    "APIProviderError",
    "AuthenticationError",
    "RateLimitExceededError",
    "QuotaExceededError",
    "CircuitBreakerOpenError",
    "InvalidResponseError",
    "TimeoutError",
    "ProviderNotConfiguredError",
    # Types
    "AIProvider",
    "CircuitBreakerState",
    "CircuitBreakerConfig",
    "CompletionOptions",
    "CompletionResult",
    "ProviderFailure",
    "EmailVerification",
    "LocalBusinessResult",
    "SerpSocialProfile",
    "SocialSearchResult",
    "PlaceDetails",
    "PlaceLookup",
    "SafetyCheck",
    "QuotaDecision",
]
