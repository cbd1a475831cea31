"""
Factory for creating D0 Gateway API clients
"""
import threading
from typing import Dict, List, Optional, Type

from core.config import get_settings
from core.logging import get_logger

from .base import BaseAPIClient
from .providers.google_places import GooglePlacesClient
from .providers.hunter import HunterClient
from .providers.llm import AIGateway
from .providers.safe_browsing import SafeBrowsingClient
from .providers.serpapi import SerpAPIClient
from .quota import InMemoryQuotaStore, QuotaGate, QuotaStore, RedisQuotaStore


def create_quota_store(settings=None) -> QuotaStore:
    """Quota store selected by the ``quota_backend`` setting"""
    settings = settings or get_settings()
    if settings.quota_backend == "redis":
        return RedisQuotaStore(redis_url=settings.redis_url)
    return InMemoryQuotaStore()


class GatewayClientFactory:
    """Thread-safe factory for creating API clients"""

    _instance = None
    _lock = threading.Lock()
    _initialized = False

    def __new__(cls):
        """Implement thread-safe singleton pattern"""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            self.logger = get_logger("gateway.factory", domain="d0")
            self.settings = get_settings()

            # Verification providers; SerpAPI also needs the quota gate
            self._providers: Dict[str, Type[BaseAPIClient]] = {
                "hunter": HunterClient,
                "serpapi": SerpAPIClient,
                "google_places": GooglePlacesClient,
                "google_safe_browsing": SafeBrowsingClient,
            }
            self._quota_gate: Optional[QuotaGate] = None
            self.__class__._initialized = True
            self.logger.info("Gateway client factory initialized")

    def get_provider_names(self) -> List[str]:
        return list(self._providers.keys())

    def get_quota_gate(self) -> QuotaGate:
        """Process-wide quota gate"""
        with self._lock:
            if self._quota_gate is None:
                self._quota_gate = QuotaGate(create_quota_store(self.settings), self.settings.daily_quotas)
            return self._quota_gate

    def set_quota_gate(self, gate: Optional[QuotaGate]) -> None:
        with self._lock:
            self._quota_gate = gate

    def create_client(self, provider: str, **kwargs) -> BaseAPIClient:
        """
        Create a client for the specified verification provider

        Raises:
            ValueError: If provider is not registered
        """
        if provider not in self._providers:
            available = ", ".join(self._providers.keys())
            raise ValueError(f"Unknown provider '{provider}'. Available: {available}")

        if provider == "serpapi":
            kwargs.setdefault("quota", self.get_quota_gate())

        client = self._providers[provider](**kwargs)
        self.logger.debug(f"Created new client for {provider}")
        return client

    def create_ai_gateway(self) -> AIGateway:
        return AIGateway(self.settings)


# Global factory instance
_factory_instance = None


def get_gateway_factory() -> GatewayClientFactory:
    global _factory_instance
    if _factory_instance is None:
        _factory_instance = GatewayClientFactory()
    return _factory_instance


def create_client(provider: str, **kwargs) -> BaseAPIClient:
    """Convenience function to create a client using the global factory"""
    return get_gateway_factory().create_client(provider, **kwargs)
