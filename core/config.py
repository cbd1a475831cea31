"""
Configuration management using Pydantic Settings
Handles environment variables and validation
"""
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings

AI_PROVIDERS = ("openai", "gemini", "grok", "deepseek")


class EnrichmentSettings(BaseModel):
    """Tunables used by the consensus builder"""

    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    match_mode: Literal["exact", "fuzzy", "broad"] = "fuzzy"
    min_confidence_score: float = Field(default=0.7, ge=0.0, le=1.0)
    require_verification: bool = True
    max_results_per_field: int = Field(default=3, ge=1, le=10)
    max_tokens: int = Field(default=2000, ge=1)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    testing: bool = Field(default=False)

    # Application
    app_name: str = "CRM Enrichment"
    app_version: str = "0.1.0"

    # Database
    database_url: str = Field(default="sqlite:///./crm_enrichment.db")
    database_echo: bool = Field(default=False)

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0")
    quota_backend: Literal["memory", "redis"] = Field(default="memory")

    # AI providers - use SecretStr for sensitive data
    openai_api_key: Optional[SecretStr] = Field(default=None)
    gemini_api_key: Optional[SecretStr] = Field(default=None)
    grok_api_key: Optional[SecretStr] = Field(default=None)
    deepseek_api_key: Optional[SecretStr] = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    gemini_model: str = Field(default="gemini-1.5-flash")
    grok_model: str = Field(default="grok-beta")
    deepseek_model: str = Field(default="deepseek-chat")
    ai_provider_order: str = Field(default=",".join(AI_PROVIDERS))
    ai_request_timeout: int = Field(default=15)

    # Verification APIs
    hunter_api_key: Optional[SecretStr] = Field(default=None)
    serpapi_api_key: Optional[SecretStr] = Field(default=None)
    google_places_api_key: Optional[SecretStr] = Field(default=None)
    google_safe_browsing_api_key: Optional[SecretStr] = Field(default=None)
    verification_request_timeout: int = Field(default=10)

    # Enrichment defaults
    enrichment_temperature: float = Field(default=0.3)
    enrichment_top_p: float = Field(default=0.9)
    enrichment_match_mode: str = Field(default="fuzzy")
    enrichment_min_confidence_score: float = Field(default=0.7)
    enrichment_require_verification: bool = Field(default=True)
    enrichment_max_results_per_field: int = Field(default=3)
    enrichment_max_tokens: int = Field(default=2000)

    # Bulk enrichment limits
    max_clients_per_batch: int = Field(default=50)
    bulk_max_concurrency: int = Field(default=3)
    enrichment_cooldown_hours: int = Field(default=24)

    # Daily quotas derived from monthly free tiers
    quota_screenshots_daily: int = Field(default=33)
    quota_pagespeed_daily: int = Field(default=800)
    quota_serpapi_daily: int = Field(default=3)
    quota_builtwith_daily: int = Field(default=166)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Monitoring
    prometheus_enabled: bool = Field(default=True)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v, info):
        if info.data.get("testing") and not v.startswith("sqlite"):
            # Force SQLite for testing
            return "sqlite:///:memory:"
        return v

    @field_validator("ai_provider_order")
    @classmethod
    def validate_provider_order(cls, v):
        unknown = [p.strip() for p in v.split(",") if p.strip() and p.strip() not in AI_PROVIDERS]
        if unknown:
            raise ValueError(f"Unknown AI providers: {unknown}")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Validate production-specific settings after all fields are set"""
        if self.environment == "production" and not self.available_ai_providers:
            raise ValueError("At least one AI provider API key is required in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def provider_order(self) -> List[str]:
        return [p.strip() for p in self.ai_provider_order.split(",") if p.strip()]

    @property
    def available_ai_providers(self) -> List[str]:
        """AI providers with a configured key, in configured order"""
        return [p for p in self.provider_order if getattr(self, f"{p}_api_key", None)]

    @property
    def api_base_urls(self) -> Dict[str, str]:
        """Get base URLs for external APIs"""
        return {
            "openai": "https://api.openai.com/v1",
            "gemini": "https://generativelanguage.googleapis.com/v1beta",
            "grok": "https://api.x.ai/v1",
            "deepseek": "https://api.deepseek.com/v1",
            "hunter": "https://api.hunter.io/v2",
            "serpapi": "https://serpapi.com",
            "google_places": "https://maps.googleapis.com/maps/api/place",
            "google_safe_browsing": "https://safebrowsing.googleapis.com/v4",
        }

    @property
    def daily_quotas(self) -> Dict[str, int]:
        return {
            "screenshots": self.quota_screenshots_daily,
            "pagespeed": self.quota_pagespeed_daily,
            "serpapi": self.quota_serpapi_daily,
            "builtwith": self.quota_builtwith_daily,
        }

    def model_for(self, provider: str) -> str:
        return getattr(self, f"{provider}_model")

    def enrichment_settings(self) -> EnrichmentSettings:
        """Build validated enrichment tunables"""
        return EnrichmentSettings(
            temperature=self.enrichment_temperature,
            top_p=self.enrichment_top_p,
            match_mode=self.enrichment_match_mode,
            min_confidence_score=self.enrichment_min_confidence_score,
            require_verification=self.enrichment_require_verification,
            max_results_per_field=self.enrichment_max_results_per_field,
            max_tokens=self.enrichment_max_tokens,
        )

    def get_api_key(self, service: str) -> str:
        """Get API key for a service"""
        secret = getattr(self, f"{service}_api_key", None)
        if not secret:
            raise ValueError(f"API key not configured for {service}")
        return secret.get_secret_value()

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    def model_dump(self, **kwargs):
        """Override to mask sensitive fields when serializing"""
        data = super().model_dump(**kwargs)

        sensitive_fields = [f"{p}_api_key" for p in AI_PROVIDERS] + [
            "hunter_api_key",
            "serpapi_api_key",
            "google_places_api_key",
            "google_safe_browsing_api_key",
        ]

        for field in sensitive_fields:
            if field in data and data[field]:
                if hasattr(data[field], "get_secret_value"):
                    value = data[field].get_secret_value()
                else:
                    value = str(data[field])

                # Keep first 4 chars for identification
                if len(value) > 4:
                    data[field] = value[:4] + "*" * (len(value) - 4)
                else:
                    data[field] = "*" * len(value)

        return data


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
