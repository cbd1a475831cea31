"""
Tests for settings loading, validation and secret masking
"""

import pytest
from pydantic import SecretStr, ValidationError

from core.config import EnrichmentSettings, Settings, get_settings


class TestSettingsDefaults:
    """Defaults when nothing is read from .env"""

    def test_default_settings(self, monkeypatch):
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)

        settings = Settings(_env_file=None)

        assert settings.environment == "development"
        assert settings.max_clients_per_batch == 50
        assert settings.bulk_max_concurrency == 3
        assert settings.enrichment_cooldown_hours == 24
        assert settings.daily_quotas["serpapi"] == 3
        assert settings.provider_order == ["openai", "gemini", "grok", "deepseek"]

    def test_environment_is_read_from_env(self, monkeypatch, settings_cache):
        monkeypatch.setenv("ENVIRONMENT", "staging")
        monkeypatch.setenv("MAX_CLIENTS_PER_BATCH", "20")

        settings = get_settings()

        assert settings.environment == "staging"
        assert settings.max_clients_per_batch == 20


class TestSettingsValidation:
    def test_invalid_environment(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, environment="qa")
        assert "Environment must be one of" in str(exc_info.value)

    def test_unknown_provider_in_order(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, ai_provider_order="openai,claude")
        assert "Unknown AI providers" in str(exc_info.value)

    def test_production_requires_an_ai_provider(self, monkeypatch):
        for provider in ("OPENAI", "GEMINI", "GROK", "DEEPSEEK"):
            monkeypatch.delenv(f"{provider}_API_KEY", raising=False)

        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, environment="production")
        assert "At least one AI provider API key is required" in str(exc_info.value)

        settings = Settings(_env_file=None, environment="production", gemini_api_key=SecretStr("g"))
        assert settings.is_production

    def test_testing_forces_sqlite(self):
        settings = Settings(_env_file=None, testing=True, database_url="postgresql://db/crm")
        assert settings.database_url == "sqlite:///:memory:"


class TestProviders:
    def test_available_providers_keep_configured_order(self, test_settings):
        reordered = test_settings.model_copy(update={"ai_provider_order": "gemini,grok,openai"})

        assert test_settings.available_ai_providers == ["openai", "gemini"]
        assert reordered.available_ai_providers == ["gemini", "openai"]

    def test_get_api_key(self, test_settings):
        assert test_settings.get_api_key("hunter") == "test-hunter"

        with pytest.raises(ValueError) as exc_info:
            test_settings.get_api_key("grok")
        assert "API key not configured for grok" in str(exc_info.value)

    def test_model_for(self, test_settings):
        assert test_settings.model_for("openai") == "gpt-4o-mini"
        assert test_settings.model_for("gemini") == "gemini-1.5-flash"

    def test_model_dump_masks_keys(self, test_settings):
        data = test_settings.model_dump()

        assert data["openai_api_key"] == "sk-t" + "*" * (len("sk-test-openai") - 4)
        assert data["hunter_api_key"].startswith("test")
        assert "hunter" not in data["hunter_api_key"]
        assert data["grok_api_key"] is None


class TestEnrichmentSettings:
    def test_built_from_settings(self, test_settings):
        tunables = test_settings.enrichment_settings()

        assert tunables.temperature == 0.3
        assert tunables.min_confidence_score == 0.7
        assert tunables.match_mode == "fuzzy"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"temperature": 2.5},
            {"top_p": 1.5},
            {"min_confidence_score": -0.1},
            {"max_results_per_field": 0},
            {"match_mode": "loose"},
        ],
    )
    def test_bounds(self, overrides):
        with pytest.raises(ValidationError):
            EnrichmentSettings(**overrides)

    def test_invalid_env_value_surfaces(self):
        settings = Settings(_env_file=None, enrichment_match_mode="loose")
        with pytest.raises(ValidationError):
            settings.enrichment_settings()
