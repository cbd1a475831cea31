"""
Shared fixtures for all tests
"""
import os
import sys

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import Settings, get_settings
from d0_gateway.circuit_breaker import reset_all_circuit_breakers
from d0_gateway.factory import get_gateway_factory
from database.models import Base


@pytest.fixture(autouse=True)
def fresh_gateway_state():
    """Closed circuits and no injected quota gate for every test"""
    reset_all_circuit_breakers()
    get_gateway_factory().set_quota_gate(None)
    yield
    reset_all_circuit_breakers()
    get_gateway_factory().set_quota_gate(None)


@pytest.fixture
def test_settings():
    """Settings with two AI providers configured and nothing read from .env"""
    return Settings(
        _env_file=None,
        environment="test",
        openai_api_key="sk-test-openai",
        gemini_api_key="test-gemini",
        hunter_api_key="test-hunter",
        serpapi_api_key="test-serpapi",
        google_places_api_key="test-places",
        google_safe_browsing_api_key="test-safe-browsing",
    )


@pytest.fixture
def settings_cache():
    """Clear the cached settings around a test that changes the environment"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db_engine():
    """In-memory SQLite shared across sessions of one test"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
