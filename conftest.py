"""
Root conftest.py for pytest configuration

Registers the project markers and applies them automatically based on
test location.
"""
import os

import pytest

# Settings are read on first import of core.config
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("QUOTA_BACKEND", "memory")

DOMAIN_MARKERS = ("core", "d0_gateway", "d4_enrichment")


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "slow: tests that sleep or wait on timers")
    for domain in DOMAIN_MARKERS:
        config.addinivalue_line("markers", f"{domain}: tests for the {domain} package")


def pytest_collection_modifyitems(config, items):
    """Mark every test with ``unit`` and its domain based on its path"""
    for item in items:
        path = str(item.fspath)
        if f"{os.sep}unit{os.sep}" in path:
            item.add_marker(pytest.mark.unit)
        for domain in DOMAIN_MARKERS:
            if f"{os.sep}{domain}{os.sep}" in path:
                item.add_marker(getattr(pytest.mark, domain))
