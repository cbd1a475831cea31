"""
Shared test configuration for D0 Gateway tests
"""
import pytest

from d0_gateway.quota import InMemoryQuotaStore, QuotaGate
from tests.helpers import FIXED_NOW


@pytest.fixture
def quota_gate():
    """SerpAPI limited to three calls a day, clock fixed at 21:30"""
    return QuotaGate(InMemoryQuotaStore(), {"serpapi": 3}, now=lambda: FIXED_NOW)
