"""
Test Helper Utilities

Reusable helpers for common test patterns to ensure consistency
and reduce boilerplate across the test suite.
"""

import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx

from d0_gateway.types import CompletionResult

# 21:30 local time leaves 2h 30m until the daily quota reset
FIXED_NOW = datetime(2026, 3, 10, 21, 30)


def create_async_mock(return_value: Any) -> Callable:
    """
    Create an async mock function that returns the specified value.

    Usage:
        mock_gateway.some_method.side_effect = create_async_mock({"result": "data"})
    """

    async def mock_coro(*args, **kwargs):
        return return_value

    return mock_coro


def json_response(payload: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload),
        headers={"content-type": "application/json", **(headers or {})},
    )


def mock_http_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``"""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def completion(provider: str, payload: Any) -> CompletionResult:
    """Provider reply whose content is ``payload`` as JSON, or the string itself"""
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return CompletionResult(content=content, provider=provider, model=f"{provider}-model")


def mock_ai_gateway(providers: List[str]) -> MagicMock:
    """
    AIGateway double with the given providers configured.

    ``complete`` and ``complete_multiple`` are AsyncMocks for the test to
    program.
    """
    gateway = MagicMock()
    gateway.get_available_providers.return_value = list(providers)
    gateway.complete = AsyncMock()
    gateway.complete_multiple = AsyncMock()
    return gateway


def make_record(client_id: str, **overrides):
    """
    Pending enrichment record with website, industry, one email and two
    social profiles, statuses built from its populated fields.
    """
    from d4_enrichment.models import EmailEntry, EnrichmentRecord
    from d4_enrichment.review import build_field_statuses

    values = {
        "website": "https://acme.pe",
        "website_score": 0.9,
        "industry": "Retail",
        "industry_score": 0.85,
        "emails": [EmailEntry("info@acme.pe"), EmailEntry("ventas@acme.pe", type="sales")],
        "social_profiles": {"linkedin": "https://linkedin.com/company/acme", "youtube": "https://youtube.com/c/acme"},
        "ai_providers_used": ["openai", "gemini"],
    }
    values.update(overrides)
    record = EnrichmentRecord(client_id=client_id, **values)
    if "field_statuses" not in overrides:
        record.field_statuses = build_field_statuses(record)
    return record
