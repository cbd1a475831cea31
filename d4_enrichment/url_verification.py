"""
URL verification

Checks that a discovered website answers (HTTPS first, then HTTP) and
asks the first available AI provider whether it belongs to the company.
"""

import time
from dataclasses import dataclass

import httpx

from core.config import get_settings
from core.logging import get_logger
from core.utils import ensure_scheme
from d0_gateway.providers.llm import AIGateway, parse_json_response
from d0_gateway.types import CompletionOptions

from .models import clamp_score
from .prompts import URL_VERIFICATION_SYSTEM_PROMPT, url_verification_prompt

logger = get_logger(__name__, domain="d4")

NO_AI_CONFIDENCE = 0.5
AI_FAILED_CONFIDENCE = 0.3


@dataclass
class Ownership:
    is_official: bool
    confidence: float
    reasoning: str
    alternative_url: str | None = None


@dataclass
class UrlVerification:
    url: str
    is_accessible: bool = False
    has_ssl: bool = False
    ssl_valid: bool | None = None
    status_code: int | None = None
    response_time_ms: int | None = None
    redirect_url: str | None = None
    is_official: bool | None = None
    confidence: float | None = None
    ownership: Ownership | None = None
    error: str | None = None

    @property
    def final_url(self) -> str:
        return self.redirect_url or self.url


class UrlVerifier:
    def __init__(self, gateway: AIGateway | None = None, http_client: httpx.AsyncClient | None = None, timeout=None):
        self.gateway = gateway or AIGateway()
        self.timeout = timeout or get_settings().verification_request_timeout
        self._http_client = http_client

    async def _head(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        return await client.head(url, follow_redirects=True, timeout=self.timeout)

    async def verify_accessibility(self, url: str) -> UrlVerification:
        target = ensure_scheme(url)
        result = UrlVerification(url=target, has_ssl=target.startswith("https://"))

        client = self._http_client or httpx.AsyncClient()
        started = time.monotonic()
        try:
            try:
                response = await self._head(client, result.url)
            except httpx.HTTPError as https_error:
                if not result.url.startswith("https://"):
                    result.error = str(https_error) or "Request failed"
                    return result
                http_url = "http://" + result.url[len("https://") :]
                try:
                    response = await self._head(client, http_url)
                except httpx.HTTPError:
                    result.error = "URL not accessible via HTTPS or HTTP"
                    return result
                result.url = http_url
                result.has_ssl = False

            result.status_code = response.status_code
            result.is_accessible = response.status_code < 400
            result.response_time_ms = int((time.monotonic() - started) * 1000)
            final = str(response.url)
            if final.rstrip("/") != result.url.rstrip("/"):
                result.redirect_url = final
                if not result.has_ssl:
                    result.has_ssl = final.startswith("https://")
            if result.has_ssl:
                result.ssl_valid = True
            return result
        finally:
            if self._http_client is None:
                await client.aclose()

    async def verify_ownership(self, url: str, company_name: str) -> Ownership:
        available = self.gateway.get_available_providers()
        if not available:
            return Ownership(
                is_official=True,
                confidence=NO_AI_CONFIDENCE,
                reasoning="No AI verification available - assuming valid",
            )

        try:
            response = await self.gateway.complete(
                available[0],
                [
                    {"role": "system", "content": URL_VERIFICATION_SYSTEM_PROMPT},
                    {"role": "user", "content": url_verification_prompt(url, company_name)},
                ],
                CompletionOptions(temperature=0.1),
            )
            parsed = parse_json_response(response.content)
            if isinstance(parsed, dict):
                alternative = parsed.get("alternativeUrl")
                return Ownership(
                    is_official=bool(parsed.get("isOfficial")),
                    confidence=clamp_score(parsed.get("confidence")),
                    reasoning=str(parsed.get("reasoning") or ""),
                    alternative_url=alternative if isinstance(alternative, str) and alternative else None,
                )
        except Exception as e:
            logger.warning(f"URL ownership verification failed for {url}: {e}")

        return Ownership(
            is_official=True,
            confidence=AI_FAILED_CONFIDENCE,
            reasoning="AI verification failed - assuming valid with low confidence",
        )

    async def verify_url(self, url: str, company_name: str) -> UrlVerification:
        """Accessibility first; ownership only for reachable URLs"""
        result = await self.verify_accessibility(url)
        if not result.is_accessible:
            return result

        ownership = await self.verify_ownership(result.final_url, company_name)
        result.ownership = ownership
        result.is_official = ownership.is_official
        result.confidence = ownership.confidence
        return result
