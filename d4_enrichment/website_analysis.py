"""
Website analysis

A light homepage check: HTTPS reachability, security headers and basic
SEO tags. Anything with the ``analyze`` signature can stand in for it.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import httpx
from bs4 import BeautifulSoup

from core.config import get_settings
from core.logging import get_logger
from core.utils import ensure_scheme, utcnow

logger = get_logger(__name__, domain="d4")

USER_AGENT = "Mozilla/5.0 (compatible; CRMBot/1.0)"

_OPEN_GRAPH = re.compile(r"^og:", re.IGNORECASE)
_TWITTER_CARD = re.compile(r"^twitter:", re.IGNORECASE)


@dataclass
class WebsiteAnalysisResult:
    url: str
    success: bool = False
    ssl_valid: bool | None = None
    has_https: bool | None = None
    hsts_enabled: bool | None = None
    x_frame_options: str | None = None
    has_csp: bool | None = None
    seo_title: str | None = None
    seo_description: str | None = None
    seo_h1_count: int | None = None
    seo_has_canonical: bool | None = None
    seo_indexable: bool | None = None
    has_viewport_meta: bool | None = None
    has_open_graph: bool | None = None
    has_twitter_cards: bool | None = None
    has_json_ld: bool | None = None
    response_time_ms: int | None = None
    errors: list[str] = field(default_factory=list)
    analyzed_at: datetime | None = None


class WebsiteAnalyzer(Protocol):
    async def analyze(self, url: str) -> WebsiteAnalysisResult: ...


def parse_html(result: WebsiteAnalysisResult, html: str) -> None:
    """Fill the SEO and markup flags from a page body"""
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    result.seo_title = title_tag.get_text(strip=True) or None if title_tag else None

    meta = soup.find("meta", attrs={"name": "description"})
    description = meta.get("content", "").strip() if meta else ""
    result.seo_description = description or None

    result.seo_h1_count = len(soup.find_all("h1"))
    result.seo_has_canonical = soup.find("link", rel="canonical") is not None

    robots = soup.find("meta", attrs={"name": "robots"})
    result.seo_indexable = not (robots and "noindex" in robots.get("content", "").lower())

    result.has_viewport_meta = soup.find("meta", attrs={"name": "viewport"}) is not None
    result.has_open_graph = soup.find("meta", attrs={"property": _OPEN_GRAPH}) is not None
    result.has_twitter_cards = soup.find("meta", attrs={"name": _TWITTER_CARD}) is not None
    result.has_json_ld = soup.find("script", type="application/ld+json") is not None


class HttpWebsiteAnalyzer:
    """Single GET of the homepage"""

    def __init__(self, http_client: httpx.AsyncClient | None = None, timeout: float | None = None):
        self.timeout = timeout or get_settings().verification_request_timeout
        self._http_client = http_client

    async def analyze(self, url: str) -> WebsiteAnalysisResult:
        target = ensure_scheme(url)
        result = WebsiteAnalysisResult(url=target, analyzed_at=utcnow())

        client = self._http_client or httpx.AsyncClient()
        started = time.monotonic()
        try:
            response = await client.get(
                target, headers={"User-Agent": USER_AGENT}, follow_redirects=True, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            logger.warning(f"Website analysis of {target} failed: {e}")
            result.errors.append(f"No se pudo acceder al sitio: {str(e) or e.__class__.__name__}")
            return result
        finally:
            if self._http_client is None:
                await client.aclose()

        result.response_time_ms = int((time.monotonic() - started) * 1000)
        final_url = str(response.url)
        result.has_https = final_url.startswith("https://")
        result.ssl_valid = result.has_https

        headers = response.headers
        result.hsts_enabled = "strict-transport-security" in headers
        result.x_frame_options = headers.get("x-frame-options")
        result.has_csp = "content-security-policy" in headers

        if response.status_code >= 400:
            result.errors.append(f"HTTP {response.status_code}")
            return result

        parse_html(result, response.text)
        result.success = True
        logger.info(f"Website analysis of {target} completed in {result.response_time_ms}ms")
        return result
