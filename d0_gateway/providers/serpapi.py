"""
SerpAPI client for Google Maps listings and social profile search

Every search consumes one unit of the daily ``serpapi`` quota.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from ..base import BaseAPIClient
from ..exceptions import AuthenticationError, GatewayError, QuotaExceededError, RateLimitExceededError
from ..quota import QuotaGate
from ..types import LocalBusinessResult, SerpSocialProfile, SocialSearchResult

QUOTA_SERVICE = "serpapi"

SOCIAL_SEARCH_PLATFORMS = ["linkedin", "facebook", "instagram", "twitter"]

PLATFORM_PATTERNS = {
    "linkedin": re.compile(r"linkedin\.com/company/([^/?]+)", re.IGNORECASE),
    "facebook": re.compile(r"facebook\.com/([^/?]+)", re.IGNORECASE),
    "instagram": re.compile(r"instagram\.com/([^/?]+)", re.IGNORECASE),
    "twitter": re.compile(r"twitter\.com/([^/?]+)|x\.com/([^/?]+)", re.IGNORECASE),
    "youtube": re.compile(r"youtube\.com/(user|channel|c)/([^/?]+)", re.IGNORECASE),
}


class SerpAPIClient(BaseAPIClient):
    """Quota-gated SerpAPI search client"""

    def __init__(self, quota: QuotaGate, **kwargs):
        self.quota = quota
        super().__init__(provider="serpapi", **kwargs)

    def _get_base_url(self) -> str:
        return self.settings.api_base_urls["serpapi"]

    def _get_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def _search(self, params: Dict[str, str]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        """Run one search; returns (data, None) or (None, error)"""
        try:
            await self.quota.acquire(QUOTA_SERVICE)
        except QuotaExceededError as e:
            return None, e.message

        if not self.is_configured:
            return None, "API key de SerpAPI no configurada"

        try:
            data = await self.make_request("GET", "/search.json", params={**params, "api_key": self.api_key})
        except AuthenticationError:
            error = "API key inválida"
        except RateLimitExceededError:
            error = "Rate limit excedido"
        except GatewayError as e:
            self.logger.error(f"SerpAPI search error: {e}")
            error = e.message
        else:
            if data.get("error"):
                error = data["error"]
            else:
                await self.quota.record_success(QUOTA_SERVICE)
                return data, None

        await self.quota.record_error(QUOTA_SERVICE, error)
        return None, error

    async def search_local_business(self, company_name: str, location: str = "") -> LocalBusinessResult:
        """First Google Maps listing for the company"""
        query = f"{company_name} {location}".strip()
        data, error = await self._search({"engine": "google_maps", "q": query, "hl": "es"})
        if error:
            return LocalBusinessResult(success=False, error=error)

        local_results = data.get("local_results") or []
        if not local_results:
            return LocalBusinessResult(success=False, error="No se encontraron resultados locales")

        business = local_results[0]
        return LocalBusinessResult(
            success=True,
            name=business.get("title"),
            address=business.get("address"),
            phone=business.get("phone"),
            website=business.get("website"),
            rating=business.get("rating"),
            reviews=business.get("reviews"),
            type=business.get("type"),
        )

    async def search_social_profiles(self, company_name: str) -> SocialSearchResult:
        """Site-restricted web search for the company's social accounts"""
        sites = " OR ".join(f"site:{p}.com" for p in SOCIAL_SEARCH_PLATFORMS)
        query = f'"{company_name}" ({sites})'
        data, error = await self._search({"engine": "google", "q": query, "num": "20", "hl": "es"})
        if error:
            return SocialSearchResult(success=False, query=query, error=error)

        return SocialSearchResult(
            success=True,
            query=query,
            profiles=extract_social_profiles(data.get("organic_results") or [], company_name),
        )


def extract_social_profiles(organic_results: List[Dict[str, Any]], company_name: str) -> List[SerpSocialProfile]:
    """Keep the first plausible result per platform"""
    profiles: List[SerpSocialProfile] = []
    seen = set()
    company_lower = company_name.lower()

    for result in organic_results:
        link = result.get("link") or ""
        title = result.get("title") or ""
        snippet = result.get("snippet") or ""

        for platform, pattern in PLATFORM_PATTERNS.items():
            if not pattern.search(link):
                continue
            title_lower = title.lower()
            related = (
                company_lower in title_lower
                or company_lower in snippet.lower()
                or "official" in title_lower
                or "empresa" in title_lower
            )
            if related and platform not in seen:
                seen.add(platform)
                profiles.append(SerpSocialProfile(platform=platform, url=link, title=title, snippet=snippet))
            break

    return profiles
