"""
Social profile discovery

Profiles linked from the company's own website are trusted (high
confidence); SerpAPI search results fill in the remaining platforms at
medium confidence. One profile per platform is kept.
"""

import re
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from core.config import get_settings
from core.logging import get_logger
from d0_gateway.factory import get_gateway_factory
from d0_gateway.providers.serpapi import SerpAPIClient

logger = get_logger(__name__, domain="d4")

USER_AGENT = "Mozilla/5.0 (compatible; CRMBot/1.0)"

CONFIDENCE_ORDER = {"high": 3, "medium": 2, "low": 1}

WEBSITE_PATTERNS = [
    ("linkedin", re.compile(r"https?://(www\.)?linkedin\.com/company/([a-zA-Z0-9_-]+)", re.IGNORECASE)),
    ("facebook", re.compile(r"https?://(www\.)?facebook\.com/([a-zA-Z0-9._-]+)", re.IGNORECASE)),
    ("instagram", re.compile(r"https?://(www\.)?instagram\.com/([a-zA-Z0-9._]+)", re.IGNORECASE)),
    ("twitter", re.compile(r"https?://(www\.)?(twitter|x)\.com/([a-zA-Z0-9_]+)", re.IGNORECASE)),
    ("youtube", re.compile(r"https?://(www\.)?youtube\.com/(user|channel|c|@)/([a-zA-Z0-9_-]+)", re.IGNORECASE)),
    ("tiktok", re.compile(r"https?://(www\.)?tiktok\.com/@([a-zA-Z0-9._-]+)", re.IGNORECASE)),
    ("whatsapp", re.compile(r"https?://(api\.)?whatsapp\.com/(send\?phone=|message/)(\d+)", re.IGNORECASE)),
]

GENERIC_USERNAMES = {
    "share",
    "sharer",
    "intent",
    "login",
    "signup",
    "help",
    "about",
    "privacy",
    "terms",
    "settings",
    "home",
    "explore",
    "search",
    "watch",
    "feed",
    "notifications",
    "messages",
    "hashtag",
    "tr",
    "plugins",
    "dialog",
    "sharer.php",
}

PLATFORM_ALIASES = {
    "linkedin": "linkedin",
    "facebook": "facebook",
    "instagram": "instagram",
    "twitter": "twitter",
    "x": "twitter",
    "youtube": "youtube",
    "tiktok": "tiktok",
    "whatsapp": "whatsapp",
}

_USERNAME = re.compile(r"^[a-zA-Z0-9._-]+$")
_PHONE = re.compile(r"^\d{10,15}$")


@dataclass
class SocialProfile:
    platform: str
    url: str
    username: str | None = None
    verified: bool = False
    confidence: str = "medium"  # high, medium, low
    source: str = "serpapi"  # serpapi, website


@dataclass
class SocialDiscovery:
    success: bool
    profiles: list[SocialProfile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def as_mapping(self) -> dict[str, str]:
        return {p.platform: p.url for p in self.profiles}


def normalize_platform(platform: str) -> str | None:
    return PLATFORM_ALIASES.get(platform.lower())


def is_valid_username(username: str | None, platform: str) -> bool:
    """Reject share/login style paths and malformed handles"""
    if not username or len(username) < 2:
        return False
    if username.lower() in GENERIC_USERNAMES:
        return False
    if platform == "whatsapp":
        return bool(_PHONE.match(username))
    return bool(_USERNAME.match(username))


def extract_username(url: str, platform: str) -> str | None:
    try:
        path = urlparse(url).path
    except ValueError:
        return None

    if platform == "linkedin":
        return path.replace("/company/", "").rstrip("/")
    if platform in ("facebook", "instagram", "tiktok"):
        return path.strip("/").replace("@", "")
    if platform == "twitter":
        return path.strip("/")
    if platform == "youtube":
        return re.sub(r"^/(user|channel|c|@)/", "", path).rstrip("/")
    return None


def extract_profiles_from_html(html: str) -> list[SocialProfile]:
    """First valid profile link per platform among the page's anchors"""
    soup = BeautifulSoup(html, "html.parser")
    by_platform: dict[str, SocialProfile] = {}
    for link in soup.find_all("a", href=True):
        href = link["href"].strip()
        for platform, pattern in WEBSITE_PATTERNS:
            match = pattern.match(href)
            if match is None or platform in by_platform:
                continue
            username = match.group(match.re.groups)
            if not is_valid_username(username, platform):
                continue
            by_platform[platform] = SocialProfile(
                platform=platform,
                url=match.group(0),
                username=username,
                verified=True,
                confidence="high",
                source="website",
            )
    return [by_platform[platform] for platform, _ in WEBSITE_PATTERNS if platform in by_platform]


def deduplicate_profiles(profiles: list[SocialProfile]) -> list[SocialProfile]:
    """Keep the highest-confidence profile per platform, first seen on ties"""
    by_platform: dict[str, SocialProfile] = {}
    for profile in profiles:
        existing = by_platform.get(profile.platform)
        if existing is None or CONFIDENCE_ORDER[profile.confidence] > CONFIDENCE_ORDER[existing.confidence]:
            by_platform[profile.platform] = profile
    return list(by_platform.values())


class SocialProfileFinder:
    """Finds a company's social accounts on its website and through SerpAPI"""

    def __init__(self, serpapi: SerpAPIClient | None = None, http_client: httpx.AsyncClient | None = None):
        self.serpapi = serpapi
        self.timeout = get_settings().verification_request_timeout
        self._http_client = http_client

    def _serpapi(self) -> SerpAPIClient:
        if self.serpapi is None:
            self.serpapi = get_gateway_factory().create_client("serpapi")
        return self.serpapi

    async def extract_from_website(self, url: str) -> list[SocialProfile]:
        """Profiles linked from the page; fetch failures yield nothing"""
        client = self._http_client or httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        try:
            response = await client.get(url, headers={"User-Agent": USER_AGENT})
            if response.status_code >= 400:
                return []
            return extract_profiles_from_html(response.text)
        except httpx.HTTPError as e:
            logger.warning(f"Error extracting social profiles from {url}: {e}")
            return []
        finally:
            if self._http_client is None:
                await client.aclose()

    async def search_profiles(self, company_name: str, website_url: str | None = None) -> SocialDiscovery:
        profiles: list[SocialProfile] = []
        errors: list[str] = []

        if website_url:
            profiles.extend(await self.extract_from_website(website_url))

        serp = await self._serpapi().search_social_profiles(company_name)
        if serp.success:
            for found in serp.profiles:
                platform = normalize_platform(found.platform)
                if platform is None or any(p.platform == platform for p in profiles):
                    continue
                profiles.append(
                    SocialProfile(
                        platform=platform,
                        url=found.url,
                        username=extract_username(found.url, platform),
                        verified=False,
                        confidence="medium",
                        source="serpapi",
                    )
                )
        elif serp.error:
            errors.append(f"SerpAPI: {serp.error}")

        deduped = deduplicate_profiles(profiles)
        logger.debug(f"Social profiles for {company_name}: {[p.platform for p in deduped]}")
        return SocialDiscovery(success=bool(deduped) or not errors, profiles=deduped, errors=errors)
