"""
Type definitions for gateway domain
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class AIProvider(str, Enum):
    """Supported AI providers"""

    OPENAI = "openai"
    GEMINI = "gemini"
    GROK = "grok"
    DEEPSEEK = "deepseek"


class CircuitBreakerState(str, Enum):
    """Circuit breaker states"""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ThreatType(str, Enum):
    """Safe Browsing threat categories"""

    MALWARE = "MALWARE"
    SOCIAL_ENGINEERING = "SOCIAL_ENGINEERING"
    UNWANTED_SOFTWARE = "UNWANTED_SOFTWARE"
    POTENTIALLY_HARMFUL_APPLICATION = "POTENTIALLY_HARMFUL_APPLICATION"
    THREAT_TYPE_UNSPECIFIED = "THREAT_TYPE_UNSPECIFIED"


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration"""

    failure_threshold: int = 5
    recovery_timeout_seconds: float = 60.0
    success_threshold: int = 2  # For half-open state


@dataclass
class CompletionOptions:
    """Sampling options for one completion call"""

    temperature: float = 0.3
    top_p: float = 0.9
    max_tokens: int = 2000


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class CompletionResult:
    """Raw text returned by one AI provider"""

    content: str
    provider: str
    model: str
    usage: Optional[TokenUsage] = None


@dataclass
class ProviderFailure:
    """One provider that failed during a multi-provider call"""

    provider: str
    error: str


@dataclass
class EmailVerification:
    """Hunter email-verifier outcome"""

    success: bool
    email: Optional[str] = None
    status: Optional[str] = None  # valid, invalid, accept_all, webmail, disposable, unknown
    score: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_deliverable(self) -> bool:
        return self.success and self.status in ("valid", "accept_all")


@dataclass
class LocalBusinessResult:
    """First Google Maps listing found through SerpAPI"""

    success: bool
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    reviews: Optional[int] = None
    type: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SerpSocialProfile:
    platform: str
    url: str
    title: Optional[str] = None
    snippet: Optional[str] = None


@dataclass
class SocialSearchResult:
    """Social profiles found through a site-restricted web search"""

    success: bool
    query: Optional[str] = None
    profiles: List[SerpSocialProfile] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class PlaceDetails:
    place_id: str
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    formatted_phone_number: Optional[str] = None
    international_phone_number: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    types: List[str] = field(default_factory=list)


@dataclass
class PlaceLookup:
    """Google Places search plus details for the best match"""

    success: bool
    place: Optional[PlaceDetails] = None
    error: Optional[str] = None


@dataclass
class SafetyCheck:
    """Safe Browsing verdict; failures report the URL as safe"""

    success: bool
    is_safe: bool = True
    threat_types: List[str] = field(default_factory=list)
    checked_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class QuotaDecision:
    """Quota state for one service at the time of the check"""

    service: str
    allowed: bool
    used: int
    limit: Optional[int]
    reset_in: str

    @property
    def available(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.used, 0)

    @property
    def percentage(self) -> float:
        if not self.limit:
            return 0.0
        return self.used / self.limit * 100


# Type aliases for common patterns
ChatMessage = Dict[str, str]
