"""
Provider-specific API clients for D0 Gateway
"""

from .google_places import GooglePlacesClient, map_types_to_industry
from .hunter import HunterClient
from .llm import AIGateway, GeminiClient, OpenAICompatibleClient, parse_json_response
from .safe_browsing import SafeBrowsingClient
from .serpapi import SerpAPIClient

__all__ = [
    "AIGateway",
    "GeminiClient",
    "OpenAICompatibleClient",
    "parse_json_response",
    "HunterClient",
    "SerpAPIClient",
    "GooglePlacesClient",
    "map_types_to_industry",
    "SafeBrowsingClient",
]
