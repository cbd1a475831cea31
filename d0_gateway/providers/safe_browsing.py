"""
Google Safe Browsing v4 client

Any failure to check reports the URL as safe together with the error.
"""
from typing import Dict, Iterable, List

from core.utils import ensure_scheme

from ..base import BaseAPIClient
from ..exceptions import APIProviderError, GatewayError
from ..types import SafetyCheck, ThreatType

THREAT_DESCRIPTIONS = {
    ThreatType.MALWARE.value: "Este sitio contiene software malicioso (malware)",
    ThreatType.SOCIAL_ENGINEERING.value: "Este sitio puede intentar engañarte (phishing)",
    ThreatType.UNWANTED_SOFTWARE.value: "Este sitio distribuye software no deseado",
    ThreatType.POTENTIALLY_HARMFUL_APPLICATION.value: "Este sitio puede contener aplicaciones dañinas",
    ThreatType.THREAT_TYPE_UNSPECIFIED.value: "Este sitio presenta riesgos de seguridad",
}
DEFAULT_THREAT_DESCRIPTION = "Este sitio puede no ser seguro"


def threat_description(threat_type: str) -> str:
    return THREAT_DESCRIPTIONS.get(threat_type, DEFAULT_THREAT_DESCRIPTION)


def threat_descriptions(threat_types: Iterable[str]) -> List[str]:
    """One description per distinct threat type, in first-seen order"""
    return [threat_description(t) for t in dict.fromkeys(threat_types)]


class SafeBrowsingClient(BaseAPIClient):
    """Checks a website against Google's threat lists"""

    def __init__(self, **kwargs):
        super().__init__(provider="google_safe_browsing", **kwargs)

    def _get_base_url(self) -> str:
        return self.settings.api_base_urls["google_safe_browsing"]

    def _get_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def check_url(self, url: str) -> SafetyCheck:
        if not self.is_configured:
            return SafetyCheck(success=False, error="API key de Google Safe Browsing no configurada")

        checked_url = ensure_scheme(url)
        payload = {
            "client": {"clientId": "crm-enrichment", "clientVersion": self.settings.app_version},
            "threatInfo": {
                "threatTypes": [
                    ThreatType.MALWARE.value,
                    ThreatType.SOCIAL_ENGINEERING.value,
                    ThreatType.UNWANTED_SOFTWARE.value,
                    ThreatType.POTENTIALLY_HARMFUL_APPLICATION.value,
                ],
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": checked_url}],
            },
        }

        try:
            data = await self.make_request("POST", "/threatMatches:find", params={"key": self.api_key}, json=payload)
        except APIProviderError as e:
            if e.status_code == 400:
                error = "URL invalida"
            elif e.status_code in (401, 403):
                error = "API key invalida o sin permisos"
            else:
                error = e.message
            return SafetyCheck(success=False, checked_url=checked_url, error=error)
        except GatewayError as e:
            self.logger.error(f"Safe Browsing check error: {e}")
            return SafetyCheck(success=False, checked_url=checked_url, error=e.message)

        matches = data.get("matches") or []
        threat_types = [m.get("threatType", ThreatType.THREAT_TYPE_UNSPECIFIED.value) for m in matches]
        self.logger.debug(f"Safe Browsing checked {checked_url}: {len(matches)} threats")
        return SafetyCheck(
            success=True,
            is_safe=not matches,
            threat_types=threat_types,
            checked_url=checked_url,
        )
