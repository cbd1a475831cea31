"""
Hunter.io email verification client

Endpoint: GET /v2/email-verifier
"""
from typing import Dict

from ..base import BaseAPIClient
from ..exceptions import AuthenticationError, GatewayError, RateLimitExceededError
from ..types import EmailVerification


class HunterClient(BaseAPIClient):
    """Hunter.io client used to check suggested email addresses"""

    def __init__(self, **kwargs):
        super().__init__(provider="hunter", **kwargs)

    def _get_base_url(self) -> str:
        return self.settings.api_base_urls["hunter"]

    def _get_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    async def verify_email(self, email: str) -> EmailVerification:
        """
        Verify one email address

        Never raises; failures come back as ``success=False`` with a
        human-readable error.
        """
        if not self.is_configured:
            return EmailVerification(success=False, email=email, error="API key de Hunter.io no configurada")

        try:
            response = await self.make_request(
                "GET", "/email-verifier", params={"email": email, "api_key": self.api_key}
            )
        except AuthenticationError:
            return EmailVerification(success=False, email=email, error="API key inválida")
        except RateLimitExceededError:
            return EmailVerification(success=False, email=email, error="Rate limit excedido")
        except GatewayError as e:
            self.logger.error(f"Hunter.io email verify error: {e}")
            return EmailVerification(success=False, email=email, error=e.message)

        errors = response.get("errors") or []
        if errors:
            return EmailVerification(success=False, email=email, error=errors[0].get("details", "Unknown error"))

        data = response.get("data") or {}
        return EmailVerification(
            success=True,
            email=data.get("email", email),
            status=data.get("status"),
            score=data.get("score"),
        )
