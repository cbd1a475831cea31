"""
Enrichment Post-Processor

Verifies and augments an AI enrichment result with external data:

1. Hunter.io email verification
2. Google Maps listing through SerpAPI
3. Google Places details
4. Google Safe Browsing check of the website
5. Social profile discovery

Each step works on a deep copy of the input, is gated by its own option
and by the quota gate, and turns any failure into a labeled error string.
``process`` never raises.
"""

import copy
from dataclasses import dataclass, field

from core.logging import get_logger
from core.utils import digits_only
from d0_gateway.exceptions import QuotaExceededError
from d0_gateway.factory import get_gateway_factory
from d0_gateway.providers.google_places import GooglePlacesClient, map_types_to_industry
from d0_gateway.providers.hunter import HunterClient
from d0_gateway.providers.safe_browsing import SafeBrowsingClient, threat_descriptions
from d0_gateway.providers.serpapi import SerpAPIClient
from d0_gateway.quota import QuotaGate

from .models import EmailEntry, EnrichableField, EnrichmentResult, FieldResult, PhoneEntry
from .social import SocialProfile, SocialProfileFinder

logger = get_logger(__name__, domain="d4")

MAX_EMAILS_TO_VERIFY = 5
EMAIL_VERIFIED_BOOST = 1.15
SAFE_SITE_BOOST = 1.05
UNSAFE_SITE_FACTOR = 0.3
UNSAFE_SITE_FLOOR = 0.1
SOCIAL_PROFILE_SCORE = 0.85


@dataclass
class PostProcessOptions:
    company_name: str
    location: str | None = None
    website_url: str | None = None
    verify_emails: bool = True
    search_google_maps: bool = True
    search_google_places: bool = True
    check_website_safety: bool = True
    search_social_profiles: bool = True


@dataclass
class PostProcessResult:
    enhanced_result: EnrichmentResult
    social_profiles: list[SocialProfile] | None = None
    external_data_used: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class _EmailCheck:
    all: list[EmailEntry]
    verified: list[EmailEntry]
    errors: list[str]


class EnrichmentPostProcessor:
    """Runs the external verification steps over an enrichment result"""

    def __init__(
        self,
        hunter: HunterClient | None = None,
        serpapi: SerpAPIClient | None = None,
        places: GooglePlacesClient | None = None,
        safe_browsing: SafeBrowsingClient | None = None,
        social: SocialProfileFinder | None = None,
        quota: QuotaGate | None = None,
    ):
        factory = get_gateway_factory()
        self.quota = quota or factory.get_quota_gate()
        self.hunter = hunter or factory.create_client("hunter")
        self.serpapi = serpapi or factory.create_client("serpapi", quota=self.quota)
        self.places = places or factory.create_client("google_places")
        self.safe_browsing = safe_browsing or factory.create_client("google_safe_browsing")
        self.social = social or SocialProfileFinder(serpapi=self.serpapi)

    async def _quota_denial(self, service: str) -> str | None:
        """Denial message when the service has no quota left today"""
        decision = await self.quota.can_make_request(service)
        if decision.allowed:
            return None
        return QuotaExceededError(service, decision.reset_in).message

    async def process(self, ai_result: EnrichmentResult, options: PostProcessOptions) -> PostProcessResult:
        enhanced = copy.deepcopy(ai_result)
        outcome = PostProcessResult(enhanced_result=enhanced)

        emails = enhanced.get(EnrichableField.EMAILS)
        if options.verify_emails and emails and emails.value:
            await self._verify_emails(enhanced, outcome)

        if options.search_google_maps and options.company_name:
            await self._search_maps(enhanced, options, outcome)

        if options.search_google_places and options.company_name:
            await self._search_places(enhanced, options, outcome)

        website_to_check = options.website_url or enhanced.value_of(EnrichableField.WEBSITE)
        if options.check_website_safety and website_to_check:
            await self._check_safety(enhanced, website_to_check, outcome)

        if options.search_social_profiles and options.company_name:
            await self._search_social(enhanced, options, outcome)

        logger.info(
            f"Post-processing for {options.company_name}: used {outcome.external_data_used}, "
            f"{len(outcome.errors)} errors"
        )
        return outcome

    async def _verify_emails(self, enhanced: EnrichmentResult, outcome: PostProcessResult) -> None:
        try:
            denial = await self._quota_denial("hunter")
            if denial:
                outcome.errors.append(f"Hunter.io: {denial}")
                return

            current = enhanced.get(EnrichableField.EMAILS)
            checked = await self._check_emails(current.value)
            if checked.verified:
                enhanced.fields[EnrichableField.EMAILS] = FieldResult(
                    value=checked.all,
                    score=min(current.score * EMAIL_VERIFIED_BOOST, 1.0),
                    source=f"{current.source} ({len(checked.verified)} verificados con Hunter.io)",
                    providers=list(current.providers),
                    consensus=current.consensus,
                )
                outcome.external_data_used.append("hunter_email_verify")
            outcome.errors.extend(checked.errors)
        except Exception as e:
            outcome.errors.append(f"Hunter.io: {str(e) or 'Error verificando emails'}")
            logger.warning(f"Hunter email verification failed: {e}")

    async def _check_emails(self, emails: list[EmailEntry]) -> _EmailCheck:
        results: list[EmailEntry] = []
        verified: list[EmailEntry] = []
        errors: list[str] = []

        for entry in emails[:MAX_EMAILS_TO_VERIFY]:
            try:
                check = await self.hunter.verify_email(entry.email)
            except Exception as e:
                logger.warning(f"Hunter verification of {entry.email} failed: {e}")
                results.append(EmailEntry(entry.email, entry.type, verified=False, status="error"))
                continue

            if check.success:
                results.append(EmailEntry(entry.email, entry.type, verified=check.is_deliverable, status=check.status))
                if check.is_deliverable:
                    verified.append(entry)
            else:
                results.append(EmailEntry(entry.email, entry.type, verified=False, status="error"))
                if check.error:
                    errors.append(f"Email {entry.email}: {check.error}")

        for entry in emails[MAX_EMAILS_TO_VERIFY:]:
            results.append(EmailEntry(entry.email, entry.type, verified=None, status="not_checked"))

        return _EmailCheck(all=results, verified=verified, errors=errors)

    @staticmethod
    def _add_phone(enhanced: EnrichmentResult, number: str, min_score: float, source: str) -> bool:
        """Prepend a business phone unless its digits are already listed"""
        current = enhanced.get(EnrichableField.PHONES)
        existing = list(current.value) if current and current.value else []
        if any(digits_only(p.number) == digits_only(number) for p in existing):
            return False
        enhanced.fields[EnrichableField.PHONES] = FieldResult(
            value=[PhoneEntry(number=number, type="business"), *existing],
            score=max(current.score if current else 0.0, min_score),
            source=source,
            providers=list(current.providers) if current else [],
            consensus=False,
        )
        return True

    @staticmethod
    def _providers_of(enhanced: EnrichmentResult, enrichable: EnrichableField) -> list[str]:
        current = enhanced.get(enrichable)
        return list(current.providers) if current else []

    async def _search_maps(self, enhanced: EnrichmentResult, options: PostProcessOptions, outcome) -> None:
        try:
            denial = await self._quota_denial("serpapi")
            if denial:
                outcome.errors.append(f"SerpAPI Maps: {denial}")
                return

            listing = await self.serpapi.search_local_business(options.company_name, options.location or "")
            if listing.success:
                address = enhanced.get(EnrichableField.ADDRESS)
                if listing.address and (address is None or not address.value or address.score < 0.7):
                    enhanced.fields[EnrichableField.ADDRESS] = FieldResult(
                        value=listing.address,
                        score=0.9,
                        source="Google Maps via SerpAPI",
                        providers=self._providers_of(enhanced, EnrichableField.ADDRESS),
                    )
                    outcome.external_data_used.append("serpapi_maps_address")

                if listing.phone and self._add_phone(enhanced, listing.phone, 0.9, "Google Maps via SerpAPI + AI"):
                    outcome.external_data_used.append("serpapi_maps_phone")

                if listing.type and not enhanced.value_of(EnrichableField.INDUSTRY):
                    enhanced.fields[EnrichableField.INDUSTRY] = FieldResult(
                        value=listing.type, score=0.85, source="Google Maps via SerpAPI"
                    )
                    outcome.external_data_used.append("serpapi_maps_industry")

            if listing.error:
                outcome.errors.append(f"SerpAPI Maps: {listing.error}")
        except Exception as e:
            outcome.errors.append(f"SerpAPI: {str(e) or 'Error buscando en Google Maps'}")
            logger.warning(f"SerpAPI Google Maps search failed: {e}")

    async def _search_places(self, enhanced: EnrichmentResult, options: PostProcessOptions, outcome) -> None:
        try:
            denial = await self._quota_denial("google_places")
            if denial:
                outcome.errors.append(f"Google Places: {denial}")
                return

            lookup = await self.places.find_business(options.company_name, options.location)
            place = lookup.place if lookup.success else None
            if place is not None:
                address = enhanced.get(EnrichableField.ADDRESS)
                if place.formatted_address and (address is None or not address.value or address.score < 0.8):
                    enhanced.fields[EnrichableField.ADDRESS] = FieldResult(
                        value=place.formatted_address,
                        score=0.95,
                        source="Google Places API",
                        providers=self._providers_of(enhanced, EnrichableField.ADDRESS),
                    )
                    outcome.external_data_used.append("google_places_address")

                phone = place.international_phone_number or place.formatted_phone_number
                if phone and self._add_phone(enhanced, phone, 0.95, "Google Places API + AI"):
                    outcome.external_data_used.append("google_places_phone")

                website = enhanced.get(EnrichableField.WEBSITE)
                if place.website and (website is None or not website.value or website.score < 0.8):
                    enhanced.fields[EnrichableField.WEBSITE] = FieldResult(
                        value=place.website,
                        score=0.95,
                        source="Google Places API",
                        providers=self._providers_of(enhanced, EnrichableField.WEBSITE),
                    )
                    outcome.external_data_used.append("google_places_website")

                if place.types and not enhanced.value_of(EnrichableField.INDUSTRY):
                    industry = map_types_to_industry(place.types)
                    if industry:
                        enhanced.fields[EnrichableField.INDUSTRY] = FieldResult(
                            value=industry, score=0.85, source="Google Places API"
                        )
                        outcome.external_data_used.append("google_places_industry")

                if place.rating and place.user_ratings_total:
                    rating_info = f"Rating: {place.rating}/5 ({place.user_ratings_total} reseñas en Google)"
                    description = enhanced.get(EnrichableField.DESCRIPTION)
                    if description is None or not description.value:
                        enhanced.fields[EnrichableField.DESCRIPTION] = FieldResult(
                            value=rating_info, score=0.8, source="Google Places API"
                        )
                    else:
                        description.value = f"{description.value}\n{rating_info}"
                    outcome.external_data_used.append("google_places_rating")

            if lookup.error:
                outcome.errors.append(f"Google Places: {lookup.error}")
        except Exception as e:
            outcome.errors.append(f"Google Places: {str(e) or 'Error buscando en Google Places'}")
            logger.warning(f"Google Places search failed: {e}")

    async def _check_safety(self, enhanced: EnrichmentResult, url: str, outcome: PostProcessResult) -> None:
        try:
            denial = await self._quota_denial("google_safe_browsing")
            if denial:
                outcome.errors.append(f"Safe Browsing: {denial}")
                return

            check = await self.safe_browsing.check_url(url)
            if check.success:
                website = enhanced.get(EnrichableField.WEBSITE)
                if not check.is_safe and check.threat_types:
                    warning = f"⚠️ ADVERTENCIA DE SEGURIDAD: {'. '.join(threat_descriptions(check.threat_types))}"
                    description = enhanced.get(EnrichableField.DESCRIPTION)
                    if description is None or not description.value:
                        enhanced.fields[EnrichableField.DESCRIPTION] = FieldResult(
                            value=warning, score=1.0, source="Google Safe Browsing"
                        )
                    else:
                        description.value = f"{warning}\n\n{description.value}"

                    if website is not None:
                        website.score = max(UNSAFE_SITE_FLOOR, website.score * UNSAFE_SITE_FACTOR)
                        website.source = f"{website.source} (⚠️ Sitio no seguro)"

                    outcome.external_data_used.append("google_safe_browsing_unsafe")
                    logger.warning(f"Website flagged as unsafe: {url} {check.threat_types}")
                else:
                    if website is not None:
                        website.score = min(1.0, website.score * SAFE_SITE_BOOST)
                    outcome.external_data_used.append("google_safe_browsing_safe")

            if check.error:
                outcome.errors.append(f"Safe Browsing: {check.error}")
        except Exception as e:
            outcome.errors.append(f"Safe Browsing: {str(e) or 'Error verificando seguridad del sitio'}")
            logger.warning(f"Google Safe Browsing check failed: {e}")

    async def _search_social(self, enhanced: EnrichmentResult, options: PostProcessOptions, outcome) -> None:
        try:
            discovery = await self.social.search_profiles(options.company_name, options.website_url)
            if discovery.success and discovery.profiles:
                outcome.social_profiles = discovery.profiles
                outcome.external_data_used.append("social_media_profiles")
                enhanced.fields[EnrichableField.SOCIAL_PROFILES] = FieldResult(
                    value=discovery.as_mapping(),
                    score=SOCIAL_PROFILE_SCORE,
                    source="SerpAPI social search",
                )
            outcome.errors.extend(f"Social: {e}" for e in discovery.errors)
        except Exception as e:
            outcome.errors.append(f"Social Media: {str(e) or 'Error buscando perfiles sociales'}")
            logger.warning(f"Social media profile search failed: {e}")
