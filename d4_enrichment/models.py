"""
Enrichment Models

Typed domain values for AI enrichment: the per-field results produced by
the consensus builder, the durable enrichment record with its per-field
review statuses, and the bulk progress and review outcome types.

Values are typed here; JSON only appears at the persistence edge.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from core.utils import utcnow
from database.base import generate_uuid
from database.models import ClientEnrichmentStatus, RecordStatus

__all__ = [
    "ClientEnrichmentStatus",
    "RecordStatus",
    "ReviewStatus",
    "EnrichableField",
    "FULL_FIELDS",
    "QUICK_FIELDS",
    "SOCIAL_NETWORKS",
    "CLIENT_SOCIAL_COLUMNS",
    "ReviewableField",
    "ReviewAction",
    "EmailEntry",
    "PhoneEntry",
    "FieldResult",
    "EnrichmentResult",
    "ClientContext",
    "ClientProfile",
    "EnrichmentRecord",
    "BulkEnrichOptions",
    "BulkProgress",
    "ClientBulkResult",
    "BulkEnrichmentResult",
    "ReviewOutcome",
    "BulkReviewOutcome",
    "clamp_score",
    "parse_field_value",
]


class ReviewStatus(str, Enum):
    """Review lifecycle of one suggested field"""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class EnrichableField(str, Enum):
    """Fields an AI provider can be asked for"""

    WEBSITE = "website"
    EMAILS = "emails"
    PHONES = "phones"
    ADDRESS = "address"
    DESCRIPTION = "description"
    INDUSTRY = "industry"
    COMPANY_SIZE = "companySize"
    SOCIAL_PROFILES = "socialProfiles"


FULL_FIELDS = list(EnrichableField)

QUICK_FIELDS = [
    EnrichableField.WEBSITE,
    EnrichableField.EMAILS,
    EnrichableField.PHONES,
    EnrichableField.DESCRIPTION,
    EnrichableField.INDUSTRY,
]

TEXT_FIELDS = {
    EnrichableField.WEBSITE,
    EnrichableField.ADDRESS,
    EnrichableField.DESCRIPTION,
    EnrichableField.INDUSTRY,
    EnrichableField.COMPANY_SIZE,
}

SOCIAL_NETWORKS = ["facebook", "instagram", "linkedin", "twitter", "whatsapp", "youtube", "tiktok"]

# Networks that have a column on the client record
CLIENT_SOCIAL_COLUMNS = ["facebook", "instagram", "linkedin", "twitter", "whatsapp"]


class ReviewableField(str, Enum):
    """Closed set of field names a reviewer can confirm, reject or edit"""

    WEBSITE = "website"
    INDUSTRY = "industry"
    DESCRIPTION = "description"
    COMPANY_SIZE = "companySize"
    ADDRESS = "address"
    EMAILS = "emails"
    PHONES = "phones"
    SOCIAL_PROFILES = "socialProfiles"
    SOCIAL_FACEBOOK = "social_facebook"
    SOCIAL_INSTAGRAM = "social_instagram"
    SOCIAL_LINKEDIN = "social_linkedin"
    SOCIAL_TWITTER = "social_twitter"
    SOCIAL_WHATSAPP = "social_whatsapp"
    SOCIAL_YOUTUBE = "social_youtube"
    SOCIAL_TIKTOK = "social_tiktok"

    @property
    def network(self) -> str | None:
        """Network name for the per-network social fields"""
        if self.value.startswith("social_"):
            return self.value[len("social_") :]
        return None

    @classmethod
    def for_network(cls, network: str) -> "ReviewableField":
        return cls(f"social_{network}")


class ReviewAction(str, Enum):
    CONFIRM = "confirm"
    REJECT = "reject"
    EDIT = "edit"

    @property
    def label(self) -> str:
        """Spanish past participle used in activity entries"""
        return {"confirm": "confirmados", "reject": "rechazados", "edit": "editados"}[self.value]


@dataclass
class EmailEntry:
    email: str
    type: str = "general"
    verified: bool | None = None
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"email": self.email, "type": self.type}
        if self.verified is not None:
            data["verified"] = self.verified
        if self.status is not None:
            data["status"] = self.status
        return data

    @classmethod
    def from_raw(cls, raw: Any) -> "EmailEntry | None":
        if isinstance(raw, str) and raw.strip():
            return cls(email=raw.strip())
        if isinstance(raw, dict):
            email = raw.get("email", raw.get("value"))
            if isinstance(email, str) and email.strip():
                entry_type = raw.get("type")
                verified = raw.get("verified")
                status = raw.get("status")
                return cls(
                    email=email.strip(),
                    type=entry_type if isinstance(entry_type, str) and entry_type else "general",
                    verified=verified if isinstance(verified, bool) else None,
                    status=status if isinstance(status, str) else None,
                )
        return None


@dataclass
class PhoneEntry:
    number: str
    type: str = "main"

    def to_dict(self) -> dict[str, Any]:
        return {"number": self.number, "type": self.type}

    @classmethod
    def from_raw(cls, raw: Any) -> "PhoneEntry | None":
        if isinstance(raw, str) and raw.strip():
            return cls(number=raw.strip())
        if isinstance(raw, dict):
            number = raw.get("number", raw.get("value"))
            if isinstance(number, str) and number.strip():
                entry_type = raw.get("type")
                return cls(number=number.strip(), type=entry_type if isinstance(entry_type, str) and entry_type else "main")
        return None


FieldValue = Union[str, list[EmailEntry], list[PhoneEntry], dict[str, str]]


def clamp_score(raw: Any) -> float:
    """Coerce a provider-supplied score into [0, 1]; non-numbers count as 0"""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return 0.0
    if raw != raw:  # NaN
        return 0.0
    return max(0.0, min(float(raw), 1.0))


def _parse_social(raw: Any) -> dict[str, str] | None:
    if not isinstance(raw, dict):
        return None
    profiles = {
        str(platform).lower(): url.strip()
        for platform, url in raw.items()
        if isinstance(url, str) and url.strip()
    }
    return profiles or None


def parse_field_value(enrichable: EnrichableField, raw: Any) -> FieldValue | None:
    """
    Type a raw value for a field

    Returns None for null, empty or malformed values so they count as
    missing.
    """
    if raw is None:
        return None
    if enrichable in TEXT_FIELDS:
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
        return None
    if enrichable == EnrichableField.EMAILS:
        if not isinstance(raw, list):
            raw = [raw]
        emails = [e for e in (EmailEntry.from_raw(item) for item in raw) if e is not None]
        return emails or None
    if enrichable == EnrichableField.PHONES:
        if not isinstance(raw, list):
            raw = [raw]
        phones = [p for p in (PhoneEntry.from_raw(item) for item in raw) if p is not None]
        return phones or None
    if enrichable == EnrichableField.SOCIAL_PROFILES:
        return _parse_social(raw)
    return None


def serialize_value(value: FieldValue | None) -> Any:
    """Plain JSON-compatible form of a typed field value"""
    if isinstance(value, list):
        return [item.to_dict() for item in value]
    if isinstance(value, dict):
        return dict(value)
    return value


@dataclass
class FieldResult:
    """One reconciled field value with its confidence and origin"""

    value: FieldValue | None
    score: float
    source: str
    providers: list[str] = field(default_factory=list)
    consensus: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": serialize_value(self.value),
            "score": self.score,
            "source": self.source,
            "providers": list(self.providers),
            "consensus": self.consensus,
        }


@dataclass
class EnrichmentResult:
    """
    Output of one enrichment call

    ``fields`` holds an entry for every field the call reports on. The full
    consensus path reports every field (None when nothing qualified); the
    quick path only reports fields that passed the confidence filter.
    """

    fields: dict[EnrichableField, FieldResult | None] = field(default_factory=dict)
    providers_used: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    def get(self, enrichable: EnrichableField) -> FieldResult | None:
        return self.fields.get(enrichable)

    def value_of(self, enrichable: EnrichableField) -> FieldValue | None:
        result = self.fields.get(enrichable)
        return result.value if result else None

    def score_of(self, enrichable: EnrichableField) -> float | None:
        result = self.fields.get(enrichable)
        return result.score if result else None

    @property
    def website(self) -> FieldResult | None:
        return self.get(EnrichableField.WEBSITE)

    @property
    def description(self) -> FieldResult | None:
        return self.get(EnrichableField.DESCRIPTION)

    def enriched_fields(self) -> list[str]:
        return [f.value for f, r in self.fields.items() if r is not None]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {f.value: (r.to_dict() if r else None) for f, r in self.fields.items()}
        data["providersUsed"] = list(self.providers_used)
        data["errors"] = [dict(e) for e in self.errors]
        return data


@dataclass(frozen=True)
class ClientContext:
    """Read-only snapshot of what is already known about a client"""

    nombre: str
    email: str | None = None
    telefono: str | None = None
    direccion: str | None = None
    ciudad: str | None = None
    industria: str | None = None
    sitio_web: str | None = None
    notas: str | None = None


@dataclass
class ClientProfile:
    """Client row as seen by the enrichment engine"""

    id: str
    nombre: str
    email: str | None = None
    telefono: str | None = None
    direccion: str | None = None
    ciudad: str | None = None
    provincia: str | None = None
    industria: str | None = None
    sitio_web: str | None = None
    notas: str | None = None
    facebook: str | None = None
    instagram: str | None = None
    linkedin: str | None = None
    twitter: str | None = None
    whatsapp: str | None = None
    enrichment_status: ClientEnrichmentStatus = ClientEnrichmentStatus.NONE
    ultima_ia: datetime | None = None

    def to_context(self) -> ClientContext:
        return ClientContext(
            nombre=self.nombre,
            email=self.email,
            telefono=self.telefono,
            direccion=self.direccion,
            ciudad=self.ciudad,
            industria=self.industria,
            sitio_web=self.sitio_web,
            notas=self.notas,
        )

    @property
    def location(self) -> str | None:
        return self.ciudad or self.provincia or None


@dataclass
class EnrichmentRecord:
    """Durable history entry for one enrichment run"""

    client_id: str
    id: str = field(default_factory=generate_uuid)
    website: str | None = None
    website_score: float | None = None
    emails: list[EmailEntry] | None = None
    phones: list[PhoneEntry] | None = None
    address: str | None = None
    address_score: float | None = None
    description: str | None = None
    description_score: float | None = None
    industry: str | None = None
    industry_score: float | None = None
    company_size: str | None = None
    company_size_score: float | None = None
    social_profiles: dict[str, str] | None = None
    ai_providers_used: list[str] = field(default_factory=list)
    status: RecordStatus = RecordStatus.PENDING
    field_statuses: dict[str, ReviewStatus] = field(default_factory=dict)
    enriched_at: datetime = field(default_factory=utcnow)
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    version: int = 1

    @classmethod
    def from_result(cls, client_id: str, result: EnrichmentResult, only: list[EnrichableField] | None = None):
        """
        Flatten an enrichment result into a new pending record

        ``only`` restricts which fields are copied; the result itself is
        never referenced by the record afterwards.
        """
        wanted = set(only) if only is not None else set(EnrichableField)

        def pick(enrichable):
            if enrichable not in wanted:
                return None, None
            fr = result.get(enrichable)
            if fr is None or fr.value is None:
                return None, None
            return fr.value, fr.score

        website, website_score = pick(EnrichableField.WEBSITE)
        emails, _ = pick(EnrichableField.EMAILS)
        phones, _ = pick(EnrichableField.PHONES)
        address, address_score = pick(EnrichableField.ADDRESS)
        description, description_score = pick(EnrichableField.DESCRIPTION)
        industry, industry_score = pick(EnrichableField.INDUSTRY)
        company_size, company_size_score = pick(EnrichableField.COMPANY_SIZE)
        social, _ = pick(EnrichableField.SOCIAL_PROFILES)

        return cls(
            client_id=client_id,
            website=website,
            website_score=website_score,
            emails=[EmailEntry(**vars(e)) for e in emails] if emails else None,
            phones=[PhoneEntry(**vars(p)) for p in phones] if phones else None,
            address=address,
            address_score=address_score,
            description=description,
            description_score=description_score,
            industry=industry,
            industry_score=industry_score,
            company_size=company_size,
            company_size_score=company_size_score,
            social_profiles=dict(social) if social else None,
            ai_providers_used=list(result.providers_used),
        )

    def pending_fields(self) -> list[str]:
        return [name for name, status in self.field_statuses.items() if status == ReviewStatus.PENDING]

    @property
    def all_reviewed(self) -> bool:
        return all(status != ReviewStatus.PENDING for status in self.field_statuses.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "clienteId": self.client_id,
            "website": self.website,
            "websiteScore": self.website_score,
            "emails": serialize_value(self.emails),
            "phones": serialize_value(self.phones),
            "address": self.address,
            "addressScore": self.address_score,
            "description": self.description,
            "descriptionScore": self.description_score,
            "industry": self.industry,
            "industryScore": self.industry_score,
            "companySize": self.company_size,
            "companySizeScore": self.company_size_score,
            "socialProfiles": serialize_value(self.social_profiles),
            "aiProvidersUsed": list(self.ai_providers_used),
            "status": self.status.value,
            "fieldStatuses": {k: v.value for k, v in self.field_statuses.items()},
            "enrichedAt": self.enriched_at.isoformat() if self.enriched_at else None,
            "reviewedAt": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "reviewedBy": self.reviewed_by,
            "version": self.version,
        }


@dataclass
class BulkEnrichOptions:
    client_ids: list[str]
    include_ai: bool = True
    include_website_analysis: bool = False
    provider: str | None = None
    user_id: str | None = None


@dataclass
class BulkProgress:
    """Running counters handed to the progress callback"""

    total: int
    completed: int = 0
    successful: int = 0
    failed: int = 0
    current_client_id: str | None = None
    current_client_name: str | None = None


@dataclass
class ClientBulkResult:
    client_id: str
    client_name: str
    success: bool = False
    ai_enriched: bool = False
    website_analyzed: bool = False
    error: str | None = None


@dataclass
class BulkEnrichmentResult:
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: list[ClientBulkResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ReviewOutcome:
    """Result of a single-client review call"""

    action: ReviewAction
    record_id: str
    fields: list[str]
    field_statuses: dict[str, ReviewStatus]
    all_reviewed: bool
    record_status: RecordStatus
    client_status: ClientEnrichmentStatus
    client_patch: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass
class BulkReviewOutcome:
    """Result of a review applied across many clients"""

    count: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
