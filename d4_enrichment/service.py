"""
Enrichment service

Entry point for a single client's enrichment lifecycle: launch an AI or
website enrichment, read the latest suggestion with its history, and
review suggested fields. Bulk runs are delegated to the coordinator.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from core.config import get_settings
from core.exceptions import NotFoundError, ValidationError
from core.logging import get_logger
from core.utils import utcnow

from .consensus import ConsensusBuilder
from .coordinator import BulkEnrichmentCoordinator, ProgressCallback
from .models import (
    BulkEnrichmentResult,
    BulkEnrichOptions,
    ClientEnrichmentStatus,
    ClientProfile,
    EnrichableField,
    EnrichmentRecord,
    EnrichmentResult,
    RecordStatus,
    ReviewOutcome,
    ReviewStatus,
)
from .post_processor import EnrichmentPostProcessor, PostProcessOptions
from .repository import EnrichmentRepository, SqlAlchemyEnrichmentRepository
from .review import FieldReviewer, build_field_statuses
from .url_verification import NO_AI_CONFIDENCE, UrlVerifier
from .website_analysis import HttpWebsiteAnalyzer, WebsiteAnalysisResult, WebsiteAnalyzer

logger = get_logger(__name__, domain="d4")

MODES = ("ai", "web")


@dataclass
class EnrichOptions:
    mode: str = "ai"
    fields: list[str] | None = None
    quick: bool = False
    provider: str | None = None
    use_external_apis: bool = False
    verify_emails: bool = True
    search_google_maps: bool = True
    user_id: str | None = None


@dataclass
class EnrichOutcome:
    mode: str
    cooldown_warning: bool = False
    hours_ago: float | None = None
    record: EnrichmentRecord | None = None
    result: EnrichmentResult | None = None
    external_data_used: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)
    website_analysis: WebsiteAnalysisResult | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class HistoryEntry:
    id: str
    enriched_at: datetime
    providers: list[str]
    fields_found: int
    fields_confirmed: int
    fields_rejected: int
    status: RecordStatus
    type: str = "ai"

    @classmethod
    def from_record(cls, record: EnrichmentRecord) -> "HistoryEntry":
        statuses = list(record.field_statuses.values())
        return cls(
            id=record.id,
            enriched_at=record.enriched_at,
            providers=list(record.ai_providers_used),
            fields_found=len(statuses),
            fields_confirmed=statuses.count(ReviewStatus.CONFIRMED),
            fields_rejected=statuses.count(ReviewStatus.REJECTED),
            status=record.status,
        )


@dataclass
class EnrichmentOverview:
    latest: EnrichmentRecord | None
    website_analysis: WebsiteAnalysisResult | None
    history: list[HistoryEntry]
    enrichment_status: ClientEnrichmentStatus


class EnrichmentService:
    """Single-client enrichment, history and review"""

    def __init__(
        self,
        repository: EnrichmentRepository | None = None,
        consensus: ConsensusBuilder | None = None,
        url_verifier: UrlVerifier | None = None,
        post_processor: EnrichmentPostProcessor | None = None,
        website_analyzer: WebsiteAnalyzer | None = None,
        coordinator: BulkEnrichmentCoordinator | None = None,
    ):
        self.repository = repository or SqlAlchemyEnrichmentRepository()
        self.consensus = consensus or ConsensusBuilder()
        self.url_verifier = url_verifier or UrlVerifier(gateway=self.consensus.gateway)
        self._post_processor = post_processor
        self.website_analyzer = website_analyzer or HttpWebsiteAnalyzer()
        self.coordinator = coordinator or BulkEnrichmentCoordinator(
            self.repository, consensus=self.consensus, website_analyzer=self.website_analyzer
        )
        self.reviewer = FieldReviewer(self.repository)
        self.cooldown_hours = get_settings().enrichment_cooldown_hours

    @property
    def post_processor(self) -> EnrichmentPostProcessor:
        # External API clients are only built when a caller asks for them
        if self._post_processor is None:
            self._post_processor = EnrichmentPostProcessor()
        return self._post_processor

    async def _require_client(self, client_id: str) -> ClientProfile:
        client = await self.repository.get_client(client_id)
        if client is None:
            raise NotFoundError("client", client_id, "Cliente no encontrado")
        return client

    async def _cooldown(self, client_id: str) -> tuple[bool, float | None]:
        latest = await self.repository.latest_record(client_id)
        if latest is None or latest.enriched_at is None:
            return False, None
        hours_ago = (utcnow() - latest.enriched_at).total_seconds() / 3600
        return hours_ago < self.cooldown_hours, round(hours_ago, 1)

    async def _log_activity(self, client_id: str, description: str, user_id: str | None, warnings: list[str]):
        try:
            await self.repository.add_activity(client_id, description, user_id)
        except Exception as e:
            logger.warning(f"Could not log activity for client {client_id}: {e}")
            warnings.append("No se pudo registrar la actividad")

    async def enrich(self, client_id: str, options: EnrichOptions | None = None) -> EnrichOutcome:
        """
        Launch an enrichment for one client

        Raises:
            NotFoundError: unknown client
            ValidationError: unknown mode, or web mode without a website
        """
        options = options or EnrichOptions()
        if options.mode not in MODES:
            raise ValidationError('Modo invalido. Usar "ai" o "web"', field="mode")

        client = await self._require_client(client_id)
        cooldown_warning, hours_ago = await self._cooldown(client_id)
        logger.info(f"Starting {options.mode} enrichment for client {client_id} (quick={options.quick})")

        outcome = EnrichOutcome(mode=options.mode, cooldown_warning=cooldown_warning, hours_ago=hours_ago)
        if options.mode == "web":
            await self._enrich_web(client, options, outcome)
        else:
            await self._enrich_ai(client, options, outcome)
        return outcome

    async def _enrich_ai(self, client: ClientProfile, options: EnrichOptions, outcome: EnrichOutcome) -> None:
        if options.quick:
            result = await self.consensus.quick_enrich(client.to_context(), options.provider)
        else:
            result = await self.consensus.enrich_client(client.to_context(), options.fields)

        result = await self._verify_website(result, client.nombre)

        external_errors: list[str] = []
        if options.use_external_apis:
            processed = await self.post_processor.process(
                result,
                PostProcessOptions(
                    company_name=client.nombre,
                    location=client.location,
                    verify_emails=options.verify_emails,
                    search_google_maps=options.search_google_maps,
                ),
            )
            result = processed.enhanced_result
            outcome.external_data_used = processed.external_data_used
            external_errors = processed.errors

        record = EnrichmentRecord.from_result(client.id, result)
        record.field_statuses = build_field_statuses(record)
        await self.repository.append_record(record, client_status=ClientEnrichmentStatus.PENDING)

        providers = ", ".join(result.providers_used) or "ninguno"
        external = f" | APIs externas: {', '.join(outcome.external_data_used)}" if outcome.external_data_used else ""
        await self._log_activity(
            client.id, f"Enriquecimiento IA completado. Providers: {providers}{external}", options.user_id, outcome.warnings
        )

        outcome.record = record
        outcome.result = result
        outcome.errors = [dict(e) for e in result.errors] + [
            {"provider": "external", "error": e} for e in external_errors
        ]

    async def _verify_website(self, result: EnrichmentResult, company_name: str) -> EnrichmentResult:
        """Replace a reachable website with its verified URL and blend in the ownership confidence"""
        website = result.website
        if website is None or not website.value:
            return result

        verification = await self.url_verifier.verify_url(website.value, company_name)
        if not verification.is_accessible:
            return result

        confidence = verification.confidence if verification.confidence is not None else NO_AI_CONFIDENCE
        verified = replace(
            website,
            value=verification.url,
            score=min((website.score + confidence) / 2 * 1.1, 1.0),
        )
        return replace(result, fields={**result.fields, EnrichableField.WEBSITE: verified})

    async def _enrich_web(self, client: ClientProfile, options: EnrichOptions, outcome: EnrichOutcome) -> None:
        if not client.sitio_web:
            raise ValidationError("El cliente no tiene sitio web configurado", field="sitio_web")

        analysis = await self.website_analyzer.analyze(client.sitio_web)
        if analysis.success:
            await self.repository.save_website_analysis(client.id, analysis)
        outcome.website_analysis = analysis
        await self._log_activity(
            client.id, f"Analisis web completado para {client.sitio_web}", options.user_id, outcome.warnings
        )

    async def get_latest_and_history(self, client_id: str) -> EnrichmentOverview:
        client = await self._require_client(client_id)
        records = await self.repository.list_records(client_id)
        return EnrichmentOverview(
            latest=records[0] if records else None,
            website_analysis=await self.repository.get_website_analysis(client_id),
            history=[HistoryEntry.from_record(r) for r in records],
            enrichment_status=client.enrichment_status,
        )

    async def review_fields(
        self,
        client_id: str,
        action: str,
        fields: list[str],
        edited_values: dict[str, Any] | None = None,
        enrichment_id: str | None = None,
        user_id: str | None = None,
    ) -> ReviewOutcome:
        return await self.reviewer.review_fields(
            client_id, action, fields, edited_values=edited_values, enrichment_id=enrichment_id, user_id=user_id
        )

    async def bulk_enrich(
        self, options: BulkEnrichOptions, on_progress: ProgressCallback | None = None
    ) -> BulkEnrichmentResult:
        return await self.coordinator.enrich_clients(options, on_progress)
