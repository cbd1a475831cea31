"""
Bulk Enrichment Coordinator

Runs quick AI enrichment and optional website analysis over a batch of
clients with a bounded number of clients in flight. A failure for one
client is recorded on that client's result and never aborts the batch.

Also serves the reporting queries behind the bulk enrichment screen.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from core.config import get_settings
from core.logging import get_logger

from .consensus import ConsensusBuilder
from .exceptions import BatchTooLargeError
from .models import (
    BulkEnrichmentResult,
    BulkEnrichOptions,
    BulkProgress,
    ClientBulkResult,
    ClientEnrichmentStatus,
    ClientProfile,
    EnrichableField,
    EnrichmentRecord,
)
from .repository import EnrichmentRepository
from .review import build_field_statuses
from .website_analysis import HttpWebsiteAnalyzer, WebsiteAnalyzer

logger = get_logger(__name__, domain="d4")

ProgressCallback = Callable[[BulkProgress], None]

# Fields kept from a quick enrichment in bulk mode
BULK_SAVED_FIELDS = [EnrichableField.WEBSITE, EnrichableField.DESCRIPTION, EnrichableField.INDUSTRY]

NO_DATA_ERROR = "No enrichment data obtained"


class BulkEnrichmentCoordinator:
    """
    Bounded-concurrency bulk enrichment

    At most ``max_concurrent`` clients are processed at once; there is no
    further queueing limit beyond the batch size cap.
    """

    def __init__(
        self,
        repository: EnrichmentRepository,
        consensus: ConsensusBuilder | None = None,
        website_analyzer: WebsiteAnalyzer | None = None,
        max_concurrent: int | None = None,
        max_batch_size: int | None = None,
    ):
        settings = get_settings()
        self.repository = repository
        self.consensus = consensus or ConsensusBuilder()
        self.website_analyzer = website_analyzer or HttpWebsiteAnalyzer()
        self.max_concurrent = max_concurrent or settings.bulk_max_concurrency
        self.max_batch_size = max_batch_size or settings.max_clients_per_batch

    async def enrich_clients(
        self, options: BulkEnrichOptions, on_progress: ProgressCallback | None = None
    ) -> BulkEnrichmentResult:
        if not options.client_ids:
            return BulkEnrichmentResult()
        if len(options.client_ids) > self.max_batch_size:
            raise BatchTooLargeError(self.max_batch_size, len(options.client_ids))

        clients = await self.repository.get_clients(options.client_ids)
        if not clients:
            return BulkEnrichmentResult()

        progress = BulkProgress(total=len(clients))
        batch = BulkEnrichmentResult(total=len(clients))
        semaphore = asyncio.Semaphore(self.max_concurrent)

        def report(client: ClientProfile | None = None) -> None:
            if on_progress is None:
                return
            snapshot = BulkProgress(
                total=progress.total,
                completed=progress.completed,
                successful=progress.successful,
                failed=progress.failed,
                current_client_id=client.id if client else None,
                current_client_name=client.nombre if client else None,
            )
            try:
                on_progress(snapshot)
            except Exception as e:
                logger.warning(f"Progress callback raised: {e}")

        async def process(client: ClientProfile) -> ClientBulkResult:
            async with semaphore:
                report(client)
                try:
                    result = await self._enrich_single_client(client, options, batch.warnings)
                except Exception as e:
                    logger.error(f"Bulk enrichment failed for client {client.id}: {e}")
                    result = ClientBulkResult(
                        client_id=client.id, client_name=client.nombre, error=str(e) or "Unknown error"
                    )

                if result.success:
                    progress.successful += 1
                else:
                    progress.failed += 1
                progress.completed += 1
                return result

        batch.results = list(await asyncio.gather(*(process(client) for client in clients)))
        batch.successful = progress.successful
        batch.failed = progress.failed
        report()

        logger.info(
            f"Bulk enrichment completed: {batch.total} total, {batch.successful} successful, {batch.failed} failed"
        )
        return batch

    async def _enrich_single_client(
        self, client: ClientProfile, options: BulkEnrichOptions, warnings: list[str]
    ) -> ClientBulkResult:
        result = ClientBulkResult(client_id=client.id, client_name=client.nombre)
        ai_error = None

        if options.include_ai:
            try:
                result.ai_enriched = await self._ai_pass(client, options.provider)
            except Exception as e:
                logger.warning(f"AI enrichment failed for client {client.id}: {e}")
                ai_error = str(e) or e.__class__.__name__

        if options.include_website_analysis and client.sitio_web:
            try:
                analysis = await self.website_analyzer.analyze(client.sitio_web)
                if analysis.success:
                    await self.repository.save_website_analysis(client.id, analysis)
                    result.website_analyzed = True
            except Exception as e:
                logger.warning(f"Website analysis failed for client {client.id}: {e}")

        result.success = result.ai_enriched or result.website_analyzed
        if not result.success:
            result.error = ai_error or NO_DATA_ERROR
            return result

        done = [label for label, ok in (("IA", result.ai_enriched), ("Website", result.website_analyzed)) if ok]
        try:
            await self.repository.add_activity(
                client.id, f"Enriquecimiento en bloque: {', '.join(done)}", options.user_id
            )
        except Exception as e:
            logger.warning(f"Failed to log enrichment activity for client {client.id}: {e}")
            warnings.append(f"{client.id}: no se pudo registrar la actividad")
        return result

    async def _ai_pass(self, client: ClientProfile, provider: str | None) -> bool:
        """Quick-enrich one client; True when a record was stored"""
        enriched = await self.consensus.quick_enrich(client.to_context(), provider)
        if not (enriched.value_of(EnrichableField.WEBSITE) or enriched.value_of(EnrichableField.DESCRIPTION)):
            return False

        record = EnrichmentRecord.from_result(client.id, enriched, only=BULK_SAVED_FIELDS)
        record.field_statuses = build_field_statuses(record)
        await self.repository.append_record(record, client_status=ClientEnrichmentStatus.PENDING, touch_ultima_ia=True)
        return True

    async def get_clients_needing_enrichment(self, limit: int | None = None) -> list[dict[str, Any]]:
        return await self.repository.clients_needing_enrichment(limit or self.max_batch_size)

    async def get_enrichment_stats(self) -> dict[str, int]:
        return await self.repository.enrichment_stats()

    async def get_pending_confirmation(self) -> list[dict[str, Any]]:
        """Latest pending suggestion per client next to the client's current values"""
        entries = []
        for client, record in await self.repository.pending_confirmation():
            entry = record.to_dict()
            entry["clienteName"] = client.nombre
            entry["currentWebsite"] = client.sitio_web
            entry["currentIndustry"] = client.industria
            entry["currentDescription"] = client.notas
            entries.append(entry)
        return entries
