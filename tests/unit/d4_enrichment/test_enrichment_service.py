"""
Tests for single-client enrichment, history and review delegation
"""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.exceptions import NotFoundError, ValidationError
from core.utils import utcnow
from d4_enrichment.models import (
    ClientEnrichmentStatus,
    EnrichableField,
    EnrichmentResult,
    FieldResult,
    RecordStatus,
    ReviewStatus,
)
from d4_enrichment.post_processor import PostProcessResult
from d4_enrichment.service import EnrichmentService, EnrichOptions
from d4_enrichment.url_verification import UrlVerification
from d4_enrichment.website_analysis import WebsiteAnalysisResult
from tests.helpers import make_record


def consensus_result():
    return EnrichmentResult(
        fields={
            EnrichableField.WEBSITE: FieldResult(
                value="https://acme.pe", score=0.8, source="sitio oficial", providers=["openai", "gemini"], consensus=True
            ),
            EnrichableField.INDUSTRY: FieldResult(value="Retail", score=0.9, source="From openai", providers=["openai"]),
            EnrichableField.ADDRESS: None,
        },
        providers_used=["openai", "gemini"],
        errors=[{"provider": "grok", "error": "grok: HTTP 500"}],
    )


@pytest.fixture
def consensus():
    builder = MagicMock()
    builder.enrich_client = AsyncMock(return_value=consensus_result())
    builder.quick_enrich = AsyncMock(return_value=consensus_result())
    return builder


@pytest.fixture
def url_verifier():
    verifier = MagicMock()
    verifier.verify_url = AsyncMock(
        return_value=UrlVerification(url="https://www.acme.pe", is_accessible=True, confidence=0.9)
    )
    return verifier


@pytest.fixture
def analyzer():
    website = MagicMock()
    website.analyze = AsyncMock(
        return_value=WebsiteAnalysisResult(url="https://acme.pe", success=True, seo_title="Acme", has_https=True)
    )
    return website


@pytest.fixture
def post_processor():
    processor = MagicMock()
    processor.process = AsyncMock()
    return processor


@pytest.fixture
def service(repository, consensus, url_verifier, analyzer, post_processor):
    return EnrichmentService(
        repository=repository,
        consensus=consensus,
        url_verifier=url_verifier,
        post_processor=post_processor,
        website_analyzer=analyzer,
    )


class TestAiEnrichment:
    @pytest.mark.asyncio
    async def test_full_enrichment_stores_pending_record(self, service, repository, add_client, activities):
        client_id = add_client(ciudad="Lima")

        outcome = await service.enrich(client_id)

        assert outcome.mode == "ai"
        assert outcome.cooldown_warning is False
        assert outcome.hours_ago is None
        assert outcome.errors == [{"provider": "grok", "error": "grok: HTTP 500"}]

        record = await repository.latest_pending_record(client_id)
        assert record.id == outcome.record.id
        assert record.industry == "Retail"
        assert record.ai_providers_used == ["openai", "gemini"]
        assert record.field_statuses == {"website": ReviewStatus.PENDING, "industry": ReviewStatus.PENDING}
        assert (await repository.get_client(client_id)).enrichment_status == ClientEnrichmentStatus.PENDING
        assert activities(client_id) == ["Enriquecimiento IA completado. Providers: openai, gemini"]

    @pytest.mark.asyncio
    async def test_verified_website_blends_confidence(self, service, repository, add_client, url_verifier):
        client_id = add_client()

        outcome = await service.enrich(client_id)

        url_verifier.verify_url.assert_awaited_once_with("https://acme.pe", "Acme SAC")
        website = outcome.result.get(EnrichableField.WEBSITE)
        assert website.value == "https://www.acme.pe"
        assert website.score == pytest.approx(0.935)
        assert website.consensus is True
        assert outcome.record.website == "https://www.acme.pe"

    @pytest.mark.asyncio
    async def test_consensus_result_is_not_mutated(self, service, consensus, add_client):
        original = consensus_result()
        consensus.enrich_client.return_value = original

        await service.enrich(add_client())

        assert original.value_of(EnrichableField.WEBSITE) == "https://acme.pe"
        assert original.score_of(EnrichableField.WEBSITE) == 0.8

    @pytest.mark.asyncio
    async def test_missing_ownership_confidence_counts_as_half(self, service, add_client, url_verifier):
        url_verifier.verify_url.return_value = UrlVerification(url="https://acme.pe", is_accessible=True)

        outcome = await service.enrich(add_client())

        assert outcome.result.score_of(EnrichableField.WEBSITE) == pytest.approx(0.715)

    @pytest.mark.asyncio
    async def test_unreachable_website_left_untouched(self, service, add_client, url_verifier):
        url_verifier.verify_url.return_value = UrlVerification(url="https://acme.pe", error="timeout")

        outcome = await service.enrich(add_client())

        assert outcome.result.get(EnrichableField.WEBSITE).score == 0.8

    @pytest.mark.asyncio
    async def test_quick_mode_uses_named_provider(self, service, consensus, add_client):
        await service.enrich(add_client(), EnrichOptions(quick=True, provider="gemini"))

        consensus.quick_enrich.assert_awaited_once()
        assert consensus.quick_enrich.await_args.args[1] == "gemini"
        consensus.enrich_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_requested_fields_passed_through(self, service, consensus, add_client):
        await service.enrich(add_client(), EnrichOptions(fields=["website", "industry"]))

        assert consensus.enrich_client.await_args.args[1] == ["website", "industry"]

    @pytest.mark.asyncio
    async def test_external_apis(self, service, post_processor, add_client, activities):
        client_id = add_client(ciudad="Lima")
        enhanced = consensus_result()
        enhanced.fields[EnrichableField.ADDRESS] = FieldResult(
            value="Av. Arequipa 123", score=0.95, source="Google Places API"
        )
        post_processor.process.return_value = PostProcessResult(
            enhanced_result=enhanced,
            external_data_used=["google_places_address"],
            errors=["Hunter.io: Quota excedida para hunter. Reset en 2h 30m"],
        )

        outcome = await service.enrich(client_id, EnrichOptions(use_external_apis=True, verify_emails=False))

        options = post_processor.process.await_args.args[1]
        assert options.company_name == "Acme SAC"
        assert options.location == "Lima"
        assert options.verify_emails is False
        assert outcome.record.address == "Av. Arequipa 123"
        assert outcome.external_data_used == ["google_places_address"]
        assert outcome.errors[-1] == {
            "provider": "external",
            "error": "Hunter.io: Quota excedida para hunter. Reset en 2h 30m",
        }
        assert activities(client_id) == [
            "Enriquecimiento IA completado. Providers: openai, gemini | APIs externas: google_places_address"
        ]

    @pytest.mark.asyncio
    async def test_external_apis_off_by_default(self, service, post_processor, add_client):
        await service.enrich(add_client())

        post_processor.process.assert_not_called()


class TestCooldown:
    @pytest.mark.asyncio
    async def test_recent_enrichment_warns(self, service, add_client):
        client_id = add_client()
        await service.enrich(client_id)

        outcome = await service.enrich(client_id)

        assert outcome.cooldown_warning is True
        assert outcome.hours_ago == 0.0

    @pytest.mark.asyncio
    async def test_old_enrichment_does_not_warn(self, service, repository, add_client):
        client_id = add_client()
        await repository.append_record(make_record(client_id, enriched_at=utcnow() - timedelta(hours=30)))

        outcome = await service.enrich(client_id)

        assert outcome.cooldown_warning is False
        assert outcome.hours_ago == pytest.approx(30.0, abs=0.1)


class TestValidation:
    @pytest.mark.asyncio
    async def test_invalid_mode(self, service, consensus):
        with pytest.raises(ValidationError) as exc_info:
            await service.enrich("c-1", EnrichOptions(mode="deep"))

        assert exc_info.value.message == 'Modo invalido. Usar "ai" o "web"'
        consensus.enrich_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_client(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.enrich("missing")

        assert exc_info.value.message == "Cliente no encontrado"

    @pytest.mark.asyncio
    async def test_deleted_client_is_not_found(self, service, add_client):
        client_id = add_client(deleted_at=utcnow())

        with pytest.raises(NotFoundError):
            await service.enrich(client_id)


class TestWebEnrichment:
    @pytest.mark.asyncio
    async def test_requires_a_website(self, service, add_client, analyzer):
        with pytest.raises(ValidationError) as exc_info:
            await service.enrich(add_client(), EnrichOptions(mode="web"))

        assert exc_info.value.message == "El cliente no tiene sitio web configurado"
        analyzer.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_analysis_saved_and_logged(self, service, repository, add_client, activities):
        client_id = add_client(sitio_web="acme.pe")

        outcome = await service.enrich(client_id, EnrichOptions(mode="web"))

        assert outcome.website_analysis.success is True
        stored = await repository.get_website_analysis(client_id)
        assert stored.seo_title == "Acme"
        assert stored.has_https is True
        assert activities(client_id) == ["Analisis web completado para acme.pe"]

    @pytest.mark.asyncio
    async def test_failed_analysis_not_saved(self, service, repository, add_client, analyzer):
        client_id = add_client(sitio_web="acme.pe")
        analyzer.analyze.return_value = WebsiteAnalysisResult(url="https://acme.pe", errors=["HTTP 503"])

        outcome = await service.enrich(client_id, EnrichOptions(mode="web"))

        assert outcome.website_analysis.errors == ["HTTP 503"]
        assert await repository.get_website_analysis(client_id) is None


class TestOverviewAndReview:
    @pytest.mark.asyncio
    async def test_latest_and_history(self, service, repository, add_client):
        client_id = add_client()
        older = make_record(client_id, enriched_at=utcnow() - timedelta(days=2))
        older.field_statuses = {"website": ReviewStatus.CONFIRMED, "industry": ReviewStatus.REJECTED}
        older.status = RecordStatus.CONFIRMED
        newer = make_record(client_id, enriched_at=utcnow() - timedelta(hours=1))
        await repository.append_record(older)
        await repository.append_record(newer, client_status=ClientEnrichmentStatus.PENDING)

        overview = await service.get_latest_and_history(client_id)

        assert overview.latest.id == newer.id
        assert [h.id for h in overview.history] == [newer.id, older.id]
        assert overview.history[1].fields_found == 2
        assert overview.history[1].fields_confirmed == 1
        assert overview.history[1].fields_rejected == 1
        assert overview.history[0].fields_found == 5
        assert overview.enrichment_status == ClientEnrichmentStatus.PENDING
        assert overview.website_analysis is None

    @pytest.mark.asyncio
    async def test_overview_for_unknown_client(self, service):
        with pytest.raises(NotFoundError):
            await service.get_latest_and_history("missing")

    @pytest.mark.asyncio
    async def test_review_after_enrichment(self, service, repository, add_client):
        client_id = add_client()
        await service.enrich(client_id)

        outcome = await service.review_fields(client_id, "confirm", ["website", "industry"], user_id="u-1")

        assert outcome.all_reviewed is True
        client = await repository.get_client(client_id)
        assert client.sitio_web == "https://www.acme.pe"
        assert client.industria == "Retail"
        assert client.enrichment_status == ClientEnrichmentStatus.COMPLETE
