"""
Tests for multi-provider consensus and quick enrichment
"""
import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from core.config import EnrichmentSettings
from core.exceptions import ValidationError
from d0_gateway.types import ProviderFailure
from d4_enrichment.consensus import ConsensusBuilder, parse_provider_reply, resolve_fields
from d4_enrichment.exceptions import AllProvidersFailedError, NoProvidersAvailableError, ProviderNotAvailableError
from d4_enrichment.models import FULL_FIELDS, ClientContext, EmailEntry, EnrichableField, clamp_score
from tests.helpers import completion, mock_ai_gateway

ACME = ClientContext(nombre="Acme SAC", ciudad="Lima")


def field_reply(**fields):
    return {name: {"value": value, "score": score, "source": f"visto en {name}"} for name, (value, score) in fields.items()}


@pytest.fixture
def gateway():
    return mock_ai_gateway(["openai", "gemini"])


@pytest.fixture
def builder(gateway):
    return ConsensusBuilder(gateway=gateway, enrichment_settings=EnrichmentSettings())


class TestFullEnrichment:
    @pytest.mark.asyncio
    async def test_agreement_earns_bonus(self, builder, gateway):
        reply = field_reply(industry=("Retail", 0.85))
        gateway.complete_multiple.return_value = ([completion("openai", reply), completion("gemini", reply)], [])

        result = await builder.enrich_client(ACME)

        industry = result.get(EnrichableField.INDUSTRY)
        assert industry.value == "Retail"
        assert industry.score == pytest.approx(0.935)
        assert industry.consensus is True
        assert industry.providers == ["openai", "gemini"]
        assert industry.source == "Consensus from 2 providers"
        gateway.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_agreement_bonus_is_capped(self, builder, gateway):
        reply = field_reply(website=("https://acme.pe", 0.98))
        gateway.complete_multiple.return_value = ([completion("openai", reply), completion("gemini", reply)], [])

        result = await builder.enrich_client(ACME)

        assert result.score_of(EnrichableField.WEBSITE) == 1.0

    @pytest.mark.asyncio
    async def test_every_field_reported(self, builder, gateway):
        gateway.complete_multiple.return_value = (
            [completion("openai", field_reply(industry=("Retail", 0.8), address=("Av. Lima 1", 0.5)))],
            [],
        )

        result = await builder.enrich_client(ACME)

        assert set(result.fields) == set(FULL_FIELDS)
        assert result.get(EnrichableField.ADDRESS) is None
        assert result.enriched_fields() == ["industry"]
        industry = result.get(EnrichableField.INDUSTRY)
        assert industry.source == "visto en industry"
        assert industry.consensus is False

    @pytest.mark.asyncio
    async def test_disagreement_is_arbitrated(self, builder, gateway):
        gateway.complete_multiple.return_value = (
            [
                completion("openai", field_reply(industry=("Retail", 0.8))),
                completion("gemini", field_reply(industry=("Comercio minorista", 0.9))),
            ],
            [],
        )
        gateway.complete.return_value = completion(
            "openai", {"bestValue": "Retail", "confidence": 0.88, "reasoning": "Ambos describen venta minorista"}
        )

        result = await builder.enrich_client(ACME)

        industry = result.get(EnrichableField.INDUSTRY)
        assert industry.value == "Retail"
        assert industry.score == 0.88
        assert industry.consensus is True
        assert industry.source == "Ambos describen venta minorista"
        assert gateway.complete.await_args.args[0] == "openai"

    @pytest.mark.asyncio
    async def test_failed_arbitration_falls_back_to_best_with_penalty(self, builder, gateway):
        gateway.complete_multiple.return_value = (
            [
                completion("openai", field_reply(industry=("Retail", 0.8))),
                completion("gemini", field_reply(industry=("Comercio", 0.9))),
            ],
            [],
        )
        gateway.complete.side_effect = RuntimeError("timeout")

        result = await builder.enrich_client(ACME)

        industry = result.get(EnrichableField.INDUSTRY)
        assert industry.value == "Comercio"
        assert industry.score == pytest.approx(0.81)
        assert industry.consensus is False
        assert industry.source == "Best result from gemini (no consensus)"

    @pytest.mark.asyncio
    async def test_tie_goes_to_first_provider(self, builder, gateway):
        gateway.complete_multiple.return_value = (
            [
                completion("openai", field_reply(industry=("Retail", 0.8))),
                completion("gemini", field_reply(industry=("Comercio", 0.8))),
            ],
            [],
        )
        gateway.complete.return_value = completion("openai", "no tengo opinion")

        result = await builder.enrich_client(ACME)

        assert result.value_of(EnrichableField.INDUSTRY) == "Retail"

    @pytest.mark.asyncio
    async def test_verification_disabled_takes_best(self, gateway):
        builder = ConsensusBuilder(gateway=gateway, enrichment_settings=EnrichmentSettings(require_verification=False))
        gateway.complete_multiple.return_value = (
            [
                completion("openai", field_reply(industry=("Retail", 0.75))),
                completion("gemini", field_reply(industry=("Comercio", 0.9))),
            ],
            [],
        )

        result = await builder.enrich_client(ACME)

        assert result.value_of(EnrichableField.INDUSTRY) == "Comercio"
        assert result.score_of(EnrichableField.INDUSTRY) == 0.9
        gateway.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_errors_collect_failures_and_parse_errors(self, builder, gateway):
        gateway.complete_multiple.return_value = (
            [completion("gemini", "lo siento, no puedo")],
            [ProviderFailure(provider="openai", error="openai: HTTP 500")],
        )

        result = await builder.enrich_client(ACME)

        assert result.providers_used == []
        assert result.errors == [
            {"provider": "openai", "error": "openai: HTTP 500"},
            {"provider": "gemini", "error": "Failed to parse response as JSON"},
        ]
        assert result.enriched_fields() == []

    @pytest.mark.asyncio
    async def test_requested_fields_limit_the_prompt(self, builder, gateway):
        gateway.complete_multiple.return_value = (
            [completion("openai", field_reply(industry=("Retail", 0.9), website=("https://acme.pe", 0.9)))],
            [],
        )

        result = await builder.enrich_client(ACME, fields=["industry"])

        assert result.enriched_fields() == ["industry"]
        assert set(result.fields) == set(FULL_FIELDS)

    @pytest.mark.asyncio
    async def test_no_providers(self):
        builder = ConsensusBuilder(gateway=mock_ai_gateway([]), enrichment_settings=EnrichmentSettings())

        with pytest.raises(NoProvidersAvailableError):
            await builder.enrich_client(ACME)


class TestQuickEnrichment:
    @pytest.mark.asyncio
    async def test_named_provider_must_be_configured(self, builder):
        with pytest.raises(ProviderNotAvailableError) as exc_info:
            await builder.quick_enrich(ACME, provider="grok")

        assert exc_info.value.message == "Provider 'grok' is not available. Available: openai, gemini"

    @pytest.mark.asyncio
    async def test_named_provider_failure_propagates(self, builder, gateway):
        gateway.complete.side_effect = RuntimeError("down")

        with pytest.raises(RuntimeError):
            await builder.quick_enrich(ACME, provider="gemini")

    @pytest.mark.asyncio
    async def test_auto_mode_walks_providers_in_order(self, builder, gateway):
        gateway.complete.side_effect = [
            RuntimeError("openai down"),
            completion("gemini", field_reply(website=("https://acme.pe", 0.9), industry=("Retail", 0.4))),
        ]

        result = await builder.quick_enrich(ACME)

        assert result.providers_used == ["gemini"]
        assert list(result.fields) == [EnrichableField.WEBSITE]
        assert result.get(EnrichableField.WEBSITE).providers == ["gemini"]
        assert [call.args[0] for call in gateway.complete.await_args_list] == ["openai", "gemini"]

    @pytest.mark.asyncio
    async def test_all_providers_failed(self, builder, gateway):
        gateway.complete.side_effect = [RuntimeError("boom"), completion("gemini", "sin json")]

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await builder.quick_enrich(ACME)

        assert exc_info.value.message == (
            "All AI providers failed. openai: boom; gemini: Failed to parse AI response from gemini"
        )
        assert [p for p, _ in exc_info.value.failures] == ["openai", "gemini"]

    @pytest.mark.asyncio
    async def test_no_providers(self):
        builder = ConsensusBuilder(gateway=mock_ai_gateway([]), enrichment_settings=EnrichmentSettings())

        with pytest.raises(NoProvidersAvailableError) as exc_info:
            await builder.quick_enrich(ACME)
        assert exc_info.value.message == "No AI providers available"


class TestReplyParsing:
    def test_typed_values(self):
        parsed = parse_provider_reply(
            '```json\n{"emails": {"value": ["info@acme.pe", {"email": "ventas@acme.pe", "type": "sales"}], "score": 0.8},'
            ' "website": {"value": "  ", "score": 0.9}, "phones": null}\n```'
        )

        value, score, source = parsed[EnrichableField.EMAILS]
        assert value == [EmailEntry("info@acme.pe"), EmailEntry("ventas@acme.pe", type="sales")]
        assert score == 0.8
        assert source is None
        assert EnrichableField.WEBSITE not in parsed
        assert EnrichableField.PHONES not in parsed

    def test_non_object_reply(self):
        assert parse_provider_reply("[1, 2]") is None

    def test_unknown_requested_field(self):
        with pytest.raises(ValidationError):
            resolve_fields(["website", "revenue"])

    @given(st.one_of(st.floats(allow_nan=True, allow_infinity=True), st.integers(), st.text(), st.none(), st.booleans()))
    def test_clamp_score_always_in_range(self, raw):
        assert 0.0 <= clamp_score(raw) <= 1.0


PROVIDERS = ["openai", "gemini", "grok", "deepseek"]

provider_scores = st.lists(
    st.floats(min_value=-0.5, max_value=1.5, allow_nan=False), min_size=1, max_size=len(PROVIDERS)
)


class TestConfidenceFilter:
    @given(scores=provider_scores)
    @settings(max_examples=60, deadline=None)
    def test_sub_threshold_values_never_win(self, scores):
        providers = PROVIDERS[: len(scores)]
        gateway = mock_ai_gateway(providers)
        gateway.complete_multiple.return_value = (
            [
                completion(provider, field_reply(industry=(f"Rubro {i}", score)))
                for i, (provider, score) in enumerate(zip(providers, scores))
            ],
            [],
        )
        gateway.complete.side_effect = RuntimeError("arbitration unavailable")
        enrichment_settings = EnrichmentSettings()
        builder = ConsensusBuilder(gateway=gateway, enrichment_settings=enrichment_settings)

        result = asyncio.run(builder.enrich_client(ACME, fields=["industry"]))

        qualifying = [
            (provider, f"Rubro {i}")
            for i, (provider, score) in enumerate(zip(providers, scores))
            if clamp_score(score) >= enrichment_settings.min_confidence_score
        ]
        industry = result.get(EnrichableField.INDUSTRY)
        if not qualifying:
            assert industry is None
        else:
            assert industry.value in [value for _, value in qualifying]
            assert industry.providers == [provider for provider, _ in qualifying]
        assert gateway.complete.await_count == (1 if len(qualifying) >= 2 else 0)

    @given(
        scores=provider_scores,
        values=st.lists(st.sampled_from(["Retail", "Comercio"]), min_size=len(PROVIDERS), max_size=len(PROVIDERS)),
        arbitration_confidence=st.floats(min_value=-5, max_value=5, allow_nan=False),
    )
    @settings(max_examples=60, deadline=None)
    def test_scores_stay_in_unit_range(self, scores, values, arbitration_confidence):
        providers = PROVIDERS[: len(scores)]
        gateway = mock_ai_gateway(providers)
        gateway.complete_multiple.return_value = (
            [
                completion(provider, field_reply(industry=(value, score), website=("https://acme.pe", score)))
                for provider, value, score in zip(providers, values, scores)
            ],
            [],
        )
        gateway.complete.return_value = completion(
            "openai", {"bestValue": "Retail", "confidence": arbitration_confidence, "reasoning": "mayoria"}
        )
        builder = ConsensusBuilder(gateway=gateway, enrichment_settings=EnrichmentSettings())

        result = asyncio.run(builder.enrich_client(ACME))

        for field_result in result.fields.values():
            if field_result is not None:
                assert 0.0 <= field_result.score <= 1.0


class TestQuickFallbackChain:
    @pytest.mark.asyncio
    async def test_third_provider_answers_after_two_failures(self):
        gateway = mock_ai_gateway(["openai", "gemini", "grok"])
        gateway.complete.side_effect = [
            RuntimeError("openai: HTTP 500"),
            TimeoutError(),
            completion("grok", field_reply(website=("https://acme.pe", 0.9), description=("Tienda de ropa", 0.8))),
        ]
        builder = ConsensusBuilder(gateway=gateway, enrichment_settings=EnrichmentSettings())

        result = await builder.quick_enrich(ACME)

        assert result.providers_used == ["grok"]
        assert result.errors == []
        assert result.value_of(EnrichableField.WEBSITE) == "https://acme.pe"
        assert result.get(EnrichableField.DESCRIPTION).providers == ["grok"]
        assert [call.args[0] for call in gateway.complete.await_args_list] == ["openai", "gemini", "grok"]
