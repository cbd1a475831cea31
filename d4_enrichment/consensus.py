"""
Consensus Builder

Asks every configured AI provider for the same business fields and
reconciles their answers into one value per field:

- one qualifying answer (or verification disabled): best score wins
- identical answers: averaged score with a 10% agreement bonus
- differing answers: one arbitration call, else best score with a 10%
  penalty

Quick enrichment asks a single provider for a reduced field set and
walks the provider list in order when no provider is named.
"""

from dataclasses import dataclass
from typing import Any

from core.config import EnrichmentSettings, get_settings
from core.exceptions import ValidationError
from core.logging import get_logger
from d0_gateway.providers.llm import AIGateway, parse_json_response
from d0_gateway.types import CompletionOptions

from .exceptions import (
    AllProvidersFailedError,
    NoProvidersAvailableError,
    ProviderNotAvailableError,
    ResponseParseError,
)
from .models import (
    FULL_FIELDS,
    QUICK_FIELDS,
    ClientContext,
    EnrichableField,
    EnrichmentResult,
    FieldResult,
    FieldValue,
    clamp_score,
    parse_field_value,
    serialize_value,
)
from .prompts import ARBITRATION_SYSTEM_PROMPT, consensus_prompt, enrichment_messages
from .retry import OrderedFallback

logger = get_logger(__name__, domain="d4")

CONSENSUS_BONUS = 1.1
NO_CONSENSUS_PENALTY = 0.9
PARSE_FAILURE = "Failed to parse response as JSON"


@dataclass
class Candidate:
    """One provider's answer for one field"""

    provider: str
    value: FieldValue
    score: float
    source: str | None = None


def parse_provider_reply(content: str) -> dict[EnrichableField, tuple[FieldValue, float, str | None]] | None:
    """
    Typed ``{field: (value, score, source)}`` from a provider reply

    Returns None when the reply holds no JSON object. Null and malformed
    values are left out; scores are clamped to [0, 1].
    """
    parsed = parse_json_response(content)
    if not isinstance(parsed, dict):
        return None

    answers = {}
    for enrichable in EnrichableField:
        entry = parsed.get(enrichable.value)
        if not isinstance(entry, dict):
            continue
        value = parse_field_value(enrichable, entry.get("value"))
        if value is None:
            continue
        source = entry.get("source")
        answers[enrichable] = (value, clamp_score(entry.get("score")), source if isinstance(source, str) and source else None)
    return answers


def best_candidate(candidates: list[Candidate]) -> Candidate:
    """Highest score; the first-listed provider wins exact ties"""
    return max(candidates, key=lambda c: c.score)


def resolve_fields(fields) -> list[EnrichableField]:
    if fields is None:
        return list(FULL_FIELDS)
    resolved = []
    for name in fields:
        try:
            resolved.append(EnrichableField(name))
        except ValueError:
            raise ValidationError(f"Campo desconocido: {name}", field="fields")
    return resolved


class ConsensusBuilder:
    """Multi-provider enrichment with consensus"""

    def __init__(self, gateway: AIGateway | None = None, enrichment_settings: EnrichmentSettings | None = None):
        self.gateway = gateway or AIGateway()
        self.enrichment_settings = enrichment_settings or get_settings().enrichment_settings()

    def _full_options(self) -> CompletionOptions:
        return CompletionOptions(
            temperature=self.enrichment_settings.temperature,
            top_p=self.enrichment_settings.top_p,
            max_tokens=self.enrichment_settings.max_tokens,
        )

    async def enrich_client(self, client: ClientContext, fields: list[str] | None = None) -> EnrichmentResult:
        """
        Full enrichment across every available provider

        Raises:
            NoProvidersAvailableError: no provider is configured
        """
        requested = resolve_fields(fields)
        providers = self.gateway.get_available_providers()
        logger.info(f"Starting enrichment for {client.nombre} with providers {providers}")

        if not providers:
            logger.error("No AI providers configured")
            raise NoProvidersAvailableError()

        min_score = self.enrichment_settings.min_confidence_score
        options = self._full_options()
        messages = enrichment_messages(client, requested, self.enrichment_settings.match_mode)

        results, failures = await self.gateway.complete_multiple(providers, messages, options)
        errors = [{"provider": f.provider, "error": f.error} for f in failures]
        logger.info(f"Providers responded: {len(results)} ok, {len(failures)} failed")

        answers: list[tuple[str, dict]] = []
        for completion in results:
            parsed = parse_provider_reply(completion.content)
            if parsed is None:
                logger.warning(f"Failed to parse result from {completion.provider}: {completion.content[:300]}")
                errors.append({"provider": completion.provider, "error": PARSE_FAILURE})
                continue
            answers.append((completion.provider, parsed))

        result = EnrichmentResult(
            fields={f: None for f in FULL_FIELDS},
            providers_used=[provider for provider, _ in answers],
            errors=errors,
        )

        for enrichable in requested:
            candidates = [
                Candidate(provider, *parsed[enrichable]) for provider, parsed in answers if enrichable in parsed
            ]
            qualifying = [c for c in candidates if c.score >= min_score]
            if not qualifying:
                if candidates:
                    logger.debug(f"All results for {enrichable.value} below {min_score}")
                continue

            if len(qualifying) == 1 or not self.enrichment_settings.require_verification:
                best = best_candidate(qualifying)
                result.fields[enrichable] = FieldResult(
                    value=best.value,
                    score=best.score,
                    source=best.source or f"From {best.provider}",
                    providers=[best.provider],
                    consensus=False,
                )
            else:
                result.fields[enrichable] = await self._reconcile(enrichable, qualifying, options)

        logger.info(
            f"Enrichment complete for {client.nombre}: fields {result.enriched_fields()}, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _reconcile(
        self, enrichable: EnrichableField, candidates: list[Candidate], options: CompletionOptions
    ) -> FieldResult:
        providers = [c.provider for c in candidates]
        first = candidates[0].value

        if all(c.value == first for c in candidates):
            average = sum(c.score for c in candidates) / len(candidates)
            return FieldResult(
                value=first,
                score=min(average * CONSENSUS_BONUS, 1.0),
                source=f"Consensus from {len(candidates)} providers",
                providers=providers,
                consensus=True,
            )

        arbitrated = await self._arbitrate(enrichable, candidates, options)
        if arbitrated is not None:
            return arbitrated

        best = best_candidate(candidates)
        return FieldResult(
            value=best.value,
            score=best.score * NO_CONSENSUS_PENALTY,
            source=f"Best result from {best.provider} (no consensus)",
            providers=providers,
            consensus=False,
        )

    async def _arbitrate(
        self, enrichable: EnrichableField, candidates: list[Candidate], options: CompletionOptions
    ) -> FieldResult | None:
        available = self.gateway.get_available_providers()
        if not available:
            return None

        prompt = consensus_prompt(
            enrichable.value,
            [{"value": serialize_value(c.value), "score": c.score, "provider": c.provider} for c in candidates],
        )
        try:
            response = await self.gateway.complete(
                available[0],
                [
                    {"role": "system", "content": ARBITRATION_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                options,
            )
        except Exception as e:
            logger.warning(f"Arbitration call for {enrichable.value} failed: {e}")
            return None

        parsed: Any = parse_json_response(response.content)
        if not isinstance(parsed, dict):
            return None
        value = parse_field_value(enrichable, parsed.get("bestValue"))
        if value is None:
            return None

        reasoning = parsed.get("reasoning")
        return FieldResult(
            value=value,
            score=clamp_score(parsed.get("confidence")),
            source=reasoning if isinstance(reasoning, str) and reasoning else f"AI arbitration between {len(candidates)} providers",
            providers=[c.provider for c in candidates],
            consensus=True,
        )

    async def quick_enrich(self, client: ClientContext, provider: str | None = None) -> EnrichmentResult:
        """
        Single-provider enrichment over the quick field set

        With ``provider`` only that provider is used and its failure
        propagates. Without it, providers are tried in order until one
        succeeds. Fields below the confidence threshold are left out.

        Raises:
            NoProvidersAvailableError: no provider is configured
            ProviderNotAvailableError: the named provider is not configured
            AllProvidersFailedError: auto mode and every provider failed
        """
        available = self.gateway.get_available_providers()
        logger.info(f"Starting quick enrichment for {client.nombre} (provider: {provider or 'auto'})")

        if not available:
            logger.error("No AI providers available for quick enrich")
            raise NoProvidersAvailableError("No AI providers available")

        messages = enrichment_messages(client, QUICK_FIELDS, self.enrichment_settings.match_mode)
        options = CompletionOptions(
            temperature=self.enrichment_settings.temperature,
            top_p=self.enrichment_settings.top_p,
        )

        async def attempt(candidate: str) -> EnrichmentResult:
            return await self._quick_with(candidate, messages, options)

        if provider:
            if provider not in available:
                raise ProviderNotAvailableError(provider, available)
            return await attempt(provider)

        policy = OrderedFallback(
            candidates=list(available),
            action=attempt,
            on_exhausted=lambda failures: AllProvidersFailedError([(f.candidate, f.error) for f in failures]),
        )
        return await policy.run()

    async def _quick_with(self, provider: str, messages: list[dict], options: CompletionOptions) -> EnrichmentResult:
        response = await self.gateway.complete(provider, messages, options)
        parsed = parse_provider_reply(response.content)
        if parsed is None:
            logger.error(f"Failed to parse quick enrich response: {response.content[:500]}")
            raise ResponseParseError(provider)

        min_score = self.enrichment_settings.min_confidence_score
        result = EnrichmentResult(providers_used=[provider], errors=[])
        for enrichable, (value, score, source) in parsed.items():
            if score >= min_score:
                result.fields[enrichable] = FieldResult(
                    value=value,
                    score=score,
                    source=source or f"From {provider}",
                    providers=[provider],
                    consensus=False,
                )
            else:
                logger.debug(f"Quick enrich dropped {enrichable.value}: score {score} below {min_score}")

        logger.info(f"Quick enrichment complete for provider {provider}: {result.enriched_fields()}")
        return result
