"""
Tests for the ordered fallback used by quick enrichment
"""
import logging

import pytest

from d4_enrichment.retry import FallbackFailure, OrderedFallback


class Exhausted(Exception):
    def __init__(self, failures):
        self.failures = failures
        super().__init__("; ".join(f"{f.candidate}: {f.error}" for f in failures))


@pytest.mark.asyncio
async def test_first_success_wins():
    tried = []

    async def action(candidate):
        tried.append(candidate)
        if candidate == "openai":
            raise RuntimeError("openai: HTTP 500")
        return f"{candidate} ok"

    fallback = OrderedFallback(["openai", "gemini", "grok"], action, Exhausted)

    assert await fallback.run() == "gemini ok"
    assert tried == ["openai", "gemini"]
    assert fallback.failures == [FallbackFailure("openai", "openai: HTTP 500")]


@pytest.mark.asyncio
async def test_all_failures_reported_in_order():
    async def action(candidate):
        if candidate == "gemini":
            raise TimeoutError()
        raise ValueError(f"{candidate} down")

    with pytest.raises(Exhausted) as exc_info:
        await OrderedFallback(["openai", "gemini"], action, Exhausted).run()

    assert [(f.candidate, f.error) for f in exc_info.value.failures] == [
        ("openai", "openai down"),
        ("gemini", "TimeoutError"),
    ]


@pytest.mark.asyncio
async def test_no_candidates_is_exhausted():
    async def action(candidate):
        return candidate

    with pytest.raises(Exhausted) as exc_info:
        await OrderedFallback([], action, Exhausted).run()

    assert exc_info.value.failures == []


@pytest.mark.asyncio
async def test_rerun_starts_with_clean_failures():
    outcomes = iter([RuntimeError("boom"), "done", "done"])

    async def action(candidate):
        outcome = next(outcomes)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    fallback = OrderedFallback(["a", "b"], action, Exhausted)
    await fallback.run()
    assert len(fallback.failures) == 1

    await fallback.run()
    assert fallback.failures == []


@pytest.mark.asyncio
async def test_failures_logged_with_domain_context(caplog):
    async def action(candidate):
        if candidate == "openai":
            raise RuntimeError("HTTP 500")
        return "ok"

    with caplog.at_level(logging.INFO, logger="d4_enrichment.retry"):
        await OrderedFallback(["openai", "gemini"], action, Exhausted).run()

    records = [r for r in caplog.records if r.name == "d4_enrichment.retry"]
    assert [r.levelname for r in records] == ["INFO", "WARNING", "INFO"]
    assert all(r.domain == "d4" for r in records)
