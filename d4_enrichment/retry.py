"""
Ordered fallback policy

Runs candidate actions one after another until one succeeds, keeping
every failure. Used by quick enrichment to walk the provider list.
"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, TypeVar

from core.logging import get_logger

T = TypeVar("T")
K = TypeVar("K")

logger = get_logger(__name__, domain="d4")


@dataclass
class FallbackFailure(Generic[K]):
    candidate: K
    error: str


@dataclass
class OrderedFallback(Generic[K, T]):
    """
    Try ``action(candidate)`` for each candidate in order

    The first success wins. If every candidate fails, the exception built
    by ``on_exhausted`` from the accumulated failures is raised.
    """

    candidates: list[K]
    action: Callable[[K], Awaitable[T]]
    on_exhausted: Callable[[list[FallbackFailure[K]]], Exception]
    failures: list[FallbackFailure[K]] = field(default_factory=list)

    async def run(self) -> T:
        self.failures = []
        for candidate in self.candidates:
            try:
                logger.info(f"Trying candidate {candidate}")
                return await self.action(candidate)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.warning(f"Candidate {candidate} failed, trying next: {message}")
                self.failures.append(FallbackFailure(candidate=candidate, error=message))

        raise self.on_exhausted(list(self.failures))
