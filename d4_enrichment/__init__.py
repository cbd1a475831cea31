"""
D4 Enrichment Domain

AI enrichment of CRM client records: multi-provider consensus, external
verification, per-field human review and bulk runs.

Components:
- Consensus: query AI providers and reconcile their answers per field
- Post-processing: verify and supplement results with external APIs
- Review: per-field confirm/reject/edit with client record updates
- Coordinator: bounded-concurrency bulk enrichment and reporting
- Service: single-client enrichment lifecycle
"""

from .consensus import ConsensusBuilder
from .coordinator import BulkEnrichmentCoordinator
from .models import (
    BulkEnrichmentResult,
    BulkEnrichOptions,
    BulkProgress,
    ClientContext,
    EnrichableField,
    EnrichmentRecord,
    EnrichmentResult,
    FieldResult,
    ReviewableField,
    ReviewStatus,
)
from .post_processor import EnrichmentPostProcessor, PostProcessOptions
from .repository import EnrichmentRepository, SqlAlchemyEnrichmentRepository
from .review import FieldReviewer, build_field_statuses
from .service import EnrichmentService, EnrichOptions

__all__ = [
    "BulkEnrichmentCoordinator",
    "BulkEnrichmentResult",
    "BulkEnrichOptions",
    "BulkProgress",
    "ClientContext",
    "ConsensusBuilder",
    "EnrichableField",
    "EnrichmentPostProcessor",
    "EnrichmentRecord",
    "EnrichmentRepository",
    "EnrichmentResult",
    "EnrichmentService",
    "EnrichOptions",
    "FieldResult",
    "FieldReviewer",
    "PostProcessOptions",
    "ReviewableField",
    "ReviewStatus",
    "SqlAlchemyEnrichmentRepository",
    "build_field_statuses",
]
