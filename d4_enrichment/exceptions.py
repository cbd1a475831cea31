"""
Enrichment domain exceptions
"""
from core.exceptions import ConflictError, EnrichmentEngineError, ValidationError


class NoProvidersAvailableError(EnrichmentEngineError):
    """No AI provider has a configured key"""

    def __init__(self, message: str = "No AI providers configured. Please add API keys in Settings."):
        super().__init__(message=message, error_code="NO_PROVIDERS", status_code=503)


class ProviderNotAvailableError(EnrichmentEngineError):
    """An explicitly requested provider is not configured"""

    def __init__(self, provider: str, available: list[str]):
        super().__init__(
            message=f"Provider '{provider}' is not available. Available: {', '.join(available)}",
            error_code="PROVIDER_NOT_AVAILABLE",
            details={"provider": provider, "available": list(available)},
            status_code=400,
        )
        self.provider = provider


class AllProvidersFailedError(EnrichmentEngineError):
    """Every provider tried in auto mode failed"""

    def __init__(self, failures: list[tuple[str, str]]):
        summary = "; ".join(f"{provider}: {error}" for provider, error in failures)
        super().__init__(
            message=f"All AI providers failed. {summary}",
            error_code="ALL_PROVIDERS_FAILED",
            details={"failures": [{"provider": p, "error": e} for p, e in failures]},
            status_code=502,
        )
        self.failures = list(failures)


class ResponseParseError(EnrichmentEngineError):
    """A provider reply did not contain usable JSON"""

    def __init__(self, provider: str):
        super().__init__(
            message=f"Failed to parse AI response from {provider}",
            error_code="RESPONSE_PARSE_ERROR",
            details={"provider": provider},
            status_code=502,
        )
        self.provider = provider


class BatchTooLargeError(ValidationError):
    def __init__(self, limit: int, requested: int):
        super().__init__(
            f"Maximum {limit} clients per bulk operation",
            field="client_ids",
            limit=limit,
            requested=requested,
        )
        self.error_code = "BATCH_TOO_LARGE"


class ReviewConflictError(ConflictError):
    """The enrichment record changed between read and write"""

    def __init__(self, record_id: str, expected_version: int):
        super().__init__(
            f"El enriquecimiento {record_id} fue modificado por otra operacion",
            record_id=record_id,
            expected_version=expected_version,
        )
        self.error_code = "REVIEW_CONFLICT"
        self.record_id = record_id


class InvalidReviewFieldError(ValidationError):
    def __init__(self, fields: list[str]):
        super().__init__(f"Campos invalidos: {', '.join(fields)}", field="fields", invalid=list(fields))
        self.invalid_fields = list(fields)
