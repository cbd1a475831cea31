"""
Exception hierarchy for the enrichment engine

Every error carries a machine code, an HTTP-style status and a details
mapping so callers can turn it into a response without inspecting the
concrete type. Messages shown to CRM users are in Spanish.
"""
from typing import Any, Dict, Optional


class EnrichmentEngineError(Exception):
    """Base exception for all engine errors"""

    default_status = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.status_code = status_code or self.default_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


def _details(key: str, value: Any, extra: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value, **extra} if value else dict(extra)


class ValidationError(EnrichmentEngineError):
    """Bad request input: unknown mode, action or field, malformed edit value"""

    default_status = 400

    def __init__(self, message: str, field: Optional[str] = None, **details):
        super().__init__(message, error_code="VALIDATION_ERROR", details=_details("field", field, details))


class NotFoundError(EnrichmentEngineError):
    """Missing or soft-deleted client, or missing enrichment record"""

    default_status = 404

    def __init__(self, resource: str, identifier: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{resource} not found: {identifier}",
            error_code="NOT_FOUND",
            details={"resource": resource, "identifier": str(identifier)},
        )


class ConflictError(EnrichmentEngineError):
    """The record is no longer in a state that allows the operation"""

    default_status = 409

    def __init__(self, message: str, **details):
        super().__init__(message, error_code="CONFLICT", details=details)


class DatabaseError(EnrichmentEngineError):
    """A repository operation failed and was rolled back"""

    def __init__(self, message: str, operation: Optional[str] = None, **details):
        super().__init__(message, error_code="DATABASE_ERROR", details=_details("operation", operation, details))
