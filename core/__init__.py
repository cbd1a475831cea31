"""Settings, logging and the error hierarchy shared by the gateway and enrichment packages"""
from core.config import Settings, get_settings
from core.exceptions import ConflictError, EnrichmentEngineError, NotFoundError, ValidationError
from core.logging import get_logger

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "EnrichmentEngineError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
]
