"""
Structured logging for the enrichment engine

JSON lines in deployed environments, plain text locally. Provider URLs
carry API keys as query parameters (Gemini, Places, Safe Browsing,
SerpAPI), so every handler masks ``key=`` style parameters and bearer
tokens before a record is written.
"""
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from core.config import Settings, get_settings

_SECRET_PARAM = re.compile(r"(\b(?:api_key|apikey|key|token)=)[^&\s\"']+", re.IGNORECASE)
_BEARER = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+")

# Context keys copied from ``extra`` into the JSON payload
CONTEXT_FIELDS = ("domain", "provider", "client_id", "enrichment_id", "service")


def redact_secrets(text: str) -> str:
    """Mask credential query parameters and bearer tokens"""
    return _BEARER.sub(r"\1***", _SECRET_PARAM.sub(r"\1***", text))


class SecretRedactingFilter(logging.Filter):
    """Rewrites the rendered message of every record with secrets masked"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact_secrets(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record: event text, level, logger and context"""

    def __init__(self, *args, app_name: str = "CRM Enrichment", environment: str = "development", **kwargs):
        super().__init__(*args, **kwargs)
        self.app_name = app_name
        self.environment = environment

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["app"] = self.app_name
        log_record["environment"] = self.environment
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["event"] = record.getMessage()
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_record[key] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        log_record.pop("message", None)
        log_record.pop("msg", None)


def setup_logging(config: Optional[Settings] = None) -> None:
    """Install a single stdout handler on the root logger"""
    config = config or get_settings()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if config.log_format == "json":
        handler.setFormatter(
            CustomJsonFormatter(
                "%(timestamp)s %(level)s %(name)s %(message)s",
                timestamp=True,
                app_name=config.app_name,
                environment=config.environment,
            )
        )
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    handler.addFilter(SecretRedactingFilter())
    root_logger.addHandler(handler)

    # Request lines from httpx include full URLs with keys
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if config.database_echo else logging.WARNING)


class LoggerAdapter(logging.LoggerAdapter):
    """Merges a fixed context (domain, provider...) into each record's extra"""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs

    def with_context(self, **context) -> "LoggerAdapter":
        return LoggerAdapter(self.logger, {**self.extra, **context})


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Logger carrying a fixed context

    Example:
        logger = get_logger(__name__, domain="d4")
        logger.with_context(client_id=client.id).info("Enriquecimiento guardado")
    """
    return LoggerAdapter(logging.getLogger(name), context)


setup_logging()
