"""
Core utility functions used across domains
"""
import re
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the stored timestamps"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def digits_only(value: str) -> str:
    """Strip everything but digits, used to compare phone numbers"""
    return re.sub(r"\D", "", value)


def ensure_scheme(url: str) -> str:
    """Prefix bare hosts with https://"""
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        return f"https://{url}"
    return url
