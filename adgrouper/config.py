"""Environment-driven settings.

Values are read on every call so tests (and operators) can change the
environment without reloading modules.
"""
from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s value %s; falling back to %s", name, raw, default)
        return default
    return max(minimum, value)


def _float_env(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s value %s; falling back to %s", name, raw, default)
        return default
    return max(minimum, value)


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning("Invalid %s value %s; falling back to %s", name, raw, default)
    return default


def api_key_source() -> str:
    """Return ``server`` (key store) or ``client`` (request-supplied keys)."""

    value = (os.getenv("API_KEY_SOURCE") or "server").strip().lower()
    if value not in {"server", "client"}:
        logger.warning("Unknown API_KEY_SOURCE %s; using server-side keys", value)
        return "server"
    return value


def provider_timeout() -> float:
    return _float_env("PROVIDER_TIMEOUT_SECONDS", 120.0, minimum=1.0)


def extraction_backend() -> str:
    value = (os.getenv("EXTRACTION_BACKEND") or "scrape").strip().lower()
    if value not in {"scrape", "firecrawl"}:
        logger.warning("Unknown EXTRACTION_BACKEND %s; using scrape", value)
        return "scrape"
    return value


def firecrawl_api_base() -> str:
    return (os.getenv("FIRECRAWL_API_BASE") or "https://api.firecrawl.dev/v2").rstrip("/")


def firecrawl_poll_interval() -> float:
    return _float_env("FIRECRAWL_POLL_INTERVAL", 2.0)


def firecrawl_max_poll_attempts() -> int:
    return _int_env("FIRECRAWL_MAX_POLL_ATTEMPTS", 60, minimum=1)


def firecrawl_request_timeout() -> float:
    return _float_env("FIRECRAWL_REQUEST_TIMEOUT", 30.0, minimum=1.0)


def navigation_timeout_ms() -> int:
    return _int_env("SCRAPER_NAVIGATION_TIMEOUT_MS", 30000, minimum=1000)


def scraper_headless() -> bool:
    return _bool_env("SCRAPER_HEADLESS", True)


def max_page_text_chars() -> int:
    return _int_env("MAX_PAGE_TEXT_CHARS", 50000, minimum=1000)


def max_keywords() -> int:
    return _int_env("MAX_KEYWORDS", 200, minimum=1)


def max_landing_pages() -> int:
    return _int_env("MAX_LANDING_PAGES", 10, minimum=1)


def reconcile_ungrouped_keywords() -> bool:
    return _bool_env("RECONCILE_UNGROUPED_KEYWORDS", False)
