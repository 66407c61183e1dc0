"""API key store: encrypted database rows first, environment variables second."""
from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import config
from .errors import ApiKeyNotConfigured
from .models import ApiKey
from .schemas import Provider, ProviderName
from .security import get_encryption_manager, mask_secret

logger = logging.getLogger(__name__)

FIRECRAWL_KEY = "firecrawl"

ENV_VARS = {
    ProviderName.OPENAI.value: "OPENAI_API_KEY",
    ProviderName.GEMINI.value: "GEMINI_API_KEY",
    ProviderName.CLAUDE.value: "ANTHROPIC_API_KEY",
    FIRECRAWL_KEY: "FIRECRAWL_API_KEY",
}
KEY_TYPES = tuple(ENV_VARS)


def _check_key_type(key_type: str) -> str:
    if key_type not in ENV_VARS:
        raise ValueError(f"Unknown key type '{key_type}'")
    return key_type


def get_stored_key(session: Session, key_type: str) -> Optional[str]:
    row = session.get(ApiKey, _check_key_type(key_type))
    if row is None:
        return None
    return get_encryption_manager().decrypt(row.encrypted_value)


def get_api_key(session: Session, key_type: str) -> str:
    """Return the key for ``key_type`` from the database, then the environment."""

    stored = get_stored_key(session, key_type)
    if stored:
        return stored
    env_var = ENV_VARS[key_type]
    value = os.getenv(env_var)
    if value:
        return value
    raise ApiKeyNotConfigured(
        f'No API key configured for "{key_type}". Add it via /api/config/keys or set {env_var}.'
    )


def store_api_key(session: Session, key_type: str, value: str) -> None:
    value = value.strip()
    if not value:
        raise ValueError("API key value cannot be empty")
    encrypted = get_encryption_manager().encrypt(value)
    row = session.get(ApiKey, _check_key_type(key_type))
    if row is None:
        session.add(ApiKey(key_type=key_type, encrypted_value=encrypted))
    else:
        row.encrypted_value = encrypted
    session.flush()
    logger.info("Stored %s API key %s", key_type, mask_secret(value))


def key_presence(session: Session) -> dict[str, bool]:
    stored = set(session.execute(select(ApiKey.key_type)).scalars())
    return {key_type: key_type in stored or bool(os.getenv(ENV_VARS[key_type])) for key_type in KEY_TYPES}


def resolve_provider(
    session: Session,
    name: ProviderName | str,
    model: str,
    request_key: Optional[str] = None,
) -> Provider:
    """Build a :class:`Provider`, taking the key from exactly one source.

    With ``API_KEY_SOURCE=server`` keys come from the store and requests may
    not carry one; with ``client`` the request must supply it.
    """

    name = ProviderName(name)
    if config.api_key_source() == "client":
        if not request_key:
            raise ApiKeyNotConfigured(f"An API key for {name.value} must be supplied with the request")
        return Provider(name=name, model=model, api_key=request_key)

    if request_key:
        raise ValueError("API keys are resolved server-side; do not send apiKey")
    return Provider(name=name, model=model, api_key=get_api_key(session, name.value))


def resolve_firecrawl_key(session: Session, request_key: Optional[str] = None) -> str:
    if config.api_key_source() == "client":
        if not request_key:
            raise ApiKeyNotConfigured("A Firecrawl API key must be supplied with the request")
        return request_key
    if request_key:
        raise ValueError("API keys are resolved server-side; do not send firecrawlApiKey")
    return get_api_key(session, FIRECRAWL_KEY)
