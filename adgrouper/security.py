"""Symmetric encryption for provider API keys stored in the database."""
from __future__ import annotations

import base64
import hashlib
import logging
import os
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionManager:
    """Encrypts and decrypts secrets with a Fernet key derived from APP_SECRET_KEY."""

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise ValueError("APP_SECRET_KEY must be set to store API keys.")
        digest = hashlib.sha256(secret_key.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, value: str) -> bytes:
        return self._fernet.encrypt(value.encode("utf-8"))

    def decrypt(self, token: bytes) -> str | None:
        """Return the plaintext, or ``None`` when the secret key has changed."""
        try:
            return self._fernet.decrypt(token).decode("utf-8")
        except InvalidToken:
            logger.warning("Stored secret could not be decrypted; was APP_SECRET_KEY rotated?")
            return None


def mask_secret(value: str, visible: int = 4) -> str:
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


@lru_cache(maxsize=1)
def get_encryption_manager() -> EncryptionManager:
    return EncryptionManager(secret_key=os.getenv("APP_SECRET_KEY") or "")
