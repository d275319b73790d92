"""Credential service — encrypts provider API keys at rest with Fernet."""

from __future__ import annotations

import logging
import re

from cryptography.fernet import Fernet, InvalidToken

from promptory.engine.errors import (
    CredentialError,
    CredentialIntegrityError,
    DecryptionUnavailableError,
    EncryptionUnavailableError,
)

logger = logging.getLogger(__name__)

_AZURE_KEY_PATTERN = re.compile(r"^[0-9a-f]{32}$", re.IGNORECASE)


def generate_key() -> str:
    """Return a fresh key suitable for ``PROMPTORY_CREDENTIAL_KEY``."""
    return Fernet.generate_key().decode()


class CredentialService:
    """Wraps the secure-storage primitive.

    The service is "unavailable" when no key is configured or the configured
    key is not a valid Fernet key; in that state nothing is ever stored in
    plain text, callers get an explicit error instead.
    """

    def __init__(self, key: str | bytes | None = None):
        self._cipher: Fernet | None = None
        if key:
            try:
                self._cipher = Fernet(key)
            except (ValueError, TypeError):
                logger.warning("Credential key is malformed; credential storage disabled")

    def is_available(self) -> bool:
        return self._cipher is not None

    def encrypt_credential(self, plaintext: str) -> bytes:
        if self._cipher is None:
            raise EncryptionUnavailableError()
        try:
            return self._cipher.encrypt(plaintext.encode("utf-8"))
        except (TypeError, AttributeError, UnicodeEncodeError):
            # Never echo the input back
            raise CredentialError("Failed to encrypt credential") from None

    def decrypt_credential(self, encrypted: bytes) -> str:
        if self._cipher is None:
            raise DecryptionUnavailableError()
        try:
            return self._cipher.decrypt(encrypted).decode("utf-8")
        except (InvalidToken, TypeError, UnicodeDecodeError):
            raise CredentialIntegrityError() from None

    def validate_credential(self, credential: str, provider_type: str) -> bool:
        """Shape check per provider; says nothing about whether the key works."""
        normalized = (provider_type or "").lower()
        if normalized == "ollama":
            return True
        if not credential:
            return False
        if normalized == "openai":
            return credential.startswith("sk-")
        if normalized == "azure_openai":
            return bool(_AZURE_KEY_PATTERN.match(credential))
        if normalized == "gemini":
            return credential.startswith("AIza")
        return False
