"""Error taxonomy for the provider, storage and credential layers.

Provider errors carry a stable ``code`` that is persisted on failed response
rows, so the UI can classify a failure without parsing its message.
"""

from __future__ import annotations


class PromptoryError(Exception):
    """Base class for every domain error raised by this package."""

    code = "UNKNOWN_ERROR"


# ── Provider / network layer ────────────────────────


class ProviderError(PromptoryError):
    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, provider: str | None = None):
        self.provider = provider
        super().__init__(message)


class ProviderValidationError(ProviderError):
    code = "VALIDATION_ERROR"


class NoActiveProviderError(ProviderValidationError):
    code = "NO_ACTIVE_PROVIDER"

    def __init__(self):
        super().__init__("No active LLM provider configured")


class ProviderNotValidatedError(ProviderValidationError):
    code = "PROVIDER_NOT_VALIDATED"


class TokenLimitExceededError(ProviderValidationError):
    code = "TOKEN_LIMIT_EXCEEDED"

    def __init__(self, token_count: int, limit: int):
        self.token_count = token_count
        self.limit = limit
        super().__init__(f"Prompt exceeds token limit: {token_count} tokens (limit: {limit})")


class ProviderConnectionError(ProviderError):
    code = "CONNECTION_ERROR"


class ProviderTimeoutError(ProviderError):
    code = "TIMEOUT_ERROR"

    def __init__(self, timeout_seconds: float, provider: str | None = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Request timed out after {timeout_seconds:g} seconds", provider)


class RequestCancelledError(ProviderError):
    code = "CANCELLED"

    def __init__(self, provider: str | None = None):
        super().__init__("Request was cancelled", provider)


class AuthenticationError(ProviderError):
    code = "AUTH_ERROR"


class RateLimitError(ProviderError):
    code = "RATE_LIMIT_ERROR"


class ModelNotFoundError(ProviderError):
    code = "MODEL_NOT_FOUND"


class InsufficientQuotaError(ProviderError):
    code = "INSUFFICIENT_QUOTA"


class UnknownProviderError(ProviderError):
    code = "UNKNOWN_ERROR"


# ── Storage layer ───────────────────────────────────


class StorageError(PromptoryError):
    code = "STORAGE_ERROR"


class PathTraversalError(StorageError):
    code = "PATH_TRAVERSAL_REJECTED"


class NotFoundError(StorageError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' not found")


class DuplicateResourceError(StorageError):
    code = "DUPLICATE_RESOURCE"


class ConfigValidationError(StorageError):
    code = "CONFIG_VALIDATION_ERROR"


# ── Credentials ─────────────────────────────────────


class CredentialError(PromptoryError):
    code = "CREDENTIAL_ERROR"


class EncryptionUnavailableError(CredentialError):
    code = "ENCRYPTION_UNAVAILABLE"

    def __init__(self):
        super().__init__("Encryption not available on this platform")


class DecryptionUnavailableError(CredentialError):
    code = "DECRYPTION_UNAVAILABLE"

    def __init__(self):
        super().__init__("Decryption not available on this platform")


class CredentialIntegrityError(CredentialError):
    code = "INTEGRITY_ERROR"

    def __init__(self):
        super().__init__("Invalid encrypted data")
