"""Tests for credential encryption and shape validation."""

import pytest

from promptory.engine.credentials import CredentialService, generate_key
from promptory.engine.errors import (
    CredentialIntegrityError,
    DecryptionUnavailableError,
    EncryptionUnavailableError,
)

SECRET = "sk-test-1234567890abcdef"


def test_round_trip(credentials):
    token = credentials.encrypt_credential(SECRET)
    assert isinstance(token, bytes)
    assert SECRET.encode() not in token
    assert credentials.decrypt_credential(token) == SECRET


def test_unavailable_without_key():
    svc = CredentialService("")
    assert not svc.is_available()
    with pytest.raises(EncryptionUnavailableError):
        svc.encrypt_credential(SECRET)
    with pytest.raises(DecryptionUnavailableError):
        svc.decrypt_credential(b"whatever")


def test_malformed_key_means_unavailable():
    assert not CredentialService("not-a-fernet-key").is_available()


def test_tampered_token_is_integrity_error(credentials):
    token = bytearray(credentials.encrypt_credential(SECRET))
    token[-5] = ord("A") if token[-5] != ord("A") else ord("B")
    with pytest.raises(CredentialIntegrityError) as exc:
        credentials.decrypt_credential(bytes(token))
    assert str(exc.value) == "Invalid encrypted data"
    assert SECRET not in str(exc.value)


def test_token_from_another_key_is_rejected(credentials):
    other = CredentialService(generate_key())
    with pytest.raises(CredentialIntegrityError):
        credentials.decrypt_credential(other.encrypt_credential(SECRET))


@pytest.mark.parametrize("value, provider, expected", [
    ("sk-abc", "openai", True),
    ("abc", "openai", False),
    ("sk-abc", "OpenAI", True),
    ("0123456789abcdef0123456789ABCDEF", "azure_openai", True),
    ("short", "azure_openai", False),
    ("AIzaSyExample", "gemini", True),
    ("sk-abc", "gemini", False),
    ("", "ollama", True),
    ("anything", "unknown", False),
    ("", "openai", False),
])
def test_validate_credential(credentials, value, provider, expected):
    assert credentials.validate_credential(value, provider) is expected
