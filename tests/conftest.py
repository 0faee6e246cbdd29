"""Shared fixtures for credential vault tests."""
import pytest

from credential_vault.governance import (
    AuditRecorder,
    CredentialService,
    GovernanceMiddleware,
    PolicyEngine,
)
from credential_vault.vault import (
    CredentialStore,
    MemoryBackend,
    SecretCipher,
    generate_encryption_key,
)


@pytest.fixture
def key_hex():
    """A fresh 256-bit hex key."""
    return generate_encryption_key()


@pytest.fixture
def cipher(key_hex):
    return SecretCipher.from_hex(key_hex)


@pytest.fixture
def backend():
    """Empty in-memory backing store."""
    return MemoryBackend()


@pytest.fixture
def store(backend, cipher):
    return CredentialStore(backend, cipher)


@pytest.fixture
def recorder(backend):
    return AuditRecorder(backend)


@pytest.fixture
def middleware(backend, recorder):
    return GovernanceMiddleware(PolicyEngine(probe=backend.ping), recorder)


@pytest.fixture
def service(store, middleware):
    return CredentialService(store, middleware)
