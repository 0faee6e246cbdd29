"""Credential Vault.

Stores third-party API credentials encrypted at rest (AES-256-GCM) and
gates every change behind AMA-G governance with an immutable audit trail.
"""
from .version import __version__
from .exceptions import (
    CredentialVaultError,
    ConfigurationError,
    StoreUnavailable,
    DecryptionError,
    PolicyRejected,
    OperationFailed,
    CredentialNotFound,
    NotAuthorized,
)
from .models import AuditLogEntry, AuditOutcome, Credential, Platform

__all__ = [
    "__version__",
    "CredentialVaultError",
    "ConfigurationError",
    "StoreUnavailable",
    "DecryptionError",
    "PolicyRejected",
    "OperationFailed",
    "CredentialNotFound",
    "NotAuthorized",
    "AuditLogEntry",
    "AuditOutcome",
    "Credential",
    "Platform",
]
