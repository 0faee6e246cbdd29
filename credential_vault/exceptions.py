"""Error taxonomy for the credential vault and its governance layer."""
from typing import Any


class CredentialVaultError(Exception):
    """Base error type for credential vault operations."""


class ConfigurationError(CredentialVaultError):
    """Raised when the encryption key is missing or malformed."""


class StoreUnavailable(CredentialVaultError):
    """Raised when no backing store is configured or it cannot be reached."""


class DecryptionError(CredentialVaultError):
    """Raised when a ciphertext cannot be authenticated or decoded."""


class PolicyRejected(CredentialVaultError):
    """Raised when AMA-G blocks an operation.

    The failing verdict is kept in ``verdict`` so callers can report the
    specific rule and reason.
    """

    def __init__(self, verdict: Any):
        self.verdict = verdict
        super().__init__(f"AMA-G Validation Failed: {verdict.reason}")


class OperationFailed(CredentialVaultError):
    """Raised by a guarded operation that could not complete."""


class CredentialNotFound(OperationFailed):
    """Raised when no active credential owned by the caller matches."""


class NotAuthorized(OperationFailed):
    """Raised when the caller may not run a vault-wide operation."""
