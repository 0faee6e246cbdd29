"""
Vault Configuration — Encryption key loading and validated settings.

Reads the encryption key from the environment:
    CREDENTIAL_VAULT_ENCRYPTION_KEY = <64 hex chars, 32-byte key>
    CREDENTIAL_VAULT_EPHEMERAL_KEY  = true|false (test/non-persistent mode)

Security Note:
    Never log key material. An ephemeral key makes every ciphertext stored
    with it undecryptable after restart; it is only for non-persistent use.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

from ..exceptions import ConfigurationError
from .crypto import SecretCipher, generate_encryption_key, validate_encryption_key

logger = logging.getLogger("credential_vault.vault")

ENCRYPTION_KEY_ENV = "CREDENTIAL_VAULT_ENCRYPTION_KEY"
EPHEMERAL_KEY_ENV = "CREDENTIAL_VAULT_EPHEMERAL_KEY"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def load_encryption_key(allow_ephemeral: bool = False) -> str:
    """Load the hex encryption key from CREDENTIAL_VAULT_ENCRYPTION_KEY.

    Args:
        allow_ephemeral: Generate a process-local key when none is set.

    Returns:
        64-character hex key.

    Raises:
        ConfigurationError: If the key is missing (and ephemeral keys are
            not allowed) or malformed.
    """
    raw = os.environ.get(ENCRYPTION_KEY_ENV)
    if not raw:
        if not allow_ephemeral:
            raise ConfigurationError(
                f"{ENCRYPTION_KEY_ENV} is not set. "
                f"Set {ENCRYPTION_KEY_ENV}=<64-hex-char-key>"
            )
        logger.warning(
            "No %s set; generated an ephemeral key. Stored credentials "
            "will be unreadable after restart.",
            ENCRYPTION_KEY_ENV,
        )
        return generate_encryption_key()
    if not validate_encryption_key(raw):
        raise ConfigurationError(
            f"{ENCRYPTION_KEY_ENV} must be 64 hexadecimal characters "
            f"(got {len(raw)} characters)"
        )
    return raw


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    encryption_key: str = Field(repr=False)
    ephemeral: bool = False
    audit_query_limit: int = Field(default=50, ge=1, le=1000)
    rotation_batch_size: int = Field(default=100, ge=1, le=10000)

    @field_validator("encryption_key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Ensure the key is 32 bytes of hex."""
        if not validate_encryption_key(v):
            raise ValueError("encryption_key must be 64 hexadecimal characters")
        return v

    def cipher(self) -> SecretCipher:
        """Build the SecretCipher for this configuration."""
        return SecretCipher.from_hex(self.encryption_key)

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.

        Raises:
            ConfigurationError: If the encryption key is missing or malformed.
        """
        allow_ephemeral = os.environ.get(EPHEMERAL_KEY_ENV, "").lower() in _TRUTHY
        key = load_encryption_key(allow_ephemeral=allow_ephemeral)
        return cls(
            encryption_key=key,
            ephemeral=allow_ephemeral and not os.environ.get(ENCRYPTION_KEY_ENV),
        )
