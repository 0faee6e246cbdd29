"""Credential Vault — Encrypted credential storage owned by users.

Security Note (Threat Model):
    Secrets are encrypted with AES-256-GCM under a single process-wide key
    injected into :class:`SecretCipher`. Decrypted secrets exist in process
    memory only while a caller holds them. Losing the key makes every stored
    credential permanently unreadable.
"""

from .crypto import SecretCipher, generate_encryption_key, validate_encryption_key
from .config import VaultConfig, load_encryption_key
from .backend import StoreBackend
from .memory import MemoryBackend
from .postgres import PostgresBackend
from .store import CredentialStore
from .key_rotation import rotate_encryption_key

__all__ = [
    "SecretCipher",
    "generate_encryption_key",
    "validate_encryption_key",
    "VaultConfig",
    "load_encryption_key",
    "StoreBackend",
    "MemoryBackend",
    "PostgresBackend",
    "CredentialStore",
    "rotate_encryption_key",
]
