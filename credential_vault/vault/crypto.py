"""
Vault Crypto Core — AES-256-GCM envelope encryption of credential secrets.

Stored format (both hex-encoded text columns):
- encrypted_value: [encrypted_payload][GCM tag 16B]
- encryption_iv:   [nonce 12B]

Security Note:
    Never log plaintext, ciphertext or key material.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import re
import secrets
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import ConfigurationError, DecryptionError

logger = logging.getLogger("credential_vault.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM authentication tag
KEY_LENGTH = 32  # AES-256

_HEX_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def generate_encryption_key() -> str:
    """Generate a random 32-byte encryption key and return it as hex.

    This is a utility for operators to generate new keys.

    Returns:
        64-character hex key string.
    """
    return secrets.token_hex(KEY_LENGTH)


def validate_encryption_key(key_hex: str) -> bool:
    """Return True if ``key_hex`` is a well-formed 256-bit hex key."""
    return bool(key_hex) and _HEX_KEY_PATTERN.match(key_hex) is not None


class SecretCipher:
    """Encrypts and decrypts single secret strings with one fixed key.

    The key is injected at construction and never read from the
    environment here; rotating it means building a new cipher.
    """

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise ConfigurationError(
                f"Encryption key must be exactly {KEY_LENGTH} bytes"
            )
        self._aead = AESGCM(bytes(key))

    @classmethod
    def from_hex(cls, key_hex: str) -> "SecretCipher":
        """Build a cipher from a 64-character hex key.

        Raises:
            ConfigurationError: If the key is not valid hex of the right size.
        """
        if not validate_encryption_key(key_hex):
            raise ConfigurationError(
                "Encryption key must be 64 hexadecimal characters (32 bytes)"
            )
        return cls(bytes.fromhex(key_hex))

    def encrypt(self, plaintext: str) -> tuple[str, str]:
        """Encrypt a secret.

        Args:
            plaintext: Secret value to encrypt.

        Returns:
            Tuple of (hex ciphertext with trailing tag, hex nonce).
        """
        nonce = secrets.token_bytes(NONCE_SIZE)
        ct = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return ct.hex(), nonce.hex()

    def decrypt(self, ciphertext: str, nonce: str) -> str:
        """Decrypt a secret produced by :meth:`encrypt`.

        Args:
            ciphertext: Hex ciphertext with the trailing 16-byte tag.
            nonce: Hex nonce used at encryption time.

        Returns:
            Original plaintext.

        Raises:
            DecryptionError: If inputs are malformed or the tag does not verify.
        """
        try:
            blob = bytes.fromhex(ciphertext)
            iv = bytes.fromhex(nonce)
        except (TypeError, ValueError) as err:
            raise DecryptionError("Malformed ciphertext or nonce encoding") from err
        if len(iv) != NONCE_SIZE:
            raise DecryptionError(
                f"Nonce must be {NONCE_SIZE} bytes, got {len(iv)}"
            )
        if len(blob) < TAG_SIZE:
            raise DecryptionError(
                f"Ciphertext too short: {len(blob)} bytes (minimum {TAG_SIZE})"
            )
        payload, tag = blob[:-TAG_SIZE], blob[-TAG_SIZE:]
        try:
            plaintext = self._aead.decrypt(iv, payload + tag, None)
        except InvalidTag as err:
            raise DecryptionError("Authentication tag did not verify") from err
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecryptionError("Decrypted secret is not valid UTF-8") from err
