"""
CredentialStore — Encrypted credential records owned by users.

Provides the storage mechanism for credentials:
- ``create(...)`` — encrypt and persist a new active credential
- ``get_by_id(id)`` — the raw, still-encrypted record
- ``get_decrypted_secret(id)`` — decrypt a stored secret
- ``list_by_user(...)`` / ``list_by_user_and_platform(...)`` — active records
- ``update(...)`` / ``soft_delete(...)`` / ``mark_validated(...)`` — owner-only
- ``begin_rotation(...)`` / ``finish_rotation()`` — dual-key window of a key rotation

This layer does not consult AMA-G; mutating calls are expected to arrive
through :class:`~credential_vault.governance.middleware.GovernanceMiddleware`.
Ownership is still enforced here, in the backend's ``WHERE`` clause.

Concurrent updates of one credential by its owner are not serialized:
the last write wins at the store.

Security Note:
    Never log plaintext or ciphertext values. Only log credential ids,
    platforms and user IDs.
"""
import logging
from typing import Any, Optional, Union
from datetime import datetime, timezone

from ..exceptions import DecryptionError, StoreUnavailable
from ..models import Credential, Platform
from .backend import StoreBackend
from .crypto import SecretCipher

logger = logging.getLogger("credential_vault.vault")


class CredentialStore:
    """CRUD adapter over a backing store, delegating secrets to a cipher."""

    def __init__(self, backend: Optional[StoreBackend], cipher: SecretCipher):
        self._backend = backend
        self._cipher = cipher
        self._previous_cipher: Optional[SecretCipher] = None

    @property
    def backend(self) -> StoreBackend:
        """Return the backing store, or fail if none is configured."""
        if self._backend is None:
            raise StoreUnavailable("No backing store configured")
        return self._backend

    @property
    def cipher(self) -> SecretCipher:
        return self._cipher

    @property
    def previous_cipher(self) -> Optional[SecretCipher]:
        """The key being rotated away from, while a rotation is pending."""
        return self._previous_cipher

    def _validate_name(self, name: str) -> None:
        """Validate a credential display name.

        Raises:
            ValueError: If name is empty or too long.
        """
        if not name:
            raise ValueError("Credential name cannot be empty")
        if len(name) > 255:
            raise ValueError("Credential name cannot exceed 255 characters")

    def begin_rotation(self, new_cipher: SecretCipher) -> SecretCipher:
        """Encrypt with ``new_cipher`` from now on, still reading the old key.

        Returns:
            The cipher being rotated away from. Beginning again while a
            rotation is pending keeps the original old key.
        """
        if self._previous_cipher is None:
            self._previous_cipher = self._cipher
        self._cipher = new_cipher
        logger.info("Credential store rotating encryption key")
        return self._previous_cipher

    def finish_rotation(self) -> None:
        """Stop reading with the old key once every row has been rotated."""
        self._previous_cipher = None
        logger.info("Credential store encryption key replaced")

    def _decrypt(self, credential: Credential) -> str:
        try:
            return self._cipher.decrypt(
                credential.encrypted_value, credential.encryption_iv,
            )
        except DecryptionError:
            if self._previous_cipher is None:
                raise
        return self._previous_cipher.decrypt(
            credential.encrypted_value, credential.encryption_iv,
        )

    async def create(
        self,
        user_id: int,
        platform: Union[Platform, str],
        name: str,
        secret: str,
    ) -> Credential:
        """Encrypt ``secret`` and persist a new active credential.

        Args:
            user_id: Owning user.
            platform: Target platform.
            name: Display name.
            secret: Plaintext API key or token.

        Returns:
            The stored (encrypted) credential.
        """
        self._validate_name(name)
        platform = Platform(platform)
        encrypted_value, encryption_iv = self._cipher.encrypt(secret)
        row = await self.backend.insert_credential(
            user_id, platform.value, name, encrypted_value, encryption_iv,
        )
        logger.debug(
            "Credential created: id=%s user=%s platform=%s",
            row["id"], user_id, platform.value,
        )
        return Credential(**row)

    async def get_by_id(self, credential_id: int) -> Optional[Credential]:
        row = await self.backend.fetch_credential(credential_id)
        return Credential(**row) if row is not None else None

    async def get_decrypted_secret(self, credential_id: int) -> Optional[str]:
        """Load and decrypt a credential's secret.

        Returns:
            The plaintext secret, or None if the credential does not exist
            or cannot be decrypted (the failure is logged, not raised).
        """
        credential = await self.get_by_id(credential_id)
        if credential is None:
            return None
        try:
            return self._decrypt(credential)
        except DecryptionError as err:
            logger.error(
                "Credential unreadable: id=%s user=%s: %s",
                credential_id, credential.user_id, err,
            )
            return None

    async def list_by_user(self, user_id: int) -> list[Credential]:
        rows = await self.backend.fetch_credentials(user_id)
        return [Credential(**row) for row in rows]

    async def list_by_user_and_platform(
        self, user_id: int, platform: Union[Platform, str]
    ) -> list[Credential]:
        rows = await self.backend.fetch_credentials(
            user_id, Platform(platform).value,
        )
        return [Credential(**row) for row in rows]

    async def update(
        self,
        credential_id: int,
        user_id: int,
        *,
        name: Optional[str] = None,
        secret: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Optional[Credential]:
        """Update an owned credential; unset fields are left untouched.

        A new ``secret`` is re-encrypted with a fresh nonce.

        Returns:
            The updated credential, or None if no row owned by ``user_id``
            matched.
        """
        if name is not None:
            self._validate_name(name)
        changes: dict[str, Any] = {"name": name, "is_active": is_active}
        if secret is not None:
            changes["encrypted_value"], changes["encryption_iv"] = (
                self._cipher.encrypt(secret)
            )
        row = await self.backend.update_credential(
            credential_id, user_id, changes,
        )
        if row is None:
            logger.warning(
                "Credential update refused: id=%s user=%s (not found or not owner)",
                credential_id, user_id,
            )
            return None
        return Credential(**row)

    async def soft_delete(self, credential_id: int, user_id: int) -> bool:
        """Mark an owned, active credential inactive. The row is kept."""
        row = await self.backend.update_credential(
            credential_id, user_id, {"is_active": False}, only_active=True,
        )
        if row is None:
            logger.warning(
                "Credential delete refused: id=%s user=%s (not found, inactive or not owner)",
                credential_id, user_id,
            )
            return False
        logger.debug("Credential deleted: id=%s user=%s", credential_id, user_id)
        return True

    async def mark_validated(self, credential_id: int, user_id: int) -> bool:
        """Stamp ``last_validated`` on an owned, active credential."""
        row = await self.backend.update_credential(
            credential_id,
            user_id,
            {"last_validated": datetime.now(timezone.utc)},
            only_active=True,
        )
        return row is not None
