"""
CredentialService — governed credential operations.

Each method builds the OperationContext for its action and runs the store
call through :class:`GovernanceMiddleware`, so every call is validated by
AMA-G and leaves exactly one audit entry. Audit snapshots never contain a
secret; only whether one was supplied.
"""
import logging
from typing import Any, Iterable, Optional, Union

from ..exceptions import (
    CredentialNotFound,
    DecryptionError,
    NotAuthorized,
    OperationFailed,
)
from ..models import AuditLogEntry, Credential, Platform
from ..vault.backend import StoreBackend
from ..vault.config import VaultConfig
from ..vault.crypto import SecretCipher
from ..vault.key_rotation import rotate_encryption_key
from ..vault.store import CredentialStore
from .audit import AuditRecorder
from .context import Action, OperationContext
from .middleware import GovernanceMiddleware
from .policy import PolicyEngine

logger = logging.getLogger("credential_vault.governance")

CREDENTIAL = "credential"


def _platform_name(platform: Union[Platform, str]) -> str:
    return platform.value if isinstance(platform, Platform) else str(platform)


class CredentialService:
    """Entry point for credential operations on behalf of a user.

    Args:
        store: The credential store adapter.
        middleware: Governance middleware used for every call.
        caller: Optional ``{"ip_address": ..., "user_agent": ...}`` defaults
            copied into each context.
        rotation_batch_size: Default batch size of key rotations.
        key_administrators: User ids allowed to rotate the encryption key.
            ``None`` allows any authenticated user; restrict access before
            calling :meth:`rotate_encryption_key` in that case.
    """

    def __init__(
        self,
        store: CredentialStore,
        middleware: GovernanceMiddleware,
        caller: Optional[dict[str, str]] = None,
        *,
        rotation_batch_size: int = 100,
        key_administrators: Optional[Iterable[int]] = None,
    ):
        self._store = store
        self._middleware = middleware
        self._caller = caller or {}
        self._rotation_batch_size = rotation_batch_size
        self._key_administrators = (
            frozenset(key_administrators) if key_administrators is not None else None
        )

    @classmethod
    def from_backend(
        cls,
        backend: StoreBackend,
        cipher: SecretCipher,
        caller: Optional[dict[str, str]] = None,
        *,
        config: Optional[VaultConfig] = None,
        key_administrators: Optional[Iterable[int]] = None,
    ) -> "CredentialService":
        """Wire store, policy engine, recorder and middleware on one backend.

        Audit query limit and rotation batch size are taken from ``config``
        when given.
        """
        if config is None:
            recorder = AuditRecorder(backend)
            settings = {}
        else:
            recorder = AuditRecorder(backend, query_limit=config.audit_query_limit)
            settings = {"rotation_batch_size": config.rotation_batch_size}
        middleware = GovernanceMiddleware(PolicyEngine(probe=backend.ping), recorder)
        return cls(
            CredentialStore(backend, cipher),
            middleware,
            caller,
            key_administrators=key_administrators,
            **settings,
        )

    @classmethod
    def from_config(
        cls,
        backend: StoreBackend,
        config: VaultConfig,
        caller: Optional[dict[str, str]] = None,
        *,
        key_administrators: Optional[Iterable[int]] = None,
    ) -> "CredentialService":
        """Build a service from a loaded :class:`VaultConfig`."""
        return cls.from_backend(
            backend,
            config.cipher(),
            caller,
            config=config,
            key_administrators=key_administrators,
        )

    def with_caller(
        self, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> "CredentialService":
        """Return a service sharing this one's store, tagging calls with caller metadata."""
        return type(self)(
            self._store,
            self._middleware,
            {"ip_address": ip_address, "user_agent": user_agent},
            rotation_batch_size=self._rotation_batch_size,
            key_administrators=self._key_administrators,
        )

    def _context(
        self,
        user_id: int,
        action: Action,
        input: dict[str, Any],
        resource_id: Optional[int] = None,
        resource_type: str = CREDENTIAL,
    ) -> OperationContext:
        return OperationContext(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            input=input,
            ip_address=self._caller.get("ip_address"),
            user_agent=self._caller.get("user_agent"),
        )

    async def create_credential(
        self,
        user_id: int,
        platform: Union[Platform, str],
        name: str,
        secret: str,
    ) -> Credential:
        context = self._context(
            user_id,
            Action.CREATE_CREDENTIAL,
            {"platform": _platform_name(platform), "name": name},
        )
        return await self._middleware.guard(
            context,
            lambda: self._store.create(user_id, platform, name, secret),
            resource_id_of=lambda credential: credential.id,
        )

    async def read_credential(self, user_id: int, credential_id: int) -> str:
        """Return the decrypted secret of an owned, active credential.

        Raises:
            CredentialNotFound: No active credential owned by ``user_id``.
            DecryptionError: The stored secret is unreadable.
        """
        async def operation() -> str:
            credential = await self._store.get_by_id(credential_id)
            if (
                credential is None
                or credential.user_id != user_id
                or not credential.is_active
            ):
                raise CredentialNotFound(f"Credential {credential_id} not found")
            secret = await self._store.get_decrypted_secret(credential_id)
            if secret is None:
                raise DecryptionError(f"Credential {credential_id} is unreadable")
            return secret

        context = self._context(
            user_id, Action.READ_CREDENTIAL, {"id": credential_id}, credential_id,
        )
        return await self._middleware.guard(context, operation)

    async def list_credentials(
        self, user_id: int, platform: Optional[Union[Platform, str]] = None
    ) -> list[dict[str, Any]]:
        """Return the user's active credentials, redacted."""
        async def operation() -> list[dict[str, Any]]:
            if platform is None:
                credentials = await self._store.list_by_user(user_id)
            else:
                credentials = await self._store.list_by_user_and_platform(
                    user_id, platform,
                )
            return [credential.redacted() for credential in credentials]

        input = {} if platform is None else {"platform": _platform_name(platform)}
        context = self._context(user_id, Action.READ_CREDENTIAL, input)
        return await self._middleware.guard(context, operation)

    async def update_credential(
        self,
        user_id: int,
        credential_id: int,
        *,
        name: Optional[str] = None,
        secret: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Credential:
        async def operation() -> Credential:
            credential = await self._store.update(
                credential_id, user_id,
                name=name, secret=secret, is_active=is_active,
            )
            if credential is None:
                raise CredentialNotFound(f"Credential {credential_id} not found")
            return credential

        input: dict[str, Any] = {"id": credential_id, "secret": secret is not None}
        if name is not None:
            input["name"] = name
        if is_active is not None:
            input["is_active"] = is_active
        context = self._context(
            user_id, Action.UPDATE_CREDENTIAL, input, credential_id,
        )
        return await self._middleware.guard(context, operation)

    async def delete_credential(self, user_id: int, credential_id: int) -> bool:
        """Soft-delete an owned credential.

        Raises:
            CredentialNotFound: No active credential owned by ``user_id``;
                the audit entry records the attempt as failed.
        """
        async def operation() -> bool:
            if not await self._store.soft_delete(credential_id, user_id):
                raise CredentialNotFound(f"Credential {credential_id} not found")
            return True

        context = self._context(
            user_id, Action.DELETE_CREDENTIAL, {"id": credential_id}, credential_id,
        )
        return await self._middleware.guard(context, operation)

    async def mark_validated(self, user_id: int, credential_id: int) -> bool:
        """Record that a credential passed a connection test."""
        async def operation() -> bool:
            if not await self._store.mark_validated(credential_id, user_id):
                raise CredentialNotFound(f"Credential {credential_id} not found")
            return True

        context = self._context(
            user_id, Action.TEST_CONNECTION, {"id": credential_id}, credential_id,
        )
        return await self._middleware.guard(context, operation)

    async def audit_log(
        self, user_id: int, limit: Optional[int] = None
    ) -> list[AuditLogEntry]:
        """Return the user's recent audit entries, newest first.

        ``limit`` defaults to the configured audit query limit.
        """
        recorder = self._middleware.recorder
        if limit is None:
            limit = recorder.query_limit
        context = self._context(
            user_id, Action.READ_LOGS, {"limit": limit}, resource_type="audit_log",
        )
        return await self._middleware.guard(
            context, lambda: recorder.entries(user_id=user_id, limit=limit),
        )

    async def rotate_encryption_key(
        self,
        user_id: int,
        new_cipher: SecretCipher,
        batch_size: Optional[int] = None,
    ) -> dict:
        """Re-encrypt every credential under ``new_cipher`` and switch to it.

        The store encrypts with ``new_cipher`` as soon as the rotation starts
        and keeps reading the old key until every row decrypts with the new
        one, so secrets written meanwhile are not lost. If rows remain
        unreadable the old key stays available for reads and the call fails;
        running it again with the same ``new_cipher`` resumes the rotation.

        Rotation touches every user's credentials. Unless the service was
        built with ``key_administrators``, callers must restrict who may run
        it.

        Raises:
            NotAuthorized: If ``user_id`` is not a key administrator.
            OperationFailed: If any row could not be rotated.
        """
        if batch_size is None:
            batch_size = self._rotation_batch_size

        async def operation() -> dict:
            if (
                self._key_administrators is not None
                and user_id not in self._key_administrators
            ):
                raise NotAuthorized(f"User {user_id} may not rotate the encryption key")
            if batch_size < 1:
                raise ValueError(f"batch_size must be positive, got {batch_size}")
            old_cipher = self._store.begin_rotation(new_cipher)
            stats = await rotate_encryption_key(
                self._store.backend, old_cipher, new_cipher, batch_size,
            )
            if stats["errors"]:
                raise OperationFailed(
                    f"Key rotation incomplete: {stats['errors']} credential(s) "
                    "could not be re-encrypted"
                )
            self._store.finish_rotation()
            return stats

        context = self._context(
            user_id,
            Action.ROTATE_ENCRYPTION_KEY,
            {"batch_size": batch_size},
            resource_type="vault",
        )
        return await self._middleware.guard(context, operation)
