"""
Backing store contract consumed by the credential store and audit recorder.

Rows travel as plain dicts keyed by column name. Implementations raise
:class:`~credential_vault.exceptions.StoreUnavailable` when the store cannot
be reached, which callers must be able to tell apart from "no rows".
"""
from typing import Any, Optional, Protocol

# Columns a credential update may touch; updated_at is always refreshed.
UPDATABLE_COLUMNS = (
    "name",
    "encrypted_value",
    "encryption_iv",
    "is_active",
    "last_validated",
)


class StoreBackend(Protocol):
    """Persistence operations needed by the vault core."""

    async def ping(self) -> None:
        ...

    async def insert_credential(
        self,
        user_id: int,
        platform: str,
        name: str,
        encrypted_value: str,
        encryption_iv: str,
    ) -> dict[str, Any]:
        ...

    async def fetch_credential(self, credential_id: int) -> Optional[dict[str, Any]]:
        ...

    async def fetch_credentials(
        self, user_id: int, platform: Optional[str] = None
    ) -> list[dict[str, Any]]:
        ...

    async def fetch_credential_batch(
        self, after_id: int, limit: int
    ) -> list[dict[str, Any]]:
        ...

    async def update_credential(
        self,
        credential_id: int,
        user_id: int,
        changes: dict[str, Any],
        only_active: bool = False,
        expected: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        """Apply ``changes`` to a row owned by ``user_id``.

        ``expected`` maps columns to the values the row must still hold;
        a row that changed since it was read is left untouched.
        """
        ...

    async def insert_audit_entry(self, entry: dict[str, Any]) -> dict[str, Any]:
        ...

    async def fetch_audit_entries(
        self, user_id: Optional[int] = None, limit: int = 50
    ) -> list[dict[str, Any]]:
        ...


def filter_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Keep only known, explicitly set columns of a credential update."""
    check_columns(changes)
    return {k: v for k, v in changes.items() if v is not None}


def check_columns(columns: Any) -> None:
    unknown = set(columns) - set(UPDATABLE_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown credential columns: {sorted(unknown)}")
