"""
In-memory backing store for tests and ephemeral (non-persistent) mode.

Set ``online = False`` to simulate an unreachable store.
"""
import copy
import itertools
from typing import Any, Optional
from datetime import datetime, timezone

from ..exceptions import StoreUnavailable
from .backend import check_columns, filter_changes


class MemoryBackend:
    """Dict-backed store honouring the same ownership rules as PostgreSQL."""

    def __init__(self) -> None:
        self.online = True
        self._credentials: dict[int, dict[str, Any]] = {}
        self._audit: list[dict[str, Any]] = []
        self._credential_ids = itertools.count(1)
        self._audit_ids = itertools.count(1)

    def _check(self) -> None:
        if not self.online:
            raise StoreUnavailable("In-memory store is offline")

    async def ping(self) -> None:
        self._check()

    async def insert_credential(
        self,
        user_id: int,
        platform: str,
        name: str,
        encrypted_value: str,
        encryption_iv: str,
    ) -> dict[str, Any]:
        self._check()
        now = datetime.now(timezone.utc)
        row = {
            "id": next(self._credential_ids),
            "user_id": user_id,
            "platform": platform,
            "name": name,
            "encrypted_value": encrypted_value,
            "encryption_iv": encryption_iv,
            "is_active": True,
            "last_validated": None,
            "created_at": now,
            "updated_at": now,
        }
        self._credentials[row["id"]] = row
        return dict(row)

    async def fetch_credential(self, credential_id: int) -> Optional[dict[str, Any]]:
        self._check()
        row = self._credentials.get(credential_id)
        return dict(row) if row is not None else None

    async def fetch_credentials(
        self, user_id: int, platform: Optional[str] = None
    ) -> list[dict[str, Any]]:
        self._check()
        return [
            dict(row)
            for _, row in sorted(self._credentials.items())
            if row["user_id"] == user_id
            and row["is_active"]
            and (platform is None or row["platform"] == platform)
        ]

    async def fetch_credential_batch(
        self, after_id: int, limit: int
    ) -> list[dict[str, Any]]:
        self._check()
        ids = sorted(i for i in self._credentials if i > after_id)[:limit]
        return [dict(self._credentials[i]) for i in ids]

    async def update_credential(
        self,
        credential_id: int,
        user_id: int,
        changes: dict[str, Any],
        only_active: bool = False,
        expected: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        self._check()
        changes = filter_changes(changes)
        expected = expected or {}
        check_columns(expected)
        row = self._credentials.get(credential_id)
        if row is None or row["user_id"] != user_id:
            return None
        if only_active and not row["is_active"]:
            return None
        if any(row[column] != value for column, value in expected.items()):
            return None
        row.update(changes)
        row["updated_at"] = datetime.now(timezone.utc)
        return dict(row)

    async def insert_audit_entry(self, entry: dict[str, Any]) -> dict[str, Any]:
        self._check()
        row = {
            **copy.deepcopy(entry),
            "id": next(self._audit_ids),
            "created_at": datetime.now(timezone.utc),
        }
        self._audit.append(row)
        return dict(row)

    async def fetch_audit_entries(
        self, user_id: Optional[int] = None, limit: int = 50
    ) -> list[dict[str, Any]]:
        self._check()
        rows = [
            dict(row) for row in reversed(self._audit)
            if user_id is None or row["user_id"] == user_id
        ]
        return rows[:limit]
