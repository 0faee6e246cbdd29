"""
PostgreSQL backing store on top of an asyncpg connection pool.

Ownership is enforced in the ``WHERE`` clause of every mutating statement:
a row whose ``user_id`` differs from the caller's is never touched.
Audit rows are insert-only; there is no UPDATE or DELETE for them.
"""
import asyncio
import logging
from typing import Any, Optional
from contextlib import asynccontextmanager

import asyncpg

from ..exceptions import StoreUnavailable
from .backend import check_columns, filter_changes

logger = logging.getLogger("credential_vault.vault")

_UNAVAILABLE = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
    asyncio.TimeoutError,
    OSError,
)

_CREDENTIAL_COLUMNS = """
id, user_id, platform, name, encrypted_value, encryption_iv,
is_active, last_validated, created_at, updated_at
"""

_INSERT_CREDENTIAL = f"""
INSERT INTO credentials (user_id, platform, name, encrypted_value, encryption_iv, is_active)
VALUES ($1, $2, $3, $4, $5, TRUE)
RETURNING {_CREDENTIAL_COLUMNS}
"""

_SELECT_CREDENTIAL = f"""
SELECT {_CREDENTIAL_COLUMNS}
FROM credentials
WHERE id = $1
"""

_SELECT_USER_CREDENTIALS = f"""
SELECT {_CREDENTIAL_COLUMNS}
FROM credentials
WHERE user_id = $1 AND is_active
ORDER BY id
"""

_SELECT_USER_PLATFORM_CREDENTIALS = f"""
SELECT {_CREDENTIAL_COLUMNS}
FROM credentials
WHERE user_id = $1 AND platform = $2 AND is_active
ORDER BY id
"""

_SELECT_BATCH = f"""
SELECT {_CREDENTIAL_COLUMNS}
FROM credentials
WHERE id > $1
ORDER BY id
LIMIT $2
"""

_INSERT_AUDIT = """
INSERT INTO audit_logs (user_id, action, resource_type, resource_id, details,
                        ama_g_validation, rule_type, reason, ip_address, user_agent)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
RETURNING id, created_at
"""

_AUDIT_COLUMNS = """
id, user_id, action, resource_type, resource_id, details, ama_g_validation,
rule_type, reason, ip_address, user_agent, created_at
"""


class PostgresBackend:
    """Backing store over an asyncpg-compatible pool.

    Args:
        pool: asyncpg pool (anything exposing ``acquire()`` as an async
            context manager yielding a connection).
    """

    def __init__(self, pool: Any):
        self._pool = pool

    @asynccontextmanager
    async def _connection(self):
        if self._pool is None:
            raise StoreUnavailable("No database pool configured")
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except _UNAVAILABLE as err:
            logger.error("Backing store unreachable: %s", err)
            raise StoreUnavailable(str(err) or type(err).__name__) from err

    async def ping(self) -> None:
        async with self._connection() as conn:
            await conn.fetchval("SELECT 1")

    async def insert_credential(
        self,
        user_id: int,
        platform: str,
        name: str,
        encrypted_value: str,
        encryption_iv: str,
    ) -> dict[str, Any]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                _INSERT_CREDENTIAL,
                user_id, platform, name, encrypted_value, encryption_iv,
            )
        return dict(row)

    async def fetch_credential(self, credential_id: int) -> Optional[dict[str, Any]]:
        async with self._connection() as conn:
            row = await conn.fetchrow(_SELECT_CREDENTIAL, credential_id)
        return dict(row) if row is not None else None

    async def fetch_credentials(
        self, user_id: int, platform: Optional[str] = None
    ) -> list[dict[str, Any]]:
        async with self._connection() as conn:
            if platform is None:
                rows = await conn.fetch(_SELECT_USER_CREDENTIALS, user_id)
            else:
                rows = await conn.fetch(
                    _SELECT_USER_PLATFORM_CREDENTIALS, user_id, platform,
                )
        return [dict(row) for row in rows]

    async def fetch_credential_batch(
        self, after_id: int, limit: int
    ) -> list[dict[str, Any]]:
        async with self._connection() as conn:
            rows = await conn.fetch(_SELECT_BATCH, after_id, limit)
        return [dict(row) for row in rows]

    async def update_credential(
        self,
        credential_id: int,
        user_id: int,
        changes: dict[str, Any],
        only_active: bool = False,
        expected: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        changes = filter_changes(changes)
        expected = expected or {}
        check_columns(expected)
        assignments = ["updated_at = NOW()"]
        params: list[Any] = []
        for column, value in changes.items():
            params.append(value)
            assignments.append(f"{column} = ${len(params)}")
        params.extend([credential_id, user_id])
        query = (
            f"UPDATE credentials SET {', '.join(assignments)} "
            f"WHERE id = ${len(params) - 1} AND user_id = ${len(params)}"
        )
        if only_active:
            query += " AND is_active"
        for column, value in expected.items():
            params.append(value)
            query += f" AND {column} = ${len(params)}"
        query += f" RETURNING {_CREDENTIAL_COLUMNS}"
        async with self._connection() as conn:
            row = await conn.fetchrow(query, *params)
        return dict(row) if row is not None else None

    async def insert_audit_entry(self, entry: dict[str, Any]) -> dict[str, Any]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                _INSERT_AUDIT,
                entry.get("user_id"),
                entry["action"],
                entry["resource_type"],
                entry.get("resource_id"),
                entry.get("details"),
                entry["ama_g_validation"],
                entry.get("rule_type"),
                entry.get("reason"),
                entry.get("ip_address"),
                entry.get("user_agent"),
            )
        return {**entry, "id": row["id"], "created_at": row["created_at"]}

    async def fetch_audit_entries(
        self, user_id: Optional[int] = None, limit: int = 50
    ) -> list[dict[str, Any]]:
        query = f"SELECT {_AUDIT_COLUMNS} FROM audit_logs"
        params: list[Any] = []
        if user_id is not None:
            params.append(user_id)
            query += " WHERE user_id = $1"
        params.append(limit)
        query += f" ORDER BY created_at DESC, id DESC LIMIT ${len(params)}"
        async with self._connection() as conn:
            rows = await conn.fetch(query, *params)
        return [dict(row) for row in rows]
