"""
Audit Recorder — append-only log of every governed operation.

Writes are best-effort: a failed insert is logged and never raised, so an
unreachable audit store cannot undo or block an operation that already ran.
There is no update or delete path for entries.
"""
import logging
from typing import Any, Optional

import orjson

from ..models import AuditLogEntry, AuditOutcome
from ..vault.backend import StoreBackend
from ..exceptions import StoreUnavailable
from .context import OperationContext, RuleKind, ValidationResult, canonical_json

logger = logging.getLogger("credential_vault.governance")


def outcome_for(verdict: ValidationResult) -> AuditOutcome:
    """Map a verdict to the stored outcome.

    Policy rejections are ``blocked``; failures of the guarded operation
    itself are ``failed``.
    """
    if verdict.passed:
        return AuditOutcome.PASSED
    if verdict.rule_kind is RuleKind.OPERATION:
        return AuditOutcome.FAILED
    return AuditOutcome.BLOCKED


def snapshot(value: Any) -> Optional[str]:
    """Serialize an input payload for the audit trail, never raising."""
    try:
        return canonical_json(value).decode("utf-8")
    except TypeError:
        pass
    try:
        return orjson.dumps(
            value,
            default=repr,
            option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
        ).decode("utf-8")
    except TypeError:
        return None


def _optional_id(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


class AuditRecorder:
    """Persists AuditLogEntry records through a backing store."""

    def __init__(self, backend: Optional[StoreBackend], query_limit: int = 50):
        self._backend = backend
        self._query_limit = query_limit

    @property
    def query_limit(self) -> int:
        return self._query_limit

    async def record(
        self, context: OperationContext, verdict: ValidationResult
    ) -> Optional[AuditLogEntry]:
        """Append one entry for ``context`` and its verdict.

        Returns:
            The stored entry, or None if it could not be written.
        """
        entry = {
            "user_id": _optional_id(context.user_id),
            "action": context.action_name,
            "resource_type": context.resource_type,
            "resource_id": _optional_id(context.resource_id),
            "details": snapshot(context.input),
            "ama_g_validation": outcome_for(verdict).value,
            "rule_type": verdict.rule_kind.value,
            "reason": verdict.reason,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
        }
        try:
            if self._backend is None:
                raise StoreUnavailable("No backing store configured")
            row = await self._backend.insert_audit_entry(entry)
            return AuditLogEntry(**row)
        except Exception as err:
            logger.warning(
                "Failed to log operation action=%s user=%s outcome=%s: %s",
                entry["action"], entry["user_id"], entry["ama_g_validation"], err,
            )
            return None

    async def entries(
        self, user_id: Optional[int] = None, limit: Optional[int] = None
    ) -> list[AuditLogEntry]:
        """Return recent entries, newest first.

        ``limit`` defaults to the recorder's configured query limit.
        """
        if self._backend is None:
            raise StoreUnavailable("No backing store configured")
        if limit is None:
            limit = self._query_limit
        rows = await self._backend.fetch_audit_entries(user_id=user_id, limit=limit)
        return [AuditLogEntry(**row) for row in rows]
