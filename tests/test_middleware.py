"""
Tests for the governance middleware state machine.

Tests cover:
- SUCCEEDED: result returned, one passed entry
- REJECTED: operation never invoked, one blocked entry, PolicyRejected raised
- FAILED: original error re-raised unchanged, one failed entry
- Audit completeness across a mixed sequence of invocations
- Audit write failures never undo a completed operation
"""
from unittest.mock import AsyncMock

import pytest

from credential_vault.exceptions import PolicyRejected
from credential_vault.governance import (
    Action,
    AuditRecorder,
    GovernanceMiddleware,
    OperationContext,
    PolicyEngine,
    RuleKind,
)
from credential_vault.models import AuditOutcome
from credential_vault.vault import MemoryBackend


def _context(**overrides):
    values = {
        "user_id": 7,
        "action": Action.CREATE_CREDENTIAL,
        "resource_type": "credential",
        "input": {"name": "prod-key"},
    }
    values.update(overrides)
    return OperationContext(**values)


class TestGuard:

    @pytest.mark.asyncio
    async def test_success(self, middleware, backend):
        operation = AsyncMock(return_value="done")
        assert await middleware.guard(_context(), operation) == "done"
        operation.assert_awaited_once()
        entries = await backend.fetch_audit_entries()
        assert len(entries) == 1
        assert entries[0]["ama_g_validation"] == "passed"

    @pytest.mark.asyncio
    async def test_rejection_skips_operation(self, middleware, backend):
        operation = AsyncMock()
        with pytest.raises(PolicyRejected) as exc:
            await middleware.guard(_context(action="format_disk"), operation)
        operation.assert_not_awaited()
        assert exc.value.verdict.rule_kind is RuleKind.EPISTEMIC_SECURITY
        assert "AMA-G Validation Failed" in str(exc.value)
        entries = await backend.fetch_audit_entries()
        assert len(entries) == 1
        assert entries[0]["ama_g_validation"] == "blocked"
        assert entries[0]["rule_type"] == "epistemicSecurity"

    @pytest.mark.asyncio
    async def test_operation_error_reraised_unchanged(self, middleware, backend):
        error = KeyError("missing thing")
        operation = AsyncMock(side_effect=error)
        with pytest.raises(KeyError) as exc:
            await middleware.guard(_context(), operation)
        assert exc.value is error
        entries = await backend.fetch_audit_entries()
        assert len(entries) == 1
        assert entries[0]["ama_g_validation"] == "failed"
        assert entries[0]["rule_type"] == "operation"
        assert "missing thing" in entries[0]["reason"]

    @pytest.mark.asyncio
    async def test_error_without_message(self, middleware, backend):
        with pytest.raises(RuntimeError):
            await middleware.guard(_context(), AsyncMock(side_effect=RuntimeError()))
        assert (await backend.fetch_audit_entries())[0]["reason"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_resource_id_from_result(self, middleware, backend):
        await middleware.guard(
            _context(), AsyncMock(return_value={"id": 42}),
            resource_id_of=lambda result: result["id"],
        )
        assert (await backend.fetch_audit_entries())[0]["resource_id"] == 42

    @pytest.mark.asyncio
    async def test_resource_id_extraction_error_still_audited(self, middleware, backend):
        """A failing resource id extractor neither loses the entry nor the result."""
        operation = AsyncMock(return_value=None)
        result = await middleware.guard(
            _context(), operation, resource_id_of=lambda result: result.id,
        )
        assert result is None
        operation.assert_awaited_once()
        entries = await backend.fetch_audit_entries()
        assert len(entries) == 1
        assert entries[0]["ama_g_validation"] == "passed"
        assert entries[0]["resource_id"] is None

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_undo_success(self):
        """An unreachable audit store leaves the operation's result intact."""
        audit_backend = MemoryBackend()
        audit_backend.online = False
        middleware = GovernanceMiddleware(PolicyEngine(), AuditRecorder(audit_backend))
        operation = AsyncMock(return_value="kept")
        assert await middleware.guard(_context(), operation) == "kept"
        operation.assert_awaited_once()


class TestAuditCompleteness:

    @pytest.mark.asyncio
    async def test_one_entry_per_invocation(self, middleware, backend):
        """N governed calls of mixed outcome produce exactly N matching entries."""
        expected = []
        for i in range(12):
            kind = i % 3
            if kind == 0:
                await middleware.guard(_context(), AsyncMock(return_value=i))
                expected.append("passed")
            elif kind == 1:
                with pytest.raises(PolicyRejected):
                    await middleware.guard(_context(user_id=-1), AsyncMock())
                expected.append("blocked")
            else:
                with pytest.raises(ValueError):
                    await middleware.guard(
                        _context(), AsyncMock(side_effect=ValueError("bad")),
                    )
                expected.append("failed")
        entries = await backend.fetch_audit_entries(limit=100)
        assert len(entries) == 12
        outcomes = [e["ama_g_validation"] for e in reversed(entries)]
        assert outcomes == expected
        assert AuditOutcome(outcomes[0]) is AuditOutcome.PASSED
