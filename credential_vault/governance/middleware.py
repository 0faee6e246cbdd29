"""
Governance Middleware — policy check, guarded operation, audit.

Per invocation::

    EVALUATE ─┬─ rejected ──> audit(blocked) ──> raise PolicyRejected
              └─ passed ──> EXECUTE ─┬─ ok ─────> audit(passed) ──> return result
                                     └─ error ──> audit(failed) ──> re-raise

Exactly one audit entry is written per invocation, and the operation only
runs after a passing verdict.
"""
import logging
import dataclasses
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..exceptions import PolicyRejected
from .audit import AuditRecorder
from .context import OperationContext, RuleKind, ValidationResult
from .policy import PolicyEngine

logger = logging.getLogger("credential_vault.governance")

T = TypeVar("T")


class GovernanceMiddleware:
    """Runs operations behind AMA-G and records the audit trail."""

    def __init__(self, engine: PolicyEngine, recorder: AuditRecorder):
        self._engine = engine
        self._recorder = recorder

    @property
    def engine(self) -> PolicyEngine:
        return self._engine

    @property
    def recorder(self) -> AuditRecorder:
        return self._recorder

    async def guard(
        self,
        context: OperationContext,
        operation: Callable[[], Awaitable[T]],
        *,
        resource_id_of: Optional[Callable[[T], Any]] = None,
    ) -> T:
        """Validate ``context`` and, if allowed, run ``operation``.

        Args:
            context: The operation being attempted.
            operation: Zero-argument coroutine function doing the work.
            resource_id_of: Extracts the resource id from the result, for
                operations (like create) that only learn it on success.
                If it raises, the entry is recorded without a resource id.

        Returns:
            Whatever ``operation`` returns.

        Raises:
            PolicyRejected: If any AMA-G rule failed.
            Exception: Any error raised by ``operation``, unchanged.
        """
        verdict = await self._engine.evaluate(context)
        if not verdict.passed:
            logger.info(
                "AMA-G blocked action=%s user=%s rule=%s: %s",
                context.action_name, context.user_id,
                verdict.rule_kind.value, verdict.reason,
            )
            await self._recorder.record(context, verdict)
            raise PolicyRejected(verdict)

        try:
            result = await operation()
        except Exception as err:
            failed = ValidationResult(
                False, str(err) or type(err).__name__, RuleKind.OPERATION,
            )
            logger.info(
                "Governed operation failed action=%s user=%s: %s",
                context.action_name, context.user_id, failed.reason,
            )
            await self._recorder.record(context, failed)
            raise

        if resource_id_of is not None:
            try:
                resource_id = resource_id_of(result)
            except Exception:
                logger.exception(
                    "Could not extract resource id action=%s user=%s",
                    context.action_name, context.user_id,
                )
                resource_id = None
            if resource_id is not None:
                context = dataclasses.replace(context, resource_id=resource_id)
        await self._recorder.record(context, verdict)
        return result
