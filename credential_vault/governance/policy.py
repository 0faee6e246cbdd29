"""
AMA-G Policy Engine — deterministic governance of credential operations.

Four independent rules are evaluated for every operation:

- **verity**: the input is a structured payload and the acting user is known.
- **determinism**: the input has a non-empty canonical serialization, and
  the backing store is reachable.
- **noContamination**: mutating actions on an existing resource carry both a
  resource id and a user id (ownership itself is checked by the store).
- **epistemicSecurity**: the action is on the explicit allow-list.

Rules run concurrently; the aggregate passes only if all pass. On failure
the first failing rule in the order above is reported, so audit messages
are reproducible. The engine never raises.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional
from collections.abc import Mapping

from ..exceptions import StoreUnavailable
from .context import (
    Action,
    OperationContext,
    RuleKind,
    ValidationResult,
    canonical_json,
)

logger = logging.getLogger("credential_vault.governance")

ALLOWED_ACTIONS = frozenset(action.value for action in Action)

# Actions that change an existing resource.
MUTATING_ACTIONS = frozenset({
    Action.UPDATE_CREDENTIAL.value,
    Action.DELETE_CREDENTIAL.value,
    Action.UPDATE_CONNECTION.value,
    Action.EXECUTE_WORKFLOW.value,
})

INFRASTRUCTURE_UNAVAILABLE = "infrastructure unavailable"
ALL_RULES_PASSED = "All AMA-G rules passed"

Probe = Callable[[], Awaitable[None]]


def _is_positive_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


async def check_verity(context: OperationContext) -> ValidationResult:
    if not isinstance(context.input, Mapping):
        return ValidationResult(False, "Input must be a valid object", RuleKind.VERITY)
    if not _is_positive_id(context.user_id):
        return ValidationResult(False, "Invalid user context", RuleKind.VERITY)
    return ValidationResult(True, "Input is traceable and coherent", RuleKind.VERITY)


async def check_determinism(
    context: OperationContext, probe: Optional[Probe] = None
) -> ValidationResult:
    if probe is not None:
        await probe()
    try:
        serialized = canonical_json(context.input)
    except TypeError:
        serialized = b""
    if not serialized:
        return ValidationResult(
            False,
            "Input cannot be empty for deterministic operation",
            RuleKind.DETERMINISM,
        )
    return ValidationResult(True, "Operation is deterministic", RuleKind.DETERMINISM)


async def check_no_contamination(context: OperationContext) -> ValidationResult:
    if context.action_name not in MUTATING_ACTIONS:
        return ValidationResult(
            True, "No contamination detected", RuleKind.NO_CONTAMINATION,
        )
    if not (
        _is_positive_id(context.resource_id) and _is_positive_id(context.user_id)
    ):
        return ValidationResult(
            False,
            "Mutating action requires resource and user context",
            RuleKind.NO_CONTAMINATION,
        )
    return ValidationResult(
        True, "Resource ownership delegated to storage", RuleKind.NO_CONTAMINATION,
    )


async def check_epistemic_security(context: OperationContext) -> ValidationResult:
    if context.action_name not in ALLOWED_ACTIONS:
        return ValidationResult(
            False,
            f'Action "{context.action_name}" is not explicitly allowed',
            RuleKind.EPISTEMIC_SECURITY,
        )
    return ValidationResult(
        True, "Operation is explicitly allowed", RuleKind.EPISTEMIC_SECURITY,
    )


def aggregate(results: list[ValidationResult]) -> ValidationResult:
    """Combine rule results given in priority order into one verdict."""
    for result in results:
        if not result.passed:
            return ValidationResult(False, result.reason, result.rule_kind)
    return ValidationResult(True, ALL_RULES_PASSED, RuleKind.AGGREGATE)


class PolicyEngine:
    """Evaluates OperationContexts against the four AMA-G rules.

    Args:
        probe: Optional coroutine function checking that the backing store
            is reachable; it should raise StoreUnavailable when it is not.
    """

    def __init__(self, probe: Optional[Probe] = None):
        self._probe = probe

    async def _run(
        self, kind: RuleKind, rule: Awaitable[ValidationResult]
    ) -> ValidationResult:
        try:
            return await rule
        except StoreUnavailable as err:
            logger.warning("AMA-G %s rule: store unavailable: %s", kind.value, err)
            return ValidationResult(False, INFRASTRUCTURE_UNAVAILABLE, kind)
        except Exception as err:
            logger.exception("AMA-G %s rule raised", kind.value)
            return ValidationResult(False, f"Rule evaluation error: {err}", kind)

    async def evaluate_all(self, context: OperationContext) -> list[ValidationResult]:
        """Return each rule's result, in priority order."""
        return list(await asyncio.gather(
            self._run(RuleKind.VERITY, check_verity(context)),
            self._run(RuleKind.DETERMINISM, check_determinism(context, self._probe)),
            self._run(RuleKind.NO_CONTAMINATION, check_no_contamination(context)),
            self._run(RuleKind.EPISTEMIC_SECURITY, check_epistemic_security(context)),
        ))

    async def evaluate(self, context: OperationContext) -> ValidationResult:
        """Return the aggregate verdict for ``context``."""
        verdict = aggregate(await self.evaluate_all(context))
        logger.debug(
            "AMA-G verdict action=%s user=%s passed=%s rule=%s",
            context.action_name, context.user_id, verdict.passed,
            verdict.rule_kind.value,
        )
        return verdict
