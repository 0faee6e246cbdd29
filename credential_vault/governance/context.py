"""
Governance types — operation contexts, actions and validation verdicts.
"""
from enum import Enum
from typing import Any, Optional, Union
from dataclasses import dataclass, field

import orjson
from aiohttp import web


class Action(str, Enum):
    """Closed vocabulary of governed actions (the AMA-G allow-list)."""

    CREATE_CREDENTIAL = "create_credential"
    READ_CREDENTIAL = "read_credential"
    UPDATE_CREDENTIAL = "update_credential"
    DELETE_CREDENTIAL = "delete_credential"
    CREATE_CONNECTION = "create_connection"
    TEST_CONNECTION = "test_connection"
    UPDATE_CONNECTION = "update_connection"
    CREATE_WORKFLOW = "create_workflow"
    EXECUTE_WORKFLOW = "execute_workflow"
    READ_LOGS = "read_logs"
    READ_STATUS = "read_status"
    ROTATE_ENCRYPTION_KEY = "rotate_encryption_key"


class RuleKind(str, Enum):
    """Identifies which rule produced a ValidationResult."""

    VERITY = "verity"
    DETERMINISM = "determinism"
    NO_CONTAMINATION = "noContamination"
    EPISTEMIC_SECURITY = "epistemicSecurity"
    # not AMA-G rules: aggregate success, and a guarded operation's failure
    AGGREGATE = "aggregate"
    OPERATION = "operation"


POLICY_RULES = (
    RuleKind.VERITY,
    RuleKind.DETERMINISM,
    RuleKind.NO_CONTAMINATION,
    RuleKind.EPISTEMIC_SECURITY,
)


def action_name(action: Union[Action, str]) -> str:
    """Return the plain string name of an action."""
    return action.value if isinstance(action, Action) else str(action)


def canonical_json(value: Any) -> bytes:
    """Serialize ``value`` to canonical JSON (sorted keys).

    Raises:
        TypeError: If the value has no JSON representation.
    """
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one policy rule, or of the aggregate."""

    passed: bool
    reason: str
    rule_kind: RuleKind


@dataclass(frozen=True)
class OperationContext:
    """Describes one governed operation. Built per call, never persisted."""

    user_id: Any
    action: Union[Action, str]
    resource_type: str
    resource_id: Optional[int] = None
    input: Any = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def action_name(self) -> str:
        return action_name(self.action)

    @classmethod
    def from_request(
        cls,
        request: web.Request,
        *,
        user_id: int,
        action: Union[Action, str],
        resource_type: str,
        resource_id: Optional[int] = None,
        input: Any = None,
    ) -> "OperationContext":
        """Build a context carrying the caller metadata of an aiohttp request."""
        return cls(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            input={} if input is None else input,
            ip_address=request.remote,
            user_agent=request.headers.get("User-Agent"),
        )
