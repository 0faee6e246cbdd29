"""AMA-G Governance — policy validation and audit of credential operations.

Every state-changing operation passes through :class:`GovernanceMiddleware`:
the :class:`PolicyEngine` must accept it before it runs, and the
:class:`AuditRecorder` writes one immutable entry whatever the outcome.
"""

from .context import Action, OperationContext, RuleKind, ValidationResult
from .policy import ALLOWED_ACTIONS, PolicyEngine
from .audit import AuditRecorder
from .middleware import GovernanceMiddleware
from .service import CredentialService

__all__ = [
    "Action",
    "OperationContext",
    "RuleKind",
    "ValidationResult",
    "ALLOWED_ACTIONS",
    "PolicyEngine",
    "AuditRecorder",
    "GovernanceMiddleware",
    "CredentialService",
]
