"""
Credential Vault data models.

Records that are persisted by the backing store: credentials (metadata plus
the encrypted secret, never the plaintext) and audit log entries.
"""
from enum import Enum
from typing import Any, Optional
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

REDACTED = "***REDACTED***"


class Platform(str, Enum):
    """Third-party platforms a credential can belong to."""

    ORCHESTRATION = "orchestration-platform"
    COGNITIVE = "cognitive-platform"
    SOURCE_CONTROL = "source-control-platform"


class AuditOutcome(str, Enum):
    """Aggregate validation outcome stored with each audit entry."""

    PASSED = "passed"
    FAILED = "failed"
    BLOCKED = "blocked"


class Credential(BaseModel):
    """A stored credential. ``encrypted_value`` is hex(ciphertext + tag)."""

    id: int
    user_id: int
    platform: Platform
    name: str = Field(min_length=1, max_length=255)
    encrypted_value: str
    encryption_iv: str
    is_active: bool = True
    last_validated: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_ciphertext_pair(self) -> "Credential":
        """Ciphertext and nonce are always set together."""
        if not self.encrypted_value or not self.encryption_iv:
            raise ValueError(
                "encrypted_value and encryption_iv must both be set"
            )
        return self

    def redacted(self) -> dict[str, Any]:
        """Return a display-safe view of the credential."""
        data = self.model_dump(exclude={"encryption_iv"})
        data["encrypted_value"] = REDACTED
        return data


class AuditLogEntry(BaseModel):
    """Immutable record of one governed operation."""

    id: Optional[int] = None
    user_id: Optional[int] = None
    action: str
    resource_type: str
    resource_id: Optional[int] = None
    details: Optional[str] = None
    ama_g_validation: AuditOutcome = AuditOutcome.PASSED
    rule_type: Optional[str] = None
    reason: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"frozen": True}
