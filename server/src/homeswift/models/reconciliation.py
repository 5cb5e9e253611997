"""Outcome models for a role reconciliation pass."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from homeswift.models.identity import Identity, Role, RoleAssignment


class PersistenceStatus(str, Enum):
    """What happened to a durable record during reconciliation."""

    PERSISTED = "persisted"  # Written this pass
    UNCHANGED = "unchanged"  # Already correct, nothing written
    FAILED = "failed"  # Write (or the read it depended on) failed


class ReconciliationResult(BaseModel):
    """Outcome of one reconciliation pass.

    The callback always redirects, but callers can tell a role that was
    actually persisted apart from one that only lives in the client cache.
    """

    identity: Identity
    role: Role | None
    role_source: str
    roles: list[RoleAssignment] = Field(default_factory=list)
    redirect_to: str
    profile_created: bool = False
    profile_status: PersistenceStatus
    role_status: PersistenceStatus
    errors: list[str] = Field(default_factory=list)

    @property
    def role_persisted(self) -> bool:
        return self.role_status != PersistenceStatus.FAILED

    @property
    def needs_retry(self) -> bool:
        """True when the next sign-in has to finish what this pass could not."""
        return (
            self.role_status == PersistenceStatus.FAILED
            or self.profile_status == PersistenceStatus.FAILED
        )

    def to_event(self) -> dict[str, Any]:
        """Payload broadcast to listeners once the pass is done."""
        return auth_state_event(self.identity, self.role, self.roles, self.role_persisted)


def auth_state_event(
    identity: Identity,
    role: Role | None,
    roles: list[RoleAssignment],
    role_persisted: bool,
) -> dict[str, Any]:
    """Body of an ``auth_state_changed`` event."""
    return {
        "user_id": identity.id,
        "email": identity.email,
        "role": role.value if role else None,
        "roles": [r.model_dump() for r in roles],
        "role_persisted": role_persisted,
    }
