"""Identity, profile and role models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Marketplace role a user can act as."""

    LANDLORD = "landlord"
    RENTER = "renter"

    @classmethod
    def parse(cls, value: Any) -> "Role | None":
        """Return the matching Role, or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Identity(BaseModel):
    """Authenticated end-user as known to Supabase Auth."""

    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str | None:
        for key in ("full_name", "name"):
            value = self.user_metadata.get(key)
            if value:
                return value
        if self.email:
            return self.email.split("@")[0]
        return None

    @property
    def avatar_url(self) -> str | None:
        return self.user_metadata.get("avatar_url") or self.user_metadata.get("picture")

    @classmethod
    def from_supabase_user(cls, user: Any) -> "Identity":
        """Build an Identity from a supabase-py ``User`` object."""
        return cls(
            id=str(user.id),
            email=user.email,
            user_metadata=dict(user.user_metadata or {}),
        )


class Profile(BaseModel):
    """Row of the ``user_profiles`` table."""

    id: str
    email: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    user_type: str | None = None  # Legacy single primary type
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RoleAssignment(BaseModel):
    """Row of the ``user_roles`` table."""

    user_id: str
    role: str
    is_primary: bool = False


def primary_role(assignments: list[RoleAssignment]) -> str | None:
    """Role flagged primary, else the first role held, else None."""
    for assignment in assignments:
        if assignment.is_primary:
            return assignment.role
    if assignments:
        return assignments[0].role
    return None


def has_role(assignments: list[RoleAssignment], role: str) -> bool:
    """Check whether a role is held at all (primary or not)."""
    return any(a.role == role for a in assignments)
