"""Pydantic models for HomeSwift."""

from homeswift.models.identity import (
    Identity,
    Profile,
    Role,
    RoleAssignment,
    has_role,
    primary_role,
)
from homeswift.models.reconciliation import PersistenceStatus, ReconciliationResult

__all__ = [
    "Identity",
    "PersistenceStatus",
    "Profile",
    "ReconciliationResult",
    "Role",
    "RoleAssignment",
    "has_role",
    "primary_role",
]
