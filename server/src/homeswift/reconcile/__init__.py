"""Role resolution and reconciliation for OAuth sign-ins."""

from homeswift.reconcile.reconciler import (
    RedirectPaths,
    RoleReconciler,
    redirect_for_role,
)
from homeswift.reconcile.resolvers import (
    DEFAULT_RESOLVERS,
    ResolutionInputs,
    RoleResolution,
    resolve_role,
)
from homeswift.reconcile.roles import RoleSetUpdater

__all__ = [
    "DEFAULT_RESOLVERS",
    "RedirectPaths",
    "ResolutionInputs",
    "RoleReconciler",
    "RoleResolution",
    "RoleSetUpdater",
    "redirect_for_role",
    "resolve_role",
]
