"""Role reconciliation for an OAuth sign-in callback."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from homeswift.config import Settings
from homeswift.db.client import DatabaseClient, is_duplicate_key_error
from homeswift.exceptions import RoleAssignmentError
from homeswift.models.identity import Identity, Profile, Role, RoleAssignment
from homeswift.models.reconciliation import PersistenceStatus, ReconciliationResult
from homeswift.reconcile.resolvers import (
    DEFAULT_RESOLVERS,
    ResolutionInputs,
    Resolver,
    resolve_role,
)
from homeswift.reconcile.roles import RoleSetUpdater

logger = logging.getLogger(__name__)


@dataclass
class RedirectPaths:
    """Post-login destinations."""

    landlord: str = "/landlord/dashboard"
    renter: str = "/chat"
    fallback: str = "/profile"

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedirectPaths":
        return cls(
            landlord=settings.landlord_dashboard_path,
            renter=settings.renter_home_path,
            fallback=settings.profile_fallback_path,
        )


def redirect_for_role(role: Role | str | None, paths: RedirectPaths) -> str:
    """Map a role to where the browser goes after sign-in."""
    parsed = Role.parse(role)
    if parsed == Role.LANDLORD:
        return paths.landlord
    if parsed == Role.RENTER:
        return paths.renter
    return paths.fallback


def project_roles(
    user_id: str,
    role: Role,
    assignments: list[RoleAssignment],
) -> list[RoleAssignment]:
    """Role rows as they should look once ``role`` is the only primary."""
    projected = [
        RoleAssignment(user_id=user_id, role=a.role, is_primary=a.role == role.value)
        for a in assignments
    ]
    if not any(a.role == role.value for a in projected):
        projected.append(RoleAssignment(user_id=user_id, role=role.value, is_primary=True))
    return projected


class RoleReconciler:
    """Decides, persists and reports a user's role for one sign-in.

    Steps, each independently best-effort:
    1. Read the profile and resolve the role (intent, profile, metadata, default)
    2. Create the profile or sync its display fields (never its user_type)
    3. Read the role rows and make the resolved role the single primary
    4. Re-read the role rows for the client cache

    Failures in any step are logged and recorded on the result; the pass
    always ends with a redirect decision.
    """

    def __init__(
        self,
        db: DatabaseClient,
        paths: RedirectPaths | None = None,
        resolvers: Sequence[tuple[str, Resolver]] = DEFAULT_RESOLVERS,
    ) -> None:
        self.db = db
        self.paths = paths or RedirectPaths()
        self.resolvers = resolvers
        self.role_updater = RoleSetUpdater(db)

    async def reconcile(
        self,
        identity: Identity,
        intended_role: Role | None = None,
    ) -> ReconciliationResult:
        """Run one reconciliation pass.

        Args:
            identity: The signed-in identity
            intended_role: Role chosen for this sign-in attempt, if any

        Returns:
            ReconciliationResult with the resolved role, redirect and
            persistence status
        """
        errors: list[str] = []

        profile: Profile | None = None
        profile_known = True
        try:
            profile = await self.db.get_profile(identity.id)
        except Exception as e:
            profile_known = False
            errors.append(f"profile read: {e}")
            logger.warning(f"Could not read profile for {identity.id}: {e}")

        resolution = resolve_role(
            ResolutionInputs(identity=identity, intended_role=intended_role, profile=profile),
            self.resolvers,
        )
        role = resolution.role
        logger.info(
            f"Resolved role for {identity.id}: {role.value if role else None} "
            f"(source={resolution.source})"
        )

        profile_status, profile_created = await self._write_profile(
            identity, role, profile, profile_known, errors
        )

        assignments: list[RoleAssignment] | None = None
        try:
            assignments = await self.db.list_role_assignments(identity.id)
        except Exception as e:
            errors.append(f"role read: {e}")
            logger.warning(f"Could not read roles for {identity.id}: {e}")

        if role is None:
            role_status = PersistenceStatus.UNCHANGED
        else:
            try:
                role_status = await self.role_updater.make_primary(identity.id, role, assignments)
            except RoleAssignmentError as e:
                role_status = PersistenceStatus.FAILED
                errors.append(f"role write: {e.reason}")
                logger.warning(str(e))

        roles = await self._refresh_roles(identity.id, role, assignments, role_status)

        result = ReconciliationResult(
            identity=identity,
            role=role,
            role_source=resolution.source,
            roles=roles,
            redirect_to=redirect_for_role(role, self.paths),
            profile_created=profile_created,
            profile_status=profile_status,
            role_status=role_status,
            errors=errors,
        )
        if result.needs_retry:
            logger.warning(f"Reconciliation for {identity.id} incomplete: {errors}")
        return result

    async def _write_profile(
        self,
        identity: Identity,
        role: Role | None,
        profile: Profile | None,
        profile_known: bool,
        errors: list[str],
    ) -> tuple[PersistenceStatus, bool]:
        if profile_known and profile is None and role is not None:
            try:
                await self.db.create_profile(identity, role)
                return PersistenceStatus.PERSISTED, True
            except Exception as e:
                if not is_duplicate_key_error(e):
                    errors.append(f"profile create: {e}")
                    logger.warning(f"Could not create profile for {identity.id}: {e}")
                    return PersistenceStatus.FAILED, False
                # Created by a concurrent sign-in; keep its user_type
                logger.info(f"Profile for {identity.id} appeared concurrently, syncing")

        try:
            await self.db.sync_profile(identity)
            return PersistenceStatus.PERSISTED, False
        except Exception as e:
            errors.append(f"profile sync: {e}")
            logger.warning(f"Could not sync profile for {identity.id}: {e}")
            return PersistenceStatus.FAILED, False

    async def _refresh_roles(
        self,
        user_id: str,
        role: Role | None,
        assignments: list[RoleAssignment] | None,
        role_status: PersistenceStatus,
    ) -> list[RoleAssignment]:
        try:
            return await self.db.list_role_assignments(user_id)
        except Exception as e:
            logger.warning(f"Could not refresh roles for {user_id}: {e}")

        if role is not None and role_status != PersistenceStatus.FAILED:
            return project_roles(user_id, role, assignments or [])
        return assignments or []
