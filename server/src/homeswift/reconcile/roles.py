"""Role-set update: make one role the user's primary role.

Every path tries the transactional remote procedure first. The direct table
fallback is two separate writes; a concurrent pass for the same user can
interleave with it and briefly leave zero or two primary rows. The
"already primary" branch demotes stray primaries, so the next pass repairs it.
"""

import logging

from homeswift.db.client import DatabaseClient, is_duplicate_key_error
from homeswift.exceptions import RoleAssignmentError
from homeswift.models.identity import Role, RoleAssignment
from homeswift.models.reconciliation import PersistenceStatus

logger = logging.getLogger(__name__)


class RoleSetUpdater:
    """Applies the primary-role decision to the ``user_roles`` rows."""

    def __init__(self, db: DatabaseClient) -> None:
        self.db = db

    async def make_primary(
        self,
        user_id: str,
        role: Role,
        assignments: list[RoleAssignment] | None,
    ) -> PersistenceStatus:
        """Ensure ``role`` is the user's single primary role.

        Args:
            user_id: The user ID
            role: Role that should be primary
            assignments: Current rows, or None if they could not be read

        Returns:
            PERSISTED if anything was written, UNCHANGED otherwise

        Raises:
            RoleAssignmentError: If the role could not be persisted
        """
        if assignments is None:
            # Without the current rows the direct fallback could duplicate one
            try:
                await self.db.add_user_role(user_id, role, is_primary=True)
            except Exception as e:
                raise RoleAssignmentError(user_id, role.value, f"add_user_role failed: {e}") from e
            return PersistenceStatus.PERSISTED

        existing = next((a for a in assignments if a.role == role.value), None)

        if existing is None:
            await self._add(user_id, role)
            return PersistenceStatus.PERSISTED

        if not existing.is_primary:
            await self._promote(user_id, role)
            return PersistenceStatus.PERSISTED

        stray = [a.role for a in assignments if a.is_primary and a.role != role.value]
        if stray:
            logger.warning(f"User {user_id} has extra primary roles {stray}, demoting")
            try:
                await self.db.demote_roles(user_id, keep=role)
            except Exception as e:
                raise RoleAssignmentError(user_id, role.value, f"demote failed: {e}") from e
            return PersistenceStatus.PERSISTED

        return PersistenceStatus.UNCHANGED

    async def _add(self, user_id: str, role: Role) -> None:
        try:
            await self.db.add_user_role(user_id, role, is_primary=True)
            return
        except Exception as e:
            logger.warning(f"add_user_role RPC failed for {user_id}, using direct writes: {e}")

        try:
            await self.db.demote_roles(user_id)
            try:
                await self.db.insert_role_assignment(user_id, role, is_primary=True)
            except Exception as e:
                if not is_duplicate_key_error(e):
                    raise
                logger.info(f"Role {role.value} already exists for {user_id}, promoting")
                await self.db.promote_role(user_id, role)
        except Exception as e:
            raise RoleAssignmentError(user_id, role.value, str(e)) from e

    async def _promote(self, user_id: str, role: Role) -> None:
        try:
            await self.db.set_user_role(user_id, role)
            return
        except Exception as e:
            logger.warning(f"set_user_role RPC failed for {user_id}, using direct writes: {e}")

        try:
            await self.db.demote_roles(user_id)
            await self.db.promote_role(user_id, role)
        except Exception as e:
            raise RoleAssignmentError(user_id, role.value, str(e)) from e
