"""Supabase database client for profiles and role assignments."""

import logging
import time
from datetime import UTC, datetime
from typing import Any

from supabase import Client, create_client

from homeswift.config import get_settings
from homeswift.models.identity import Identity, Profile, Role, RoleAssignment

logger = logging.getLogger(__name__)

PROFILES_TABLE = "user_profiles"
ROLES_TABLE = "user_roles"

# Postgres unique_violation
DUPLICATE_KEY_CODE = "23505"


def is_duplicate_key_error(error: Exception) -> bool:
    """Check whether a PostgREST error is a unique constraint violation."""
    return getattr(error, "code", None) == DUPLICATE_KEY_CODE


class DatabaseClient:
    """Client for Supabase database operations."""

    def __init__(self, client: Client | None = None) -> None:
        if client is None:
            settings = get_settings()
            client = create_client(
                settings.supabase_url,
                settings.supabase_key,
            )
        self.client: Client = client

    # -------------------------------------------------------------------------
    # Profile methods
    # -------------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Profile | None:
        """Get a profile by user ID.

        Args:
            user_id: The Supabase Auth user ID

        Returns:
            Profile if found, None otherwise
        """
        result = (
            self.client.table(PROFILES_TABLE)
            .select("*")
            .eq("id", user_id)
            .execute()
        )
        if result.data:
            return Profile(**result.data[0])
        return None

    async def create_profile(self, identity: Identity, user_type: Role) -> None:
        """Insert a new profile with its legacy primary type.

        Args:
            identity: The authenticated identity
            user_type: Primary type recorded on first sign-in

        Raises:
            APIError: On failure, including a duplicate key if the profile
                was created concurrently
        """
        data = {
            **self._profile_fields(identity),
            "user_type": user_type.value,
        }
        self.client.table(PROFILES_TABLE).insert(data).execute()
        logger.debug(f"Created profile {identity.id} as {user_type.value}")

    async def sync_profile(self, identity: Identity) -> None:
        """Upsert display fields without touching ``user_type``.

        Args:
            identity: The authenticated identity
        """
        self.client.table(PROFILES_TABLE).upsert(
            self._profile_fields(identity),
            on_conflict="id",
        ).execute()
        logger.debug(f"Synced profile {identity.id}")

    def _profile_fields(self, identity: Identity) -> dict[str, Any]:
        return {
            "id": identity.id,
            "email": identity.email,
            "full_name": identity.display_name,
            "avatar_url": identity.avatar_url,
            "updated_at": datetime.now(UTC).isoformat(),
        }

    # -------------------------------------------------------------------------
    # Role methods
    # -------------------------------------------------------------------------

    async def list_role_assignments(self, user_id: str) -> list[RoleAssignment]:
        """Get all role rows for a user.

        Args:
            user_id: The user ID

        Returns:
            List of role assignments, possibly empty
        """
        result = (
            self.client.table(ROLES_TABLE)
            .select("user_id, role, is_primary")
            .eq("user_id", user_id)
            .execute()
        )
        return [RoleAssignment(**row) for row in result.data]

    async def add_user_role(
        self,
        user_id: str,
        role: Role,
        is_primary: bool = True,
    ) -> None:
        """Add a role through the ``add_user_role`` remote procedure.

        The procedure demotes the other rows in the same transaction when
        ``is_primary`` is set.

        Args:
            user_id: The user ID
            role: Role to add
            is_primary: Whether the new row becomes primary
        """
        self.client.rpc("add_user_role", {
            "p_user_id": user_id,
            "p_role": role.value,
            "p_is_primary": is_primary,
        }).execute()
        logger.debug(f"RPC add_user_role {role.value} for user {user_id}")

    async def set_user_role(self, user_id: str, role: Role) -> None:
        """Make an existing role the only primary one via ``set_user_role``.

        Args:
            user_id: The user ID
            role: Role to make primary
        """
        self.client.rpc("set_user_role", {
            "p_user_id": user_id,
            "p_role": role.value,
        }).execute()
        logger.debug(f"RPC set_user_role {role.value} for user {user_id}")

    async def insert_role_assignment(
        self,
        user_id: str,
        role: Role,
        is_primary: bool = True,
    ) -> None:
        """Insert a role row directly.

        Args:
            user_id: The user ID
            role: Role to insert
            is_primary: Primary flag for the new row
        """
        self.client.table(ROLES_TABLE).insert({
            "user_id": user_id,
            "role": role.value,
            "is_primary": is_primary,
        }).execute()
        logger.debug(f"Inserted role {role.value} for user {user_id}")

    async def demote_roles(self, user_id: str, keep: Role | None = None) -> None:
        """Clear ``is_primary`` on a user's role rows.

        Args:
            user_id: The user ID
            keep: Optional role whose row is left as it is
        """
        query = (
            self.client.table(ROLES_TABLE)
            .update({"is_primary": False})
            .eq("user_id", user_id)
        )
        if keep is not None:
            query = query.neq("role", keep.value)
        query.execute()
        logger.debug(f"Demoted roles for user {user_id} (keep={keep})")

    async def promote_role(self, user_id: str, role: Role) -> None:
        """Set ``is_primary`` on one role row.

        Args:
            user_id: The user ID
            role: Role to promote
        """
        (
            self.client.table(ROLES_TABLE)
            .update({"is_primary": True})
            .eq("user_id", user_id)
            .eq("role", role.value)
            .execute()
        )
        logger.debug(f"Promoted role {role.value} for user {user_id}")

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Check database connectivity and return health status.

        Returns:
            Dict with:
                - healthy: bool - whether the database is reachable
                - latency_ms: float - query latency in milliseconds
                - error: str | None - error message if unhealthy
        """
        start = time.perf_counter()
        try:
            self.client.table(PROFILES_TABLE).select("id").limit(1).execute()
            latency_ms = (time.perf_counter() - start) * 1000
            return {
                "healthy": True,
                "latency_ms": round(latency_ms, 2),
                "error": None,
            }
        except Exception as e:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.error(f"Database health check failed: {e}")
            return {
                "healthy": False,
                "latency_ms": round(latency_ms, 2),
                "error": str(e),
            }
