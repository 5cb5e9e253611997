"""Client-side cache entries written as cookies.

The web client reads these to render the right role without another round
trip. They are a cache only; the ``user_roles`` table is authoritative.
Values are URL-encoded JSON so the client can read them with
``decodeURIComponent``.
"""

import json
import logging
from typing import Any
from urllib.parse import quote

from starlette.responses import Response

from homeswift.config import Settings
from homeswift.models.identity import Identity, Role, RoleAssignment
from homeswift.models.reconciliation import ReconciliationResult

logger = logging.getLogger(__name__)

PENDING_ROLE_KEY = "pendingRole"
USER_ROLES_KEY = "userRoles"
CURRENT_ROLE_KEY = "currentRole"
USER_KEY = "user"
ALL_KEYS = (PENDING_ROLE_KEY, USER_ROLES_KEY, CURRENT_ROLE_KEY, USER_KEY)


class ClientCache:
    """Writes and clears the client cache cookies on a response."""

    def __init__(self, secure: bool = True, max_age: int = 60 * 60 * 24 * 30) -> None:
        self.secure = secure
        self.max_age = max_age

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientCache":
        return cls(secure=settings.cookie_secure, max_age=settings.cookie_max_age)

    def snapshot(
        self,
        identity: Identity,
        role: Role | None,
        roles: list[RoleAssignment],
    ) -> dict[str, Any]:
        """Values for each cache key (before encoding)."""
        role_value = role.value if role else None
        metadata = dict(identity.user_metadata)
        if role_value:
            metadata["user_type"] = role_value
            metadata["role"] = role_value
        return {
            USER_ROLES_KEY: [{"role": r.role, "is_primary": r.is_primary} for r in roles],
            CURRENT_ROLE_KEY: role_value,
            USER_KEY: {
                "id": identity.id,
                "email": identity.email,
                "full_name": identity.display_name,
                "user_metadata": metadata,
            },
        }

    def write(
        self,
        response: Response,
        identity: Identity,
        role: Role | None,
        roles: list[RoleAssignment],
    ) -> None:
        """Overwrite the cache and clear the legacy pending-role flag."""
        response.delete_cookie(PENDING_ROLE_KEY)
        for key, value in self.snapshot(identity, role, roles).items():
            if value is None:
                response.delete_cookie(key)
                continue
            response.set_cookie(
                key,
                self._encode(value),
                max_age=self.max_age,
                secure=self.secure,
                httponly=False,  # Read by the web client
                samesite="lax",
            )
        logger.debug(f"Client cache written for {identity.id} (role={role})")

    def write_result(self, response: Response, result: ReconciliationResult) -> None:
        self.write(response, result.identity, result.role, result.roles)

    def clear(self, response: Response) -> None:
        for key in ALL_KEYS:
            response.delete_cookie(key)

    def _encode(self, value: Any) -> str:
        if isinstance(value, str):
            return quote(value, safe="")
        return quote(json.dumps(value, separators=(",", ":")), safe="")
