"""Global test configuration for HomeSwift."""

import os

import pytest

from homeswift.models.identity import Identity, Profile, Role, RoleAssignment


@pytest.fixture(autouse=True, scope="session")
def _set_test_env_vars():
    """Set dummy environment variables for Settings validation.

    This ensures tests don't require a real .env file or exported env vars.
    Only sets values that aren't already present, so real env vars take
    precedence (useful for integration tests).
    """
    defaults = {
        "SUPABASE_URL": "https://test.supabase.co",
        "SUPABASE_KEY": "test-supabase-key",
        "INTENT_SIGNING_SECRET": "test-intent-secret",
        "SESSION_RETRY_DELAY": "0",
        "COOKIE_SECURE": "false",
    }
    originals = {}
    for key, value in defaults.items():
        if key not in os.environ:
            os.environ[key] = value
            originals[key] = None
        else:
            originals[key] = os.environ[key]

    # Clear the lru_cache on get_settings so it picks up the new env vars
    from homeswift.config import get_settings
    get_settings.cache_clear()

    yield

    # Restore original env state
    for key, original in originals.items():
        if original is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# In-memory stand-in for DatabaseClient
# ---------------------------------------------------------------------------

READ_METHODS = frozenset({"get_profile", "list_role_assignments"})


class FakeAPIError(Exception):
    """Mimics a PostgREST APIError, including its ``code``."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class FakeDatabase:
    """Implements the DatabaseClient methods over plain dicts.

    Add a method name to ``fail`` to make it raise.
    """

    def __init__(self) -> None:
        self.profiles: dict[str, Profile] = {}
        self.roles: list[dict] = []
        self.fail: set[str] = set()
        self.calls: list[str] = []

    @property
    def mutations(self) -> list[str]:
        return [c for c in self.calls if c not in READ_METHODS]

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise FakeAPIError(f"{name} failed")

    def _rows(self, user_id: str) -> list[dict]:
        return [r for r in self.roles if r["user_id"] == user_id]

    def primaries(self, user_id: str) -> list[str]:
        return [r["role"] for r in self._rows(user_id) if r["is_primary"]]

    async def get_profile(self, user_id: str) -> Profile | None:
        self._check("get_profile")
        return self.profiles.get(user_id)

    async def create_profile(self, identity: Identity, user_type: Role) -> None:
        self._check("create_profile")
        if identity.id in self.profiles:
            raise FakeAPIError("duplicate key value", code="23505")
        self.profiles[identity.id] = Profile(
            id=identity.id,
            email=identity.email,
            full_name=identity.display_name,
            avatar_url=identity.avatar_url,
            user_type=user_type.value,
        )

    async def sync_profile(self, identity: Identity) -> None:
        self._check("sync_profile")
        existing = self.profiles.get(identity.id)
        self.profiles[identity.id] = Profile(
            id=identity.id,
            email=identity.email,
            full_name=identity.display_name,
            avatar_url=identity.avatar_url,
            user_type=existing.user_type if existing else None,
        )

    async def list_role_assignments(self, user_id: str) -> list[RoleAssignment]:
        self._check("list_role_assignments")
        return [RoleAssignment(**r) for r in self._rows(user_id)]

    async def add_user_role(self, user_id: str, role: Role, is_primary: bool = True) -> None:
        self._check("add_user_role")
        if is_primary:
            for r in self._rows(user_id):
                r["is_primary"] = False
        for r in self._rows(user_id):
            if r["role"] == role.value:
                r["is_primary"] = is_primary
                return
        self.roles.append({"user_id": user_id, "role": role.value, "is_primary": is_primary})

    async def set_user_role(self, user_id: str, role: Role) -> None:
        self._check("set_user_role")
        for r in self._rows(user_id):
            r["is_primary"] = r["role"] == role.value

    async def insert_role_assignment(
        self, user_id: str, role: Role, is_primary: bool = True
    ) -> None:
        self._check("insert_role_assignment")
        if any(r["role"] == role.value for r in self._rows(user_id)):
            raise FakeAPIError("duplicate key value", code="23505")
        self.roles.append({"user_id": user_id, "role": role.value, "is_primary": is_primary})

    async def demote_roles(self, user_id: str, keep: Role | None = None) -> None:
        self._check("demote_roles")
        for r in self._rows(user_id):
            if keep is None or r["role"] != keep.value:
                r["is_primary"] = False

    async def promote_role(self, user_id: str, role: Role) -> None:
        self._check("promote_role")
        for r in self._rows(user_id):
            if r["role"] == role.value:
                r["is_primary"] = True


@pytest.fixture
def fake_db() -> FakeDatabase:
    """Empty in-memory database."""
    return FakeDatabase()


@pytest.fixture
def identity() -> Identity:
    """A Google-authenticated identity with no role hint."""
    return Identity(
        id="u1",
        email="jane@example.com",
        user_metadata={"full_name": "Jane Doe", "avatar_url": "https://img/jane.png"},
    )
