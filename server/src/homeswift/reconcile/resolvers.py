"""Ordered resolver chain that picks the role for a sign-in pass."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from homeswift.models.identity import Identity, Profile, Role

METADATA_ROLE_KEYS = ("user_type", "role")
DEFAULT_ROLE = Role.RENTER


@dataclass
class ResolutionInputs:
    """Everything the resolvers may look at."""

    identity: Identity
    intended_role: Role | None = None
    profile: Profile | None = None


@dataclass
class RoleResolution:
    """Resolved role and the resolver that produced it."""

    role: Role | None
    source: str


Resolver = Callable[[ResolutionInputs], Role | None]


def from_intent(inputs: ResolutionInputs) -> Role | None:
    """Role explicitly chosen for this sign-in attempt."""
    return inputs.intended_role


def from_profile(inputs: ResolutionInputs) -> Role | None:
    """Legacy primary type stored on the profile."""
    if inputs.profile is None:
        return None
    return Role.parse(inputs.profile.user_type)


def from_provider_metadata(inputs: ResolutionInputs) -> Role | None:
    """Role hint carried in the auth provider's user metadata."""
    for key in METADATA_ROLE_KEYS:
        role = Role.parse(inputs.identity.user_metadata.get(key))
        if role is not None:
            return role
    return None


def default_role(inputs: ResolutionInputs) -> Role | None:
    return DEFAULT_ROLE


# First match wins
DEFAULT_RESOLVERS: tuple[tuple[str, Resolver], ...] = (
    ("intent", from_intent),
    ("profile", from_profile),
    ("provider_metadata", from_provider_metadata),
    ("default", default_role),
)


def resolve_role(
    inputs: ResolutionInputs,
    resolvers: Sequence[tuple[str, Resolver]] = DEFAULT_RESOLVERS,
) -> RoleResolution:
    """Run resolvers in order and return the first role produced.

    Args:
        inputs: Signals available for this pass
        resolvers: (name, resolver) pairs in priority order

    Returns:
        RoleResolution; role is None only if no resolver matched
    """
    for name, resolver in resolvers:
        role = resolver(inputs)
        if role is not None:
            return RoleResolution(role=role, source=name)
    return RoleResolution(role=None, source="none")
