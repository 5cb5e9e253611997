"""Tests for the role resolver chain."""

from homeswift.models.identity import Identity, Profile, Role
from homeswift.reconcile.resolvers import (
    DEFAULT_RESOLVERS,
    ResolutionInputs,
    default_role,
    from_intent,
    from_profile,
    from_provider_metadata,
    resolve_role,
)


def _identity(**metadata) -> Identity:
    return Identity(id="u1", email="a@b.com", user_metadata=metadata)


# ---------------------------------------------------------------------------
# Individual resolvers
# ---------------------------------------------------------------------------

class TestIndividualResolvers:
    """Each resolver looks at exactly one signal."""

    def test_from_intent(self):
        inputs = ResolutionInputs(identity=_identity(), intended_role=Role.LANDLORD)
        assert from_intent(inputs) == Role.LANDLORD
        assert from_intent(ResolutionInputs(identity=_identity())) is None

    def test_from_profile_reads_user_type(self):
        profile = Profile(id="u1", user_type="landlord")
        inputs = ResolutionInputs(identity=_identity(), profile=profile)
        assert from_profile(inputs) == Role.LANDLORD

    def test_from_profile_ignores_unknown_type(self):
        profile = Profile(id="u1", user_type="admin")
        inputs = ResolutionInputs(identity=_identity(), profile=profile)
        assert from_profile(inputs) is None

    def test_from_profile_without_profile(self):
        assert from_profile(ResolutionInputs(identity=_identity())) is None

    def test_from_provider_metadata_user_type(self):
        inputs = ResolutionInputs(identity=_identity(user_type="Landlord"))
        assert from_provider_metadata(inputs) == Role.LANDLORD

    def test_from_provider_metadata_role_key(self):
        inputs = ResolutionInputs(identity=_identity(role="renter"))
        assert from_provider_metadata(inputs) == Role.RENTER

    def test_from_provider_metadata_skips_invalid_user_type(self):
        inputs = ResolutionInputs(identity=_identity(user_type="owner", role="landlord"))
        assert from_provider_metadata(inputs) == Role.LANDLORD

    def test_default_is_renter(self):
        assert default_role(ResolutionInputs(identity=_identity())) == Role.RENTER


# ---------------------------------------------------------------------------
# Chain precedence
# ---------------------------------------------------------------------------

class TestResolveRole:
    """First match wins, in intent > profile > metadata > default order."""

    def test_intent_beats_profile(self):
        inputs = ResolutionInputs(
            identity=_identity(user_type="renter"),
            intended_role=Role.LANDLORD,
            profile=Profile(id="u1", user_type="renter"),
        )
        resolution = resolve_role(inputs)
        assert resolution.role == Role.LANDLORD
        assert resolution.source == "intent"

    def test_profile_beats_metadata(self):
        inputs = ResolutionInputs(
            identity=_identity(user_type="renter"),
            profile=Profile(id="u1", user_type="landlord"),
        )
        resolution = resolve_role(inputs)
        assert resolution.role == Role.LANDLORD
        assert resolution.source == "profile"

    def test_metadata_used_without_profile(self):
        resolution = resolve_role(ResolutionInputs(identity=_identity(user_type="landlord")))
        assert resolution.role == Role.LANDLORD
        assert resolution.source == "provider_metadata"

    def test_default_when_nothing_available(self):
        resolution = resolve_role(ResolutionInputs(identity=_identity()))
        assert resolution.role == Role.RENTER
        assert resolution.source == "default"

    def test_custom_chain_without_default_can_yield_none(self):
        chain = tuple(r for r in DEFAULT_RESOLVERS if r[0] != "default")
        resolution = resolve_role(ResolutionInputs(identity=_identity()), chain)
        assert resolution.role is None
        assert resolution.source == "none"
