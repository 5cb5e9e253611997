"""Supabase Auth access and the signed OAuth flow tokens."""

from homeswift.auth.intent import IntentSerializer, VerifierSerializer
from homeswift.auth.session import (
    OAuthStart,
    SessionCredentials,
    SupabaseAuthGateway,
    fetch_identity_with_retry,
    supabase_client_factory,
)

__all__ = [
    "IntentSerializer",
    "OAuthStart",
    "SessionCredentials",
    "SupabaseAuthGateway",
    "VerifierSerializer",
    "fetch_identity_with_retry",
    "supabase_client_factory",
]
