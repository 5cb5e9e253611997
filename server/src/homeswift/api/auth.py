"""API authentication dependencies."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from homeswift.auth.session import SupabaseAuthGateway, supabase_client_factory
from homeswift.config import get_settings
from homeswift.db.client import DatabaseClient
from homeswift.models.identity import Identity

logger = logging.getLogger(__name__)

_db_client: DatabaseClient | None = None
_gateway: SupabaseAuthGateway | None = None


def get_db_client() -> DatabaseClient:
    """Get or create database client instance."""
    global _db_client
    if _db_client is None:
        _db_client = DatabaseClient()
    return _db_client


def get_auth_gateway() -> SupabaseAuthGateway:
    """Get or create the auth gateway.

    It builds its own Supabase clients so that no user session ever lands on
    the database client.
    """
    global _gateway
    if _gateway is None:
        settings = get_settings()
        _gateway = SupabaseAuthGateway(
            supabase_client_factory(settings.supabase_url, settings.supabase_key)
        )
    return _gateway


class AuthenticatedUser(BaseModel):
    """Identity behind a validated bearer token."""

    identity: Identity
    access_token: str


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    gateway: Annotated[SupabaseAuthGateway, Depends(get_auth_gateway)],
    authorization: Annotated[str | None, Header()] = None,
) -> AuthenticatedUser:
    """Validate the bearer token against Supabase Auth.

    Args:
        gateway: The auth gateway
        authorization: The Authorization header

    Returns:
        The authenticated user

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. No token provided.",
        )

    try:
        identity = await gateway.get_user(token)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        identity = None

    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    logger.debug(f"Authenticated user {identity.id}")
    return AuthenticatedUser(identity=identity, access_token=token)


# Type alias for dependency injection
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
