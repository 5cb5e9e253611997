"""FastAPI routes for OAuth sign-in, role management and auth-state streaming."""

import asyncio
import json
import logging
from typing import Annotated, AsyncIterator
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.responses import StreamingResponse

from homeswift import __version__
from homeswift.api.auth import (
    CurrentUser,
    bearer_token,
    get_auth_gateway,
    get_db_client,
)
from homeswift.api.events import (
    EVENT_AUTH_STATE_CHANGED,
    EVENT_SIGNED_OUT,
    EventBus,
)
from homeswift.auth.intent import IntentSerializer, VerifierSerializer
from homeswift.auth.session import (
    SessionCredentials,
    SupabaseAuthGateway,
    fetch_identity_with_retry,
)
from homeswift.config import get_settings
from homeswift.db.client import DatabaseClient
from homeswift.exceptions import RoleAssignmentError, SessionRetrievalError
from homeswift.models.identity import (
    Identity,
    Role,
    RoleAssignment,
    has_role,
    primary_role,
)
from homeswift.models.reconciliation import PersistenceStatus, auth_state_event
from homeswift.reconcile.reconciler import RedirectPaths, RoleReconciler, project_roles
from homeswift.services.client_cache import PENDING_ROLE_KEY, ClientCache

logger = logging.getLogger(__name__)

router = APIRouter()

AUTH_FAILED_MESSAGE = "Authentication failed. Please try signing in again."
GENERIC_ERROR_MESSAGE = "Something went wrong while signing you in. Please try again."

CALLBACK_PATH = "/auth/callback"
# Server-only; holds the signed PKCE verifier between login and callback
VERIFIER_COOKIE = "hsPkceVerifier"

# Dependency injection
_event_bus: EventBus | None = None
_reconciler: RoleReconciler | None = None
_intents: IntentSerializer | None = None
_verifiers: VerifierSerializer | None = None
_client_cache: ClientCache | None = None


def get_event_bus() -> EventBus:
    """Get or create event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def get_reconciler() -> RoleReconciler:
    """Get or create role reconciler instance."""
    global _reconciler
    if _reconciler is None:
        _reconciler = RoleReconciler(
            db=get_db_client(),
            paths=RedirectPaths.from_settings(get_settings()),
        )
    return _reconciler


def get_intent_serializer() -> IntentSerializer:
    """Get or create the intended-role token serializer."""
    global _intents
    if _intents is None:
        settings = get_settings()
        _intents = IntentSerializer(settings.intent_signing_secret, settings.intent_max_age)
    return _intents


def get_verifier_serializer() -> VerifierSerializer:
    """Get or create the PKCE verifier cookie serializer."""
    global _verifiers
    if _verifiers is None:
        settings = get_settings()
        _verifiers = VerifierSerializer(settings.intent_signing_secret, settings.intent_max_age)
    return _verifiers


def get_client_cache() -> ClientCache:
    """Get or create the client cache writer."""
    global _client_cache
    if _client_cache is None:
        _client_cache = ClientCache.from_settings(get_settings())
    return _client_cache


class RoleRequest(BaseModel):
    """Body for role add/switch requests."""

    role: Role


class RolesResponse(BaseModel):
    """Role state returned after a role change."""

    role: str | None
    roles: list[RoleAssignment]
    status: PersistenceStatus


class MeResponse(BaseModel):
    """The signed-in user and their roles."""

    identity: Identity
    roles: list[RoleAssignment]
    current_role: str | None


def failure_page(message: str, status_code: int) -> HTMLResponse:
    """Error notice that sends the browser back to sign-in after a delay."""
    settings = get_settings()
    delay = settings.failure_redirect_delay
    target = settings.login_path
    body = (
        "<!doctype html><html><head>"
        f'<meta http-equiv="refresh" content="{delay};url={target}">'
        "<title>Sign-in failed</title></head>"
        f"<body><p>{message}</p>"
        f'<p>Redirecting to <a href="{target}">sign in</a>...</p></body></html>'
    )
    return HTMLResponse(
        content=body,
        status_code=status_code,
        headers={"Refresh": f"{delay}; url={target}"},
    )


@router.get("/health")
async def health_check(
    db: Annotated[DatabaseClient, Depends(get_db_client)],
) -> dict:
    """Health check endpoint."""
    db_health = await db.health_check()
    return {
        "status": "healthy" if db_health["healthy"] else "degraded",
        "version": __version__,
        "database": db_health,
    }


# -----------------------------------------------------------------------------
# OAuth sign-in
# -----------------------------------------------------------------------------


@router.get("/auth/login")
async def login(
    gateway: Annotated[SupabaseAuthGateway, Depends(get_auth_gateway)],
    intents: Annotated[IntentSerializer, Depends(get_intent_serializer)],
    verifiers: Annotated[VerifierSerializer, Depends(get_verifier_serializer)],
    role: Role | None = None,
    provider: str | None = None,
) -> RedirectResponse:
    """Start an OAuth sign-in, carrying the chosen role through the redirect.

    The PKCE verifier for this attempt is kept in a signed, HttpOnly cookie
    scoped to the callback path.

    Args:
        gateway: The auth gateway
        intents: Signs the intended role
        verifiers: Signs the PKCE verifier cookie
        role: Role the user chose to continue as, if any
        provider: OAuth provider (defaults to the configured one)

    Returns:
        Redirect to the provider's authorize URL

    Raises:
        HTTPException: 502 if Supabase could not produce an authorize URL
    """
    settings = get_settings()
    callback_url = f"{settings.app_base_url.rstrip('/')}{CALLBACK_PATH}"
    if role is not None:
        callback_url = f"{callback_url}?{urlencode({'intent': intents.dumps(role)})}"

    try:
        start = gateway.authorize(provider or settings.oauth_provider, callback_url)
    except Exception as e:
        logger.error(f"Could not start OAuth sign-in: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Sign-in provider unavailable",
        )

    logger.info(f"Starting OAuth sign-in (role={role.value if role else None})")
    response = RedirectResponse(start.url, status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(PENDING_ROLE_KEY)
    if start.code_verifier:
        response.set_cookie(
            VERIFIER_COOKIE,
            verifiers.dumps(start.code_verifier),
            max_age=settings.intent_max_age,
            path=CALLBACK_PATH,
            secure=settings.cookie_secure,
            httponly=True,
            samesite="lax",
        )
    return response


@router.get(CALLBACK_PATH, response_model=None)
async def auth_callback(
    gateway: Annotated[SupabaseAuthGateway, Depends(get_auth_gateway)],
    reconciler: Annotated[RoleReconciler, Depends(get_reconciler)],
    intents: Annotated[IntentSerializer, Depends(get_intent_serializer)],
    verifiers: Annotated[VerifierSerializer, Depends(get_verifier_serializer)],
    cache: Annotated[ClientCache, Depends(get_client_cache)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
    code: str | None = None,
    access_token: str | None = None,
    refresh_token: str | None = None,
    intent: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    verifier_cookie: Annotated[str | None, Cookie(alias=VERIFIER_COOKIE)] = None,
) -> RedirectResponse | HTMLResponse:
    """Finish an OAuth sign-in: reconcile the user's role and redirect.

    Only a failed session retrieval or an unexpected error shows an error
    page; persistence failures are logged and the user is still redirected.
    The PKCE verifier cookie is cleared on every outcome.

    Args:
        gateway: The auth gateway
        reconciler: The role reconciler
        intents: Verifies the intended-role token
        verifiers: Verifies the PKCE verifier cookie
        cache: Writes the client cache cookies
        event_bus: Broadcasts the auth-state change
        code: PKCE authorization code
        access_token: Access token (token-in-URL callbacks)
        refresh_token: Refresh token accompanying the access token
        intent: Signed intended-role token from /auth/login
        error: Provider error code, if the sign-in was rejected
        error_description: Provider error text
        verifier_cookie: Signed PKCE verifier set by /auth/login

    Returns:
        Redirect to the role's landing page, or an error page
    """
    response = await _complete_sign_in(
        gateway,
        reconciler,
        cache,
        event_bus,
        SessionCredentials(
            code=code,
            code_verifier=verifiers.read(verifier_cookie),
            access_token=access_token,
            refresh_token=refresh_token,
        ),
        intents.read(intent),
        error,
        error_description,
    )
    response.delete_cookie(VERIFIER_COOKIE, path=CALLBACK_PATH)
    return response


async def _complete_sign_in(
    gateway: SupabaseAuthGateway,
    reconciler: RoleReconciler,
    cache: ClientCache,
    event_bus: EventBus,
    credentials: SessionCredentials,
    intended_role: Role | None,
    error: str | None,
    error_description: str | None,
) -> RedirectResponse | HTMLResponse:
    settings = get_settings()

    if error:
        logger.warning(f"OAuth provider returned error {error}: {error_description}")
        return failure_page(AUTH_FAILED_MESSAGE, status.HTTP_401_UNAUTHORIZED)

    try:
        identity = await fetch_identity_with_retry(
            gateway,
            credentials,
            attempts=settings.session_retry_attempts,
            delay=settings.session_retry_delay,
        )
    except SessionRetrievalError as e:
        logger.error(f"Sign-in callback aborted: {e}")
        return failure_page(AUTH_FAILED_MESSAGE, status.HTTP_401_UNAUTHORIZED)

    try:
        result = await reconciler.reconcile(identity, intended_role)

        response = RedirectResponse(result.redirect_to, status_code=status.HTTP_303_SEE_OTHER)
        cache.write_result(response, result)
        event_bus.emit(identity.id, {"event": EVENT_AUTH_STATE_CHANGED, **result.to_event()})
    except Exception as e:
        logger.error(f"Sign-in callback failed for {identity.id}: {e}")
        return failure_page(GENERIC_ERROR_MESSAGE, status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info(
        f"Signed in {identity.id} as {result.role.value if result.role else None} "
        f"-> {result.redirect_to} (role_persisted={result.role_persisted})"
    )
    return response


# -----------------------------------------------------------------------------
# Role management (require authentication)
# -----------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def get_me(
    user: CurrentUser,
    db: Annotated[DatabaseClient, Depends(get_db_client)],
) -> MeResponse:
    """Get the signed-in user with their roles.

    Raises:
        HTTPException: 502 if the roles could not be read
    """
    try:
        roles = await db.list_role_assignments(user.identity.id)
    except Exception as e:
        logger.error(f"Could not read roles for {user.identity.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not load roles",
        )
    return MeResponse(identity=user.identity, roles=roles, current_role=primary_role(roles))


@router.post("/auth/roles", response_model=RolesResponse)
async def add_role(
    body: RoleRequest,
    user: CurrentUser,
    db: Annotated[DatabaseClient, Depends(get_db_client)],
    reconciler: Annotated[RoleReconciler, Depends(get_reconciler)],
    cache: Annotated[ClientCache, Depends(get_client_cache)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
) -> JSONResponse:
    """Add a role to the signed-in user and make it primary.

    Raises:
        HTTPException: 502 if the role could not be persisted
    """
    user_id = user.identity.id
    assignments: list[RoleAssignment] | None
    try:
        assignments = await db.list_role_assignments(user_id)
    except Exception as e:
        logger.warning(f"Could not read roles for {user_id}: {e}")
        assignments = None

    return await _make_primary_response(
        user.identity, body.role, assignments, db, reconciler, cache, event_bus
    )


@router.post("/auth/roles/switch", response_model=RolesResponse)
async def switch_role(
    body: RoleRequest,
    user: CurrentUser,
    db: Annotated[DatabaseClient, Depends(get_db_client)],
    reconciler: Annotated[RoleReconciler, Depends(get_reconciler)],
    cache: Annotated[ClientCache, Depends(get_client_cache)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
) -> JSONResponse:
    """Switch the signed-in user's primary role to one they already hold.

    Raises:
        HTTPException: 403 if the role is not held, 502 on persistence failure
    """
    user_id = user.identity.id
    try:
        assignments = await db.list_role_assignments(user_id)
    except Exception as e:
        logger.error(f"Could not read roles for {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not load roles",
        )

    if not has_role(assignments, body.role.value):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"User does not have the {body.role.value} role",
        )

    return await _make_primary_response(
        user.identity, body.role, assignments, db, reconciler, cache, event_bus
    )


async def _make_primary_response(
    identity: Identity,
    role: Role,
    assignments: list[RoleAssignment] | None,
    db: DatabaseClient,
    reconciler: RoleReconciler,
    cache: ClientCache,
    event_bus: EventBus,
) -> JSONResponse:
    try:
        role_status = await reconciler.role_updater.make_primary(identity.id, role, assignments)
    except RoleAssignmentError as e:
        logger.error(str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to assign role",
        )

    try:
        roles = await db.list_role_assignments(identity.id)
    except Exception as e:
        logger.warning(f"Could not refresh roles for {identity.id}: {e}")
        roles = project_roles(identity.id, role, assignments or [])

    payload = RolesResponse(role=role.value, roles=roles, status=role_status)
    response = JSONResponse(content=payload.model_dump(mode="json"))
    cache.write(response, identity, role, roles)
    event_bus.emit(identity.id, {
        "event": EVENT_AUTH_STATE_CHANGED,
        **auth_state_event(identity, role, roles, role_persisted=True),
    })
    logger.info(f"User {identity.id} primary role is now {role.value} ({role_status.value})")
    return response


@router.post("/auth/logout")
async def logout(
    gateway: Annotated[SupabaseAuthGateway, Depends(get_auth_gateway)],
    cache: Annotated[ClientCache, Depends(get_client_cache)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
    authorization: Annotated[str | None, Header()] = None,
) -> JSONResponse:
    """Sign out: clear the client cache and revoke the Supabase session.

    Local state is cleared even when revocation fails.
    """
    token = bearer_token(authorization)
    identity: Identity | None = None
    if token:
        try:
            identity = await gateway.get_user(token)
            await gateway.sign_out(token)
        except Exception as e:
            logger.warning(f"Session revocation failed: {e}")

    response = JSONResponse(content={"success": True})
    cache.clear(response)
    if identity is not None:
        event_bus.emit(identity.id, {"event": EVENT_SIGNED_OUT})
        logger.info(f"Signed out {identity.id}")
    return response


@router.get("/auth/events/{user_id}")
async def stream_auth_events(
    user_id: str,
    user: CurrentUser,
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
) -> StreamingResponse:
    """Stream auth-state events for the signed-in user via Server-Sent Events.

    Late joiners receive recent history before live events. The stream
    terminates after a signed_out event.

    Raises:
        HTTPException: 403 if streaming another user's events
    """
    if user.identity.id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot stream another user's events",
        )

    queue = event_bus.subscribe(user_id)

    async def event_generator() -> AsyncIterator[str]:
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield f"data: {json.dumps(event)}\n\n"
                    if event.get("event") == EVENT_SIGNED_OUT:
                        break
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            event_bus.unsubscribe(user_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
