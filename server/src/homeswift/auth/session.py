"""Supabase Auth access and session retrieval after the OAuth redirect.

Every login and callback runs on its own short-lived Supabase client. A
client that exchanges a code adopts the user's session (and JWT) for all of
its requests, so that must never happen on the service-key client used for
database access.
"""

import asyncio
import logging
from collections.abc import Callable

from pydantic import BaseModel
from supabase import AuthApiError, Client, create_client
from supabase.client import ClientOptions

from homeswift.exceptions import SessionRetrievalError
from homeswift.models.identity import Identity

logger = logging.getLogger(__name__)

# supabase-py stores the PKCE verifier under "<storage key>-code-verifier"
CODE_VERIFIER_SUFFIX = "-code-verifier"


class FlowStorage:
    """In-memory auth storage for a single OAuth flow."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    @property
    def code_verifier(self) -> str | None:
        return next(
            (v for k, v in self._items.items() if k.endswith(CODE_VERIFIER_SUFFIX)),
            None,
        )


ClientFactory = Callable[[FlowStorage], Client]


def supabase_client_factory(url: str, key: str) -> ClientFactory:
    """Build fresh auth clients that never persist or refresh a session."""

    def build(storage: FlowStorage) -> Client:
        return create_client(
            url,
            key,
            options=ClientOptions(
                flow_type="pkce",
                persist_session=False,
                auto_refresh_token=False,
                storage=storage,
            ),
        )

    return build


class OAuthStart(BaseModel):
    """Where to send the browser, and the verifier the callback will need."""

    url: str
    code_verifier: str | None = None


class SessionCredentials(BaseModel):
    """What the OAuth redirect handed back to the callback."""

    code: str | None = None
    code_verifier: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def is_empty(self) -> bool:
        # A PKCE code cannot be exchanged without the verifier from /auth/login
        return not ((self.code and self.code_verifier) or self.access_token)


class SupabaseAuthGateway:
    """Thin wrapper over the supabase-py auth client."""

    def __init__(self, client_factory: ClientFactory) -> None:
        self._new_client = client_factory
        # Only used for token checks and admin calls; never holds a session
        self.client = client_factory(FlowStorage())

    def authorize(self, provider: str, redirect_to: str) -> OAuthStart:
        """Start an OAuth sign-in on a dedicated client.

        Args:
            provider: OAuth provider name (e.g. "google")
            redirect_to: Where Supabase sends the browser afterwards

        Returns:
            The provider authorize URL and the PKCE verifier for this attempt
        """
        storage = FlowStorage()
        response = self._new_client(storage).auth.sign_in_with_oauth({
            "provider": provider,
            "options": {
                "redirect_to": redirect_to,
                "query_params": {"access_type": "offline", "prompt": "consent"},
            },
        })
        return OAuthStart(url=response.url, code_verifier=storage.code_verifier)

    async def get_identity(self, credentials: SessionCredentials) -> Identity | None:
        """Resolve callback credentials to the signed-in identity.

        A PKCE ``code`` is exchanged for a session on a throwaway client;
        otherwise the access token is validated against Supabase Auth.

        Args:
            credentials: Code and verifier, or tokens, from the callback

        Returns:
            The identity, or None if Supabase returned no user
        """
        if credentials.code and credentials.code_verifier:
            response = self._new_client(FlowStorage()).auth.exchange_code_for_session({
                "auth_code": credentials.code,
                "code_verifier": credentials.code_verifier,
            })
        elif credentials.access_token:
            response = self.client.auth.get_user(credentials.access_token)
        else:
            return None

        if response is None or response.user is None:
            return None
        return Identity.from_supabase_user(response.user)

    async def get_user(self, access_token: str) -> Identity | None:
        """Validate a bearer token and return its identity."""
        response = self.client.auth.get_user(access_token)
        if response is None or response.user is None:
            return None
        return Identity.from_supabase_user(response.user)

    async def sign_out(self, access_token: str) -> None:
        """Revoke the session behind an access token."""
        self.client.auth.admin.sign_out(access_token)


async def fetch_identity_with_retry(
    gateway: SupabaseAuthGateway,
    credentials: SessionCredentials,
    attempts: int = 3,
    delay: float = 1.0,
) -> Identity:
    """Retrieve the session identity, retrying with a fixed delay.

    Only failures where Supabase gave no answer (network errors, timeouts,
    an empty session) are retried. An ``AuthApiError`` means Supabase
    rejected the credentials; a PKCE code is single-use, so asking again
    cannot succeed. If an exchange went through but its response was lost,
    the retry is rejected too and the user has to sign in again.

    Args:
        gateway: The auth gateway
        credentials: Code or tokens from the callback URL
        attempts: Maximum number of tries
        delay: Seconds to wait between tries

    Returns:
        The authenticated identity

    Raises:
        SessionRetrievalError: If the credentials were rejected, or every
            attempt failed or returned no user
    """
    if credentials.is_empty:
        raise SessionRetrievalError(0, "no code with verifier or access token in callback")

    last_error: str | None = None
    for attempt in range(1, attempts + 1):
        try:
            identity = await gateway.get_identity(credentials)
            if identity is not None:
                if attempt > 1:
                    logger.info(f"Session retrieved on attempt {attempt}")
                return identity
            last_error = "no user in session"
        except AuthApiError as e:
            logger.warning(f"Supabase rejected the callback credentials: {e}")
            raise SessionRetrievalError(attempt, str(e)) from e
        except Exception as e:
            last_error = str(e)

        logger.warning(f"Session retrieval attempt {attempt}/{attempts} failed: {last_error}")
        if attempt < attempts:
            await asyncio.sleep(delay)

    raise SessionRetrievalError(attempts, last_error)
