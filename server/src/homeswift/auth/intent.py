"""Signed tokens carried through the OAuth redirect.

The role a user picked ("continue as landlord") travels inside the callback
URL rather than in browser storage, so it can only ever apply to the sign-in
attempt that produced it. The PKCE verifier rides in a signed cookie.
"""

import logging
import secrets

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from homeswift.exceptions import IntentTokenError
from homeswift.models.identity import Role

logger = logging.getLogger(__name__)

INTENT_SALT = "oauth-intent"


class IntentSerializer:
    """Signs and verifies intended-role tokens."""

    def __init__(self, secret: str, max_age: int = 600) -> None:
        self._serializer = URLSafeTimedSerializer(secret, salt=INTENT_SALT)
        self.max_age = max_age

    def dumps(self, role: Role) -> str:
        # The nonce keeps two tokens for the same role distinct
        return self._serializer.dumps({"role": role.value, "nonce": secrets.token_urlsafe(8)})

    def loads(self, token: str) -> Role:
        """Verify a token and return the role it carries.

        Raises:
            IntentTokenError: If the token is expired, tampered or names no role
        """
        try:
            data = self._serializer.loads(token, max_age=self.max_age)
        except SignatureExpired as e:
            raise IntentTokenError("intent token expired") from e
        except BadSignature as e:
            raise IntentTokenError("intent token signature mismatch") from e

        role = Role.parse(data.get("role")) if isinstance(data, dict) else None
        if role is None:
            raise IntentTokenError(f"intent token carries no known role: {data!r}")
        return role

    def read(self, token: str | None) -> Role | None:
        """Like ``loads`` but treats a missing or bad token as no intent."""
        if not token:
            return None
        try:
            return self.loads(token)
        except IntentTokenError as e:
            logger.warning(f"Ignoring intended role: {e}")
            return None


VERIFIER_SALT = "pkce-verifier"


class VerifierSerializer:
    """Signs the PKCE verifier kept in a cookie between login and callback."""

    def __init__(self, secret: str, max_age: int = 600) -> None:
        self._serializer = URLSafeTimedSerializer(secret, salt=VERIFIER_SALT)
        self.max_age = max_age

    def dumps(self, verifier: str) -> str:
        return self._serializer.dumps(verifier)

    def read(self, token: str | None) -> str | None:
        """Return the verifier, or None for a missing, expired or forged cookie."""
        if not token:
            return None
        try:
            verifier = self._serializer.loads(token, max_age=self.max_age)
        except BadSignature as e:
            # SignatureExpired is a BadSignature
            logger.warning(f"Ignoring PKCE verifier cookie: {e}")
            return None
        return verifier if isinstance(verifier, str) else None
