"""Custom exceptions for the HomeSwift auth service."""


class SessionRetrievalError(Exception):
    """Raised when no authenticated session could be obtained after retries."""

    def __init__(self, attempts: int, last_error: str | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        message = f"Session retrieval failed after {attempts} attempts"
        if last_error:
            message = f"{message}: {last_error}"
        super().__init__(message)


class IntentTokenError(Exception):
    """Raised when an intended-role token is tampered, expired or malformed."""


class RoleAssignmentError(Exception):
    """Raised when a role could not be persisted as primary."""

    def __init__(self, user_id: str, role: str, reason: str) -> None:
        self.user_id = user_id
        self.role = role
        self.reason = reason
        super().__init__(f"Could not make {role} primary for user {user_id}: {reason}")
