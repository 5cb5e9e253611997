"""HomeSwift - OAuth sign-in and role reconciliation service."""

__version__ = "0.1.0"

from homeswift.exceptions import (
    IntentTokenError,
    RoleAssignmentError,
    SessionRetrievalError,
)

__all__ = [
    "__version__",
    "IntentTokenError",
    "RoleAssignmentError",
    "SessionRetrievalError",
]
