"""FastAPI routes for HomeSwift."""

from homeswift.api.auth import CurrentUser
from homeswift.api.events import EventBus
from homeswift.api.routes import router

__all__ = ["CurrentUser", "EventBus", "router"]
