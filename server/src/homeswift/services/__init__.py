"""Services for HomeSwift."""

from homeswift.services.client_cache import ClientCache

__all__ = ["ClientCache"]
