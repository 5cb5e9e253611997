"""Supabase persistence for HomeSwift."""

from homeswift.db.client import DatabaseClient

__all__ = ["DatabaseClient"]
