"""In-memory per-user auth-state pub/sub for SSE streaming."""

from __future__ import annotations

import asyncio
import time
from typing import Any

# Event type constants
EVENT_AUTH_STATE_CHANGED = "auth_state_changed"
EVENT_SIGNED_OUT = "signed_out"
_TERMINAL_EVENTS = frozenset({EVENT_SIGNED_OUT})


class EventBus:
    """In-memory event bus broadcasting auth-state changes per user.

    Each user has a short event history and a set of subscriber queues.
    Late joiners (another tab opening the stream) receive the recent history
    before live events. A user with no open stream is forgotten once idle
    for longer than the history TTL, whether or not they signed out.
    """

    def __init__(self, history_ttl: float = 300, max_history: int = 20) -> None:
        self._events: dict[str, list[dict[str, Any]]] = {}
        self._subscribers: dict[str, list[asyncio.Queue[dict[str, Any]]]] = {}
        self._last_activity: dict[str, float] = {}
        self._signed_out: set[str] = set()
        self._history_ttl = history_ttl
        self._max_history = max_history

    def emit(self, user_id: str, event: dict[str, Any]) -> None:
        """Emit an event for a user.

        Appends to history, stamps with user_id and timestamp,
        and pushes to all subscriber queues (non-blocking).
        """
        event = {**event, "user_id": user_id, "timestamp": time.time()}
        self._last_activity[user_id] = time.monotonic()

        if event.get("event") in _TERMINAL_EVENTS:
            self._signed_out.add(user_id)
        elif user_id in self._signed_out:
            # Signed back in: history starts over
            self._signed_out.discard(user_id)
            self._events[user_id] = []

        history = self._events.setdefault(user_id, [])
        history.append(event)
        if len(history) > self._max_history:
            del history[: len(history) - self._max_history]

        for queue in self._subscribers.get(user_id, []):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                pass  # Drop event if subscriber is too slow

    def subscribe(self, user_id: str) -> asyncio.Queue[dict[str, Any]]:
        """Subscribe to events for a user.

        Returns a queue pre-populated with existing event history.
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=100)

        for event in self._events.get(user_id, []):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                break

        self._subscribers.setdefault(user_id, []).append(queue)
        self._last_activity[user_id] = time.monotonic()
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue[dict[str, Any]]) -> None:
        """Remove a subscriber queue. Idempotent."""
        subscribers = self._subscribers.get(user_id)
        if subscribers is None:
            return
        try:
            subscribers.remove(queue)
        except ValueError:
            return
        if not subscribers:
            del self._subscribers[user_id]
        self._last_activity[user_id] = time.monotonic()

    def latest(self, user_id: str) -> dict[str, Any] | None:
        """Most recent event for a user, if any."""
        history = self._events.get(user_id)
        return history[-1] if history else None

    def cleanup_stale(self) -> int:
        """Forget users with no open stream and no activity within the TTL.

        Returns the number of users cleaned up.
        """
        now = time.monotonic()
        stale = [
            user_id
            for user_id, last_activity in self._last_activity.items()
            if now - last_activity > self._history_ttl
            and not self._subscribers.get(user_id)
        ]
        for user_id in stale:
            self._events.pop(user_id, None)
            self._subscribers.pop(user_id, None)
            self._last_activity.pop(user_id, None)
            self._signed_out.discard(user_id)
        return len(stale)
