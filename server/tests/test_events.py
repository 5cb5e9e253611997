"""Tests for the auth-state event bus."""

import asyncio
import time

import pytest

from homeswift.api.events import (
    EVENT_AUTH_STATE_CHANGED,
    EVENT_SIGNED_OUT,
    EventBus,
)


# ---------------------------------------------------------------------------
# TestEventBusEmit
# ---------------------------------------------------------------------------

class TestEventBusEmit:
    """Verify EventBus.emit() behavior."""

    def test_emit_stamps_user_and_timestamp(self):
        """Emitted events get user_id and timestamp fields."""
        bus = EventBus()
        before = time.time()
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED, "role": "renter"})
        after = time.time()

        event = bus._events["u1"][0]
        assert event["user_id"] == "u1"
        assert event["role"] == "renter"
        assert before <= event["timestamp"] <= after

    def test_emit_does_not_mutate_original(self):
        """Original event dict is not mutated."""
        bus = EventBus()
        original = {"event": EVENT_AUTH_STATE_CHANGED}
        bus.emit("u1", original)

        assert "user_id" not in original

    def test_history_is_capped(self):
        """Only the most recent events are kept."""
        bus = EventBus(max_history=3)
        for i in range(5):
            bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED, "n": i})

        assert [e["n"] for e in bus._events["u1"]] == [2, 3, 4]

    def test_sign_in_after_sign_out_resets_history(self):
        """A new session does not replay the previous signed_out."""
        bus = EventBus()
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED})
        bus.emit("u1", {"event": EVENT_SIGNED_OUT})
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED, "role": "landlord"})

        assert [e["event"] for e in bus._events["u1"]] == [EVENT_AUTH_STATE_CHANGED]
        assert "u1" not in bus._signed_out

    def test_latest(self):
        bus = EventBus()
        assert bus.latest("u1") is None
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED, "role": "renter"})
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED, "role": "landlord"})
        assert bus.latest("u1")["role"] == "landlord"

    def test_users_isolated(self):
        """Events for different users are stored separately."""
        bus = EventBus()
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED})
        bus.emit("u2", {"event": EVENT_AUTH_STATE_CHANGED})

        assert len(bus._events["u1"]) == 1
        assert bus._events["u2"][0]["user_id"] == "u2"


# ---------------------------------------------------------------------------
# TestEventBusSubscribe
# ---------------------------------------------------------------------------

class TestEventBusSubscribe:
    """Verify EventBus.subscribe() and queue delivery."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_emitted_events(self):
        bus = EventBus()
        queue = bus.subscribe("u1")

        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED})

        event = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert event["event"] == EVENT_AUTH_STATE_CHANGED

    @pytest.mark.asyncio
    async def test_late_joiner_gets_history_then_live(self):
        """Another tab opening the stream sees the last change, then live ones."""
        bus = EventBus()
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED, "role": "renter"})

        queue = bus.subscribe("u1")
        hist = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert hist["role"] == "renter"

        bus.emit("u1", {"event": EVENT_SIGNED_OUT})
        live = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert live["event"] == EVENT_SIGNED_OUT

    def test_unsubscribe_is_idempotent(self):
        bus = EventBus()
        queue = bus.subscribe("u1")
        bus.unsubscribe("u1", queue)
        bus.unsubscribe("u1", queue)  # Should not raise
        assert "u1" not in bus._subscribers

    def test_unsubscribe_keeps_other_streams(self):
        bus = EventBus()
        first = bus.subscribe("u1")
        second = bus.subscribe("u1")

        bus.unsubscribe("u1", first)

        assert bus._subscribers["u1"] == [second]


# ---------------------------------------------------------------------------
# TestEventBusCleanup
# ---------------------------------------------------------------------------

class TestEventBusCleanup:
    """Verify cleanup_stale() behavior."""

    def test_cleanup_removes_signed_out_users_past_ttl(self):
        bus = EventBus(history_ttl=0)
        bus.emit("u1", {"event": EVENT_SIGNED_OUT})
        bus._last_activity["u1"] = time.monotonic() - 1

        removed = bus.cleanup_stale()

        assert removed == 1
        assert "u1" not in bus._events
        assert "u1" not in bus._signed_out

    def test_cleanup_removes_idle_signed_in_users(self):
        """Users who never log out do not pile up."""
        bus = EventBus(history_ttl=0)
        for i in range(1000):
            bus.emit(f"u{i}", {"event": EVENT_AUTH_STATE_CHANGED})
        for user_id in bus._last_activity:
            bus._last_activity[user_id] -= 1

        removed = bus.cleanup_stale()

        assert removed == 1000
        assert bus._events == {}
        assert bus._last_activity == {}

    def test_cleanup_preserves_recent_activity(self):
        bus = EventBus(history_ttl=300)
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED})

        assert bus.cleanup_stale() == 0
        assert "u1" in bus._events

    def test_cleanup_preserves_open_streams(self):
        """An idle user with a connected stream keeps their history."""
        bus = EventBus(history_ttl=0)
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED})
        bus.subscribe("u1")
        bus._last_activity["u1"] -= 1

        assert bus.cleanup_stale() == 0
        assert "u1" in bus._events

    def test_closed_stream_then_idle_is_removed(self):
        bus = EventBus(history_ttl=0)
        queue = bus.subscribe("u1")
        bus.emit("u1", {"event": EVENT_AUTH_STATE_CHANGED})
        bus.unsubscribe("u1", queue)
        bus._last_activity["u1"] -= 1

        assert bus.cleanup_stale() == 1
        assert "u1" not in bus._subscribers
        assert "u1" not in bus._events
