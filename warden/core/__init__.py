"""WARDEN core infrastructure primitives."""

from warden.core.event_bus import (
    Event,
    EventBus,
    EventHandler,
    EventType,
    Subscription,
)

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "EventType",
    "Subscription",
]
