"""
WARDEN - Event Bus
==================

In-process publish/subscribe channel. IdentityContext announces sign-in
and sign-out on it; AuditLogger announces each persisted audit event.

A bus belongs to whoever publishes on it (one per identity context);
there is no process-wide bus. Subscribers are called in registration
order and a failing subscriber never stops delivery to the others.
"""

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Union
from uuid import uuid4

logger = logging.getLogger(__name__)


class EventType(Enum):
    IDENTITY_RESOLVED = auto()
    IDENTITY_CLEARED = auto()
    AUDIT_RECORDED = auto()


@dataclass(frozen=True)
class Event:
    """A message on the bus. ``data`` carries the transition or audit record."""

    event_type: EventType
    data: Dict[str, Any]
    source: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: f"evt_{uuid4().hex[:16]}")

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.name,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "event_id": self.event_id,
        }


# Plain callables and coroutine functions are both accepted
EventHandler = Callable[[Event], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class Subscription:
    subscriber_id: str
    event_types: FrozenSet[EventType]
    handler: EventHandler

    def wants(self, event: Event) -> bool:
        return event.event_type in self.event_types


class EventBus:
    """
    Publish/subscribe with explicit unsubscribe handles.

    Each published event reaches every matching subscriber that is still
    registered when its turn comes, exactly once.

    Example:
        bus = EventBus()
        unsubscribe = bus.subscribe({EventType.IDENTITY_RESOLVED}, on_sign_in)
        await bus.publish(Event(EventType.IDENTITY_RESOLVED, {"transition": t}, "identity_context"))
        unsubscribe()
    """

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}
        self.failed_deliveries = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        event_types: Iterable[EventType],
        handler: EventHandler,
        subscriber_id: Optional[str] = None,
    ) -> Callable[[], bool]:
        """
        Register ``handler`` for ``event_types``.

        Returns a handle that removes the subscription. The handle returns
        True the first time and False on every later call.
        """
        subscription = Subscription(
            subscriber_id=subscriber_id or f"sub_{uuid4().hex[:12]}",
            event_types=frozenset(event_types),
            handler=handler,
        )
        self._subscriptions[subscription.subscriber_id] = subscription
        logger.debug(
            "Subscribed %s to %s",
            subscription.subscriber_id,
            sorted(t.name for t in subscription.event_types),
        )

        return lambda: self.unsubscribe(subscription.subscriber_id)

    def unsubscribe(self, subscriber_id: str) -> bool:
        removed = self._subscriptions.pop(subscriber_id, None)
        if removed is None:
            return False
        logger.debug("Unsubscribed %s", subscriber_id)
        return True

    async def publish(self, event: Event) -> int:
        """Deliver ``event`` and return how many handlers completed."""
        delivered = 0
        # Copy so a handler may unsubscribe itself or others mid-dispatch
        for subscription in list(self._subscriptions.values()):
            if subscription.subscriber_id not in self._subscriptions:
                continue
            if not subscription.wants(event):
                continue
            if await self._deliver(subscription, event):
                delivered += 1
        return delivered

    async def _deliver(self, subscription: Subscription, event: Event) -> bool:
        try:
            result = subscription.handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self.failed_deliveries += 1
            logger.exception(
                "Subscriber %s failed on %s", subscription.subscriber_id, event.event_type.name,
            )
            return False
        return True


__all__ = [
    "EventType",
    "Event",
    "EventHandler",
    "Subscription",
    "EventBus",
]
