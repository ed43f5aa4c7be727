# =============================================================================
# pharmacare_core/offline/event_bus.py
# In-Process Change Notification Bus
# =============================================================================
"""
ChangeNotificationBus - observer registry keyed by topic name.

Every mutation served by the PersistenceRouter is published here, whether the
remote store or the local fallback handled it, so screens observe a single
change feed.

Delivery is synchronous, in registration order, to the handlers registered at
the moment of publishing. There is no queue and no replay.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Any, Callable, Dict, List
import logging

from pharmacare_core.errors import safe_execute

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]

# Business topics, more specific than the per-collection ones
PRESCRIPTION_CREATED = "prescriptionCreated"
SYNC_STATUS_CHANGED = "syncStatusChanged"
CONNECTION_STATUS_CHANGED = "connectionStatusChanged"
SYNC_START = "syncStart"
SYNC_COMPLETE = "syncComplete"


def collection_topic(collection: str) -> str:
    """Topic carrying mutations of a collection, e.g. ``medicinesUpdated``."""
    return f"{collection}Updated"


class ChangeNotificationBus:
    """
    Publish/subscribe by string topic.

    Usage:
        bus = ChangeNotificationBus()
        unsubscribe = bus.subscribe("prescriptionsUpdated", refresh_table)
        bus.publish("prescriptionsUpdated", record)
        unsubscribe()
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Unsubscribe:
        """
        Register a handler for a topic.

        Returns:
            Disposer that removes this registration; calling it twice is a no-op
        """
        self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> int:
        """
        Deliver payload to every current subscriber of topic.

        A failing handler is logged and does not stop delivery to the rest.

        Returns:
            Number of handlers invoked
        """
        handlers = list(self._handlers.get(topic, ()))
        for handler in handlers:
            safe_execute(handler, payload, context=f"{topic} handler")
        logger.debug(f"Published {topic} to {len(handlers)} subscriber(s)")
        return len(handlers)

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, ()))

    def clear(self) -> None:
        """Drop all subscriptions."""
        self._handlers.clear()
