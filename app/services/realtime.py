"""
In-process change feed for the record store.

Services publish after a successful commit; websocket connections and tests
subscribe per collection. Delivery is best-effort: a failing subscriber is
logged and skipped, and never affects the write that triggered the publish.
"""
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List


logger = logging.getLogger(__name__)

LANES = "lanes"
VENDORS = "vendors"
SHIPMENT_BIDS = "shipment_bids"
NOTIFICATIONS = "notifications"

Subscriber = Callable[[Dict[str, Any]], Any]


class RealtimeBroker:
    """subscribe(collection, callback) / publish(collection, payload)."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)

    def subscribe(self, collection: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it again."""
        self._subscribers[collection].append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers[collection].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def subscriber_count(self, collection: str) -> int:
        return len(self._subscribers[collection])

    async def publish(self, collection: str, payload: Dict[str, Any]) -> int:
        """Deliver to every subscriber of the collection; returns how many succeeded."""
        delivered = 0
        message = {"collection": collection, **payload}
        for callback in list(self._subscribers[collection]):
            try:
                result = callback(message)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.warning("Realtime subscriber failed on %s: %s", collection, e)
        return delivered


broker = RealtimeBroker()


def get_broker() -> RealtimeBroker:
    """Dependency hook for the process-wide broker."""
    return broker
