"""In-process remote store with synchronous change notifications."""
import copy
import logging
import threading
from typing import Any, Dict, List, Optional

from storage.keys import PushKeyGenerator
from storage.remote import (
    CancelHandler,
    ChangeHandler,
    Children,
    RemoteEventStore,
    Subscription,
    SubscriptionCancelled,
)

logger = logging.getLogger(__name__)


class InMemoryEventStore(RemoteEventStore):
    """
    Remote store held in process memory.

    Notifications are delivered on the calling thread right after each
    mutation, with children ordered by key. Mutation and delivery happen
    under one lock, so the last notification a subscriber sees always
    matches what the store holds.
    """

    def __init__(self, key_generator: Optional[PushKeyGenerator] = None):
        self._partitions: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = threading.RLock()
        self._keys = key_generator or PushKeyGenerator()
        logger.info("Initialized InMemoryEventStore")

    def subscribe(
        self,
        user_id: str,
        on_change: ChangeHandler,
        on_cancelled: Optional[CancelHandler] = None
    ) -> Subscription:
        subscription = Subscription(user_id, on_change, on_cancelled)
        with self._lock:
            self._subscriptions.setdefault(user_id, []).append(subscription)
            logger.info(f"Subscribed to partition {user_id}")
            subscription.notify_change(self._children(user_id))
        return subscription

    def get(self, user_id: str, event_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._partitions.get(user_id, {}).get(event_id)
            return copy.deepcopy(record) if record is not None else None

    def put(self, user_id: str, event_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._partitions.setdefault(user_id, {})[event_id] = copy.deepcopy(record)
            self._notify(user_id)

    def delete(self, user_id: str, event_id: str) -> None:
        with self._lock:
            partition = self._partitions.get(user_id, {})
            if event_id not in partition:
                return
            del partition[event_id]
            self._notify(user_id)

    def generate_key(self, user_id: str) -> str:
        return self._keys.generate()

    def cancel_subscriptions(self, user_id: str, cause: Optional[BaseException] = None) -> None:
        """
        End every subscription on a partition from the store's side.

        Subscribers receive a SubscriptionCancelled through their cancel
        handler, as when the store revokes access to the partition.
        """
        with self._lock:
            subscriptions = self._subscriptions.pop(user_id, [])
        logger.warning(f"Cancelling {len(subscriptions)} subscriptions for partition {user_id}")
        for subscription in subscriptions:
            subscription.notify_cancelled(SubscriptionCancelled(user_id, cause))

    def close(self) -> None:
        with self._lock:
            subscriptions = [s for subs in self._subscriptions.values() for s in subs]
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.cancel()

    def _children(self, user_id: str) -> Children:
        partition = self._partitions.get(user_id, {})
        return [
            (event_id, copy.deepcopy(partition[event_id]))
            for event_id in sorted(partition)
        ]

    def _notify(self, user_id: str) -> None:
        """Deliver the current child set. Callers hold the store lock."""
        self._subscriptions[user_id] = [
            s for s in self._subscriptions.get(user_id, []) if s.active
        ]
        children = self._children(user_id)
        for subscription in list(self._subscriptions[user_id]):
            subscription.notify_change(children)
