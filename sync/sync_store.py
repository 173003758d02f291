"""Synchronization of a user's remote event partition into a local snapshot."""
import logging
import threading
from dataclasses import replace
from enum import Enum
from typing import Optional, Tuple

from processor.event_processor import EventProcessor
from processor.models import Event, OperationResult
from storage.remote import Children, RemoteEventStore, Subscription, SubscriptionCancelled
from sync.identity import IdentityProvider
from sync.snapshot import EventSnapshot

logger = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    CLOSED = "closed"


class SyncStore:
    """
    Owner of the live subscription to one user partition.

    The snapshot only ever reflects the last notification received from the
    remote store. Saves and deletes go straight to the store and become
    visible locally once the store pushes the resulting change.
    """

    def __init__(
        self,
        remote: RemoteEventStore,
        identity: IdentityProvider,
        processor: Optional[EventProcessor] = None
    ):
        self.remote = remote
        self.identity = identity
        self.processor = processor or EventProcessor()
        self.events = EventSnapshot()
        self._lock = threading.Lock()
        # Serializes the superseded-check with the publish that follows it.
        self._publish_lock = threading.RLock()
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._state = SyncState.IDLE
        self._active_user_id: Optional[str] = None

    @property
    def snapshot(self) -> Tuple[Event, ...]:
        return self.events.value

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def active_user_id(self) -> Optional[str]:
        return self._active_user_id

    def identify_active_user(self) -> Optional[str]:
        user_id = self.identity.current_user_id()
        logger.info(f"Current user ID={user_id}", extra={'user_id': user_id})
        return user_id

    def begin_sync(self, user_id: str) -> None:
        """
        Start streaming a user's partition into the snapshot.

        Any subscription started earlier by this store is cancelled first,
        for the same user as well as for a different one. Calling this again
        after a cancellation is how a caller retries.

        Args:
            user_id: Partition to subscribe to

        Raises:
            RuntimeError: If the store has been closed
        """
        with self._publish_lock:
            with self._lock:
                if self._state == SyncState.CLOSED:
                    raise RuntimeError("SyncStore is closed")
                previous = self._subscription
                previous_user_id = self._active_user_id
                self._subscription = None
                self._generation += 1
                generation = self._generation
                self._active_user_id = user_id
                self._state = SyncState.SYNCING

            if previous is not None:
                previous.cancel()
            if previous_user_id is not None and previous_user_id != user_id:
                logger.info(f"Switching partition from {previous_user_id} to {user_id}")
                self.events.publish(())

        logger.info(f"Beginning sync for userId={user_id}")
        subscription = self.remote.subscribe(
            user_id,
            lambda children: self._on_change(generation, user_id, children),
            lambda error: self._on_cancelled(generation, error)
        )

        with self._lock:
            if generation == self._generation and self._state != SyncState.CLOSED:
                if subscription.active:
                    self._subscription = subscription
                return
        # Superseded or closed while subscribing.
        subscription.cancel()

    def cancel_sync(self) -> None:
        """Cancel the active subscription, keeping the last snapshot."""
        with self._publish_lock, self._lock:
            subscription = self._subscription
            self._subscription = None
            self._generation += 1
            if self._state != SyncState.CLOSED:
                self._state = SyncState.IDLE
        if subscription is not None:
            subscription.cancel()
            logger.info(f"Cancelled sync for userId={subscription.user_id}")

    def close(self) -> None:
        self.cancel_sync()
        with self._lock:
            self._state = SyncState.CLOSED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def save(self, user_id: str, event: Event) -> OperationResult:
        """
        Write an event to the user's partition.

        An empty event_id is replaced by a key generated by the remote store,
        and user_id is always set to the acting user. The snapshot is left
        alone; it picks up the write from the next remote notification.

        Args:
            user_id: Acting user and target partition
            event: Event to write

        Returns:
            OperationResult carrying the event_id written to, or the error
        """
        try:
            event_id = event.event_id or self.remote.generate_key(user_id)
            updated_event = replace(event, event_id=event_id, user_id=user_id)
            self.remote.put(user_id, event_id, self.processor.event_to_record(updated_event))
            logger.info(f"Saved event, eventId={event_id}, title={event.title}")
            return OperationResult.ok(event_id=event_id)
        except Exception as e:
            logger.error(f"Failed to save event, error={e}", extra={'error_type': type(e).__name__})
            return OperationResult.failure(e)

    def delete(self, user_id: str, event_id: str) -> OperationResult:
        """Remove an event from the user's partition. Deleting a missing event succeeds."""
        try:
            self.remote.delete(user_id, event_id)
            logger.info(f"Deleted event, eventId={event_id}")
            return OperationResult.ok(event_id=event_id)
        except Exception as e:
            logger.error(f"Failed to delete event, error={e}", extra={'error_type': type(e).__name__})
            return OperationResult.failure(e)

    def read_event(self, user_id: str, event_id: str) -> Optional[Event]:
        """
        Point read of a single event, bypassing the snapshot.

        Raises:
            Exception: Whatever the remote store raises on failure
        """
        record = self.remote.get(user_id, event_id)
        if record is None:
            return None
        event = self.processor.record_to_event(record)
        if event is not None and not event.event_id:
            event = replace(event, event_id=event_id)
        return event

    def _on_change(self, generation: int, user_id: str, children: Children) -> None:
        with self._publish_lock:
            if generation != self._generation:
                logger.debug(f"Ignoring notification from superseded subscription for {user_id}")
                return
            event_list = self.processor.materialize(children)
            self.events.publish(event_list)
        logger.info(f"Fetched {len(event_list)} events for userId={user_id}")

    def _on_cancelled(self, generation: int, error: SubscriptionCancelled) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._subscription = None
            self._state = SyncState.ERROR
        logger.error(f"Fetch events cancelled, error={error}")
