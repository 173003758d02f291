"""Read-through event lookup and the session wishlist."""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import List, Optional, Tuple

from processor.models import Event, LookupOutcome, LookupResult, OperationResult
from sync.sync_store import SyncStore

logger = logging.getLogger(__name__)


class SessionCache:
    """
    Session-scoped lookups layered over a SyncStore.

    Lookups consult the store's current snapshot before falling back to a
    single point read against the remote store. The fallback never writes
    into the snapshot.
    """

    def __init__(
        self,
        sync_store: SyncStore,
        lookup_timeout: Optional[float] = None,
        max_workers: int = 4
    ):
        """
        Args:
            sync_store: Store whose snapshot is consulted first
            lookup_timeout: Default seconds to wait for a remote fallback read;
                None waits indefinitely
            max_workers: Size of the pool running remote fallback reads
        """
        self.sync_store = sync_store
        self.lookup_timeout = lookup_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix='event-lookup'
        )
        self._wishlist: List[Event] = []

    def lookup(self, event_id: str, timeout: Optional[float] = None) -> Optional[Event]:
        """Return the event with the given id, or None if it cannot be resolved."""
        return self.get_event_by_id(event_id, timeout=timeout).event

    def get_event_by_id(self, event_id: str, timeout: Optional[float] = None) -> LookupResult:
        """
        Resolve a single event, snapshot first.

        Args:
            event_id: Identifier to resolve
            timeout: Seconds to wait for the remote fallback; defaults to
                the cache's lookup_timeout

        Returns:
            LookupResult describing how the lookup ended
        """
        for event in self.sync_store.snapshot:
            if event.event_id == event_id:
                logger.info(f"Found event in cache, eventId={event_id}, title={event.title}")
                return LookupResult(LookupOutcome.FOUND, event=event, from_cache=True)

        user_id = self.sync_store.identify_active_user()
        if user_id is None:
            logger.info(f"No active user, cannot fetch eventId={event_id}")
            return LookupResult(LookupOutcome.UNAUTHENTICATED)

        if timeout is None:
            timeout = self.lookup_timeout

        try:
            future = self._executor.submit(self.sync_store.read_event, user_id, event_id)
        except RuntimeError as e:
            # Raised once the pool has been shut down by close().
            logger.error(f"Lookup pool unavailable, eventId={event_id}, error={e}")
            return LookupResult(LookupOutcome.FAILED, error=e)

        try:
            event = future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            logger.warning(f"Timed out fetching event, eventId={event_id}, timeout={timeout}s")
            return LookupResult(LookupOutcome.TIMED_OUT, error=e)
        except Exception as e:
            logger.error(f"Error fetching event, eventId={event_id}, error={e}")
            return LookupResult(LookupOutcome.FAILED, error=e)

        if event is None:
            logger.info(f"Event not found remotely, eventId={event_id}")
            return LookupResult(LookupOutcome.NOT_FOUND)

        logger.info(f"Fetched event from remote store, eventId={event_id}, title={event.title}")
        return LookupResult(LookupOutcome.FOUND, event=event)

    @property
    def wishlist(self) -> Tuple[Event, ...]:
        return tuple(self._wishlist)

    def is_wishlisted(self, event_id: str) -> bool:
        return any(event.event_id == event_id for event in self._wishlist)

    def add_to_wishlist(self, event: Event) -> OperationResult:
        # Appends even if the event is already present.
        self._wishlist.append(event)
        logger.info(f"Added to wishlist, eventId={event.event_id}")
        return OperationResult.ok(event_id=event.event_id)

    def remove_from_wishlist(self, event_id: str) -> OperationResult:
        before = len(self._wishlist)
        self._wishlist = [event for event in self._wishlist if event.event_id != event_id]
        logger.info(
            f"Removed from wishlist, eventId={event_id}, "
            f"entries={before - len(self._wishlist)}"
        )
        return OperationResult.ok(event_id=event_id)

    def close(self) -> None:
        """Shut down the lookup pool without waiting for abandoned reads."""
        self._executor.shutdown(wait=False, cancel_futures=True)
