"""Contract for the remote hierarchical event store."""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Ordered (event_id, record) pairs making up one partition.
Children = List[Tuple[str, Dict[str, Any]]]
ChangeHandler = Callable[[Children], None]
CancelHandler = Callable[["SubscriptionCancelled"], None]


class SubscriptionCancelled(Exception):
    """Raised into a subscription's cancel handler when the store ends it."""

    def __init__(self, user_id: str, cause: Optional[BaseException] = None):
        self.user_id = user_id
        self.cause = cause
        message = f"Subscription to partition '{user_id}' cancelled"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class Subscription:
    """
    Handle to a standing subscription on one partition.

    Delivers change notifications until cancelled, either by the owner via
    cancel() or by the store via notify_cancelled().
    """

    def __init__(
        self,
        user_id: str,
        on_change: ChangeHandler,
        on_cancelled: Optional[CancelHandler] = None
    ):
        self.user_id = user_id
        self._on_change = on_change
        self._on_cancelled = on_cancelled
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop delivering notifications. Safe to call more than once."""
        with self._lock:
            if not self._active:
                return
            self._active = False
        logger.info(f"Cancelled subscription for partition {self.user_id}")
        self._stopped()

    def notify_change(self, children: Children) -> None:
        if not self._active:
            return
        self._on_change(children)

    def notify_cancelled(self, error: SubscriptionCancelled) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._stopped()
        if self._on_cancelled is not None:
            self._on_cancelled(error)

    def _stopped(self) -> None:
        """Hook for subclasses that own background resources."""


class RemoteEventStore(ABC):
    """
    Remote store partitioned by user identifier.

    Every record lives at (user_id, event_id). Implementations push the full
    child set of a partition to its subscribers on every change.
    """

    @abstractmethod
    def subscribe(
        self,
        user_id: str,
        on_change: ChangeHandler,
        on_cancelled: Optional[CancelHandler] = None
    ) -> Subscription:
        """
        Register a standing subscription on a partition.

        Args:
            user_id: Partition key
            on_change: Called with the full ordered child set on the initial
                load and after every insertion, update or removal
            on_cancelled: Called at most once if the store ends the subscription

        Returns:
            Subscription handle
        """

    @abstractmethod
    def get(self, user_id: str, event_id: str) -> Optional[Dict[str, Any]]:
        """Point read. Returns None if no record exists at the path."""

    @abstractmethod
    def put(self, user_id: str, event_id: str, record: Dict[str, Any]) -> None:
        """Point write, overwriting any existing record at the path."""

    @abstractmethod
    def delete(self, user_id: str, event_id: str) -> None:
        """Point delete. Deleting an absent record succeeds."""

    @abstractmethod
    def generate_key(self, user_id: str) -> str:
        """Generate a fresh unique child key under a partition."""

    def close(self) -> None:
        """Release resources held by the store."""
