"""Observable snapshot of a user's events."""
import logging
import threading
from typing import Callable, Iterable, List, Tuple

from processor.models import Event

logger = logging.getLogger(__name__)

Listener = Callable[[Tuple[Event, ...]], None]


class EventSnapshot:
    """
    Ordered event list that notifies listeners when replaced.

    The value is an immutable tuple that is swapped as a whole on every
    publish, so readers never need a lock.
    """

    def __init__(self):
        self._value: Tuple[Event, ...] = ()
        self._version = 0
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> Tuple[Event, ...]:
        return self._value

    @property
    def version(self) -> int:
        """Number of publishes so far."""
        return self._version

    def publish(self, events: Iterable[Event]) -> None:
        value = tuple(events)
        with self._lock:
            self._value = value
            self._version += 1
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(value)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}", exc_info=True)

    def subscribe(self, listener: Listener, replay: bool = True) -> Callable[[], None]:
        """
        Register a listener for snapshot replacements.

        Args:
            listener: Called with the new tuple on every publish
            replay: Also call the listener with the current value right away

        Returns:
            Function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)
            current = self._value

        if replay:
            listener(current)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._value)

    def __iter__(self):
        return iter(self._value)
