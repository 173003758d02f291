"""Event processor for validating and normalizing event data."""
import logging
import math
import re
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from processor.models import Event

logger = logging.getLogger(__name__)


class EventValidationError(ValueError):
    """Raised when event input fails validation."""


class EventProcessor:
    """Processor for validating events and converting store records."""

    DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
    TIME_PATTERN = re.compile(r'^\d{2}:\d{2}$')
    STRING_FIELDS = ('event_id', 'user_id', 'title', 'description', 'date', 'time', 'location')

    def build_event(
        self,
        title: str,
        date: str,
        time: str,
        description: str = "",
        location: str = "",
        price: str = "",
        event_id: str = ""
    ) -> Event:
        """
        Build an Event from raw form input.

        Args:
            title: Event title
            date: Event date (YYYY-MM-DD)
            time: Event start time (HH:MM)
            description: Free-form description
            location: Venue
            price: Price as entered; blank means free
            event_id: Existing identifier when editing, empty when creating

        Returns:
            Validated Event object

        Raises:
            EventValidationError: If any field is invalid
        """
        event = Event(
            event_id=event_id,
            title=title.strip(),
            description=description.strip(),
            date=date.strip(),
            time=time.strip(),
            location=location.strip(),
            price=self._parse_price(price)
        )
        self.validate(event)
        return event

    def validate(self, event: Event) -> None:
        """
        Validate required fields and formats of an event.

        Raises:
            EventValidationError: With a message describing the first problem
        """
        error = self._validation_error(event)
        if error:
            logger.warning(f"Event '{event.title}' failed validation: {error}")
            raise EventValidationError(error)

    def _validation_error(self, event: Event) -> Optional[str]:
        if not event.title or not event.title.strip():
            return "Title is required"

        if not event.date or not event.date.strip():
            return "Date is required"
        if not self.DATE_PATTERN.match(event.date):
            return "Date must be YYYY-MM-DD"
        try:
            datetime.strptime(event.date, '%Y-%m-%d')
        except ValueError:
            return "Invalid date"

        if not event.time or not event.time.strip():
            return "Time is required"
        if not self.TIME_PATTERN.match(event.time):
            return "Time must be HH:MM"
        try:
            datetime.strptime(event.time, '%H:%M')
        except ValueError:
            return "Invalid time"

        if not math.isfinite(event.price):
            return "Invalid price"
        if event.price < 0:
            return "Price cannot be negative"

        return None

    def _parse_price(self, price: Any) -> float:
        """
        Normalize a price input to a float.

        Blank or missing input is treated as 0.0. NaN and infinities are
        rejected.
        """
        if price is None:
            return 0.0
        if isinstance(price, str):
            price = price.strip()
            if not price:
                return 0.0
        try:
            value = float(price)
        except (TypeError, ValueError):
            raise EventValidationError("Invalid price")
        if not math.isfinite(value):
            raise EventValidationError("Invalid price")
        return value

    def record_to_event(self, record: Dict[str, Any]) -> Optional[Event]:
        """
        Convert a remote store record to an Event.

        Args:
            record: Record dictionary as returned by the store

        Returns:
            Event object or None if conversion fails
        """
        try:
            fields = {
                name: str(record.get(name) or "")
                for name in self.STRING_FIELDS
            }
            return Event(price=self._parse_price(record.get('price')), **fields)
        except (AttributeError, EventValidationError) as e:
            logger.warning(f"Failed to convert record to Event: {e}")
            return None

    def event_to_record(self, event: Event) -> Dict[str, Any]:
        """Convert an Event to the record stored under its partition."""
        return {
            'event_id': event.event_id,
            'user_id': event.user_id,
            'title': event.title,
            'description': event.description,
            'date': event.date,
            'time': event.time,
            'location': event.location,
            'price': float(event.price)
        }

    def materialize(self, children: List[Tuple[str, Dict[str, Any]]]) -> List[Event]:
        """
        Build the ordered event list from a notification's full child set.

        Children that cannot be converted are skipped. A record missing its
        own event_id takes the child key.

        Args:
            children: Ordered (event_id, record) pairs

        Returns:
            List of Event objects in notification order
        """
        events = []

        for key, record in children:
            event = self.record_to_event(record)
            if event is None:
                logger.warning(f"Skipping unreadable record under key {key}")
                continue
            if not event.event_id:
                event = replace(event, event_id=key)
            events.append(event)

        return events
