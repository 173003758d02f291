"""Data models for event synchronization."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Event:
    """Event owned by a single user partition."""
    event_id: str = ""
    user_id: str = ""
    title: str = ""
    description: str = ""
    date: str = ""
    time: str = ""
    location: str = ""
    price: float = 0.0


@dataclass
class OperationResult:
    """Result of a save, delete or wishlist operation."""
    success: bool
    error: Optional[Exception] = None
    event_id: Optional[str] = None

    @classmethod
    def ok(cls, event_id: Optional[str] = None) -> "OperationResult":
        return cls(success=True, event_id=event_id)

    @classmethod
    def failure(cls, error: Exception) -> "OperationResult":
        return cls(success=False, error=error)


class LookupOutcome(Enum):
    """How a single-event lookup was resolved."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAUTHENTICATED = "unauthenticated"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class LookupResult:
    """Result of a read-through lookup."""
    outcome: LookupOutcome
    event: Optional[Event] = None
    error: Optional[Exception] = None
    from_cache: bool = False
