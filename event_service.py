"""Event service wiring: configuration, logging and the public facade."""
import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from processor.event_processor import EventProcessor, EventValidationError
from processor.models import Event, LookupResult, OperationResult
from storage.dynamodb_store import DynamoDBEventStore
from storage.memory_store import InMemoryEventStore
from storage.remote import RemoteEventStore
from sync.identity import CognitoIdentityProvider, IdentityProvider, StaticIdentityProvider
from sync.session_cache import SessionCache
from sync.snapshot import EventSnapshot
from sync.sync_store import SyncStore


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        # Fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in self.RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass
class ServiceConfig:
    """Runtime configuration read from environment variables."""
    backend: str = 'dynamodb'
    table_name: str = 'eventflow-events'
    region_name: Optional[str] = None
    log_level: str = 'INFO'
    poll_interval_seconds: float = 5.0
    lookup_timeout_seconds: Optional[float] = 10.0
    user_id: Optional[str] = None
    cognito_access_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        lookup_timeout = float(os.environ.get('LOOKUP_TIMEOUT_SECONDS', '10'))
        return cls(
            backend=os.environ.get('EVENTFLOW_BACKEND', 'dynamodb').lower(),
            table_name=os.environ.get('TABLE_NAME', 'eventflow-events'),
            region_name=os.environ.get('AWS_REGION') or None,
            log_level=os.environ.get('LOG_LEVEL', 'INFO'),
            poll_interval_seconds=float(os.environ.get('POLL_INTERVAL_SECONDS', '5')),
            lookup_timeout_seconds=lookup_timeout if lookup_timeout > 0 else None,
            user_id=os.environ.get('EVENTFLOW_USER_ID') or None,
            cognito_access_token=os.environ.get('COGNITO_ACCESS_TOKEN') or None
        )


class EventService:
    """
    Operations offered to presentation code.

    Presentation code subscribes to `events` and triggers fetch, save and
    delete; failures come back as results for it to surface to the user.
    """

    def __init__(
        self,
        sync_store: SyncStore,
        session_cache: SessionCache,
        processor: Optional[EventProcessor] = None
    ):
        self.sync_store = sync_store
        self.session_cache = session_cache
        self.processor = processor or sync_store.processor

    @property
    def events(self) -> EventSnapshot:
        return self.sync_store.events

    def current_user_id(self) -> Optional[str]:
        return self.sync_store.identify_active_user()

    def fetch_events(self, user_id: str) -> None:
        self.sync_store.begin_sync(user_id)

    def get_event_by_id(self, event_id: str, timeout: Optional[float] = None) -> Optional[Event]:
        return self.session_cache.lookup(event_id, timeout=timeout)

    def resolve_event(self, event_id: str, timeout: Optional[float] = None) -> LookupResult:
        """Like get_event_by_id, but tells not-found apart from timeouts and failures."""
        return self.session_cache.get_event_by_id(event_id, timeout=timeout)

    def save_event(self, user_id: str, event: Event) -> OperationResult:
        """
        Validate and save an event.

        Invalid events are rejected without contacting the remote store.
        """
        try:
            self.processor.validate(event)
        except EventValidationError as e:
            return OperationResult.failure(e)
        return self.sync_store.save(user_id, event)

    def delete_event(self, user_id: str, event_id: str) -> OperationResult:
        return self.sync_store.delete(user_id, event_id)

    def is_event_in_wishlist(self, event_id: str) -> bool:
        return self.session_cache.is_wishlisted(event_id)

    def add_to_wishlist(self, event: Event) -> OperationResult:
        return self.session_cache.add_to_wishlist(event)

    def remove_from_wishlist(self, event_id: str) -> OperationResult:
        return self.session_cache.remove_from_wishlist(event_id)

    def close(self) -> None:
        self.session_cache.close()
        self.sync_store.close()
        self.sync_store.remote.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def _build_remote(config: ServiceConfig) -> RemoteEventStore:
    if config.backend == 'memory':
        return InMemoryEventStore()
    if config.backend == 'dynamodb':
        return DynamoDBEventStore(
            table_name=config.table_name,
            region_name=config.region_name,
            poll_interval=config.poll_interval_seconds
        )
    raise ValueError(f"Unknown backend: {config.backend}")


def _build_identity(config: ServiceConfig) -> IdentityProvider:
    if config.cognito_access_token:
        return CognitoIdentityProvider(
            access_token=config.cognito_access_token,
            region_name=config.region_name
        )
    return StaticIdentityProvider(config.user_id)


def create_service(
    config: Optional[ServiceConfig] = None,
    remote: Optional[RemoteEventStore] = None,
    identity: Optional[IdentityProvider] = None
) -> EventService:
    """
    Build an EventService from configuration.

    Args:
        config: Service configuration; read from the environment when None
        remote: Remote store overriding the configured backend
        identity: Identity provider overriding the configured one

    Returns:
        Ready-to-use EventService
    """
    config = config or ServiceConfig.from_env()
    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    logger.info(
        "Creating event service",
        extra={
            'backend': config.backend,
            'table_name': config.table_name,
            'poll_interval_seconds': config.poll_interval_seconds,
            'lookup_timeout_seconds': config.lookup_timeout_seconds
        }
    )

    remote = remote or _build_remote(config)
    identity = identity or _build_identity(config)
    sync_store = SyncStore(remote, identity)
    session_cache = SessionCache(sync_store, lookup_timeout=config.lookup_timeout_seconds)
    return EventService(sync_store, session_cache)
