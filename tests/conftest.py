"""Shared fixtures for event sync tests."""
import os
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import patch

import pytest

from processor.models import Event
from storage.remote import RemoteEventStore, Subscription, SubscriptionCancelled
from sync.identity import StaticIdentityProvider
from sync.sync_store import SyncStore


class FakeRemoteStore(RemoteEventStore):
    """Remote store whose notifications are driven explicitly by the test."""

    def __init__(self):
        self.records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.subscriptions: List[Subscription] = []
        self.calls: Dict[str, int] = {'get': 0, 'put': 0, 'delete': 0, 'generate_key': 0}
        self.fail_with: Optional[Exception] = None
        self._next_key = 0

    def subscribe(self, user_id, on_change, on_cancelled=None):
        subscription = Subscription(user_id, on_change, on_cancelled)
        self.subscriptions.append(subscription)
        return subscription

    def emit(self, user_id: str, children: Dict[str, Dict[str, Any]]) -> None:
        """Push a full child set to every active subscriber of a partition."""
        for subscription in list(self.subscriptions):
            if subscription.user_id == user_id:
                subscription.notify_change(list(children.items()))

    def cancel(self, user_id: str, cause: Optional[Exception] = None) -> None:
        for subscription in list(self.subscriptions):
            if subscription.user_id == user_id:
                subscription.notify_cancelled(SubscriptionCancelled(user_id, cause))

    def get(self, user_id, event_id):
        self.calls['get'] += 1
        if self.fail_with:
            raise self.fail_with
        return self.records.get((user_id, event_id))

    def put(self, user_id, event_id, record):
        self.calls['put'] += 1
        if self.fail_with:
            raise self.fail_with
        self.records[(user_id, event_id)] = dict(record)

    def delete(self, user_id, event_id):
        self.calls['delete'] += 1
        if self.fail_with:
            raise self.fail_with
        self.records.pop((user_id, event_id), None)

    def generate_key(self, user_id):
        self.calls['generate_key'] += 1
        self._next_key += 1
        return f"key-{self._next_key:04d}"


@pytest.fixture
def aws_credentials():
    """Fake AWS credentials so boto3 never reaches a real account."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def fake_remote():
    return FakeRemoteStore()


@pytest.fixture
def identity():
    return StaticIdentityProvider('u1')


@pytest.fixture
def sync_store(fake_remote, identity):
    store = SyncStore(fake_remote, identity)
    yield store
    store.close()


@pytest.fixture
def sample_event():
    """Create a sample unsaved Event."""
    return Event(
        event_id='',
        title='Jazz Night',
        description='Live jazz on the rooftop',
        date='2024-01-01',
        time='10:00',
        location='Nairobi',
        price=1500.0
    )
