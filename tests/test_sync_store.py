"""Unit tests for SyncStore."""
import threading
import time
from dataclasses import replace

import pytest

from storage.memory_store import InMemoryEventStore
from sync.identity import StaticIdentityProvider
from sync.sync_store import SyncState, SyncStore


def test_snapshot_follows_last_notification(sync_store, fake_remote):
    """Test that each notification replaces the snapshot wholesale."""
    sync_store.begin_sync('u1')

    fake_remote.emit('u1', {'e1': {'event_id': 'e1', 'title': 'A'}, 'e2': {'event_id': 'e2', 'title': 'B'}})
    assert [e.title for e in sync_store.snapshot] == ['A', 'B']

    # e1 removed remotely
    fake_remote.emit('u1', {'e2': {'event_id': 'e2', 'title': 'B'}})
    assert [e.title for e in sync_store.snapshot] == ['B']
    assert sync_store.state == SyncState.SYNCING


def test_snapshot_after_many_notifications(sync_store, fake_remote):
    sync_store.begin_sync('u1')
    notifications = [
        {'e1': {'title': 'A'}},
        {'e1': {'title': 'A2'}, 'e3': {'title': 'C'}},
        {},
        {'e4': {'title': 'D'}, 'e2': {'title': 'B'}},
    ]

    for children in notifications:
        fake_remote.emit('u1', children)

    assert [(e.event_id, e.title) for e in sync_store.snapshot] == [('e4', 'D'), ('e2', 'B')]
    assert sync_store.events.version == len(notifications)


def test_snapshot_listeners_receive_updates(sync_store, fake_remote):
    received = []
    unsubscribe = sync_store.events.subscribe(received.append)

    sync_store.begin_sync('u1')
    fake_remote.emit('u1', {'e1': {'title': 'A'}})
    unsubscribe()
    fake_remote.emit('u1', {})

    assert received[0] == ()
    assert [e.title for e in received[1]] == ['A']
    assert len(received) == 2


def test_identify_active_user(sync_store, identity):
    assert sync_store.identify_active_user() == 'u1'

    identity.sign_out()

    assert sync_store.identify_active_user() is None


def test_save_assigns_generated_id(sync_store, fake_remote, sample_event):
    """Test that saving an event with empty id generates one."""
    result = sync_store.save('u1', sample_event)

    assert result.success
    assert result.event_id == 'key-0001'
    record = fake_remote.records[('u1', 'key-0001')]
    assert record['event_id'] == 'key-0001'
    assert record['user_id'] == 'u1'
    assert record['title'] == 'Jazz Night'


def test_save_overwrites_user_id(sync_store, fake_remote, sample_event):
    event = replace(sample_event, user_id='someone-else')

    sync_store.save('u1', event)

    assert fake_remote.records[('u1', 'key-0001')]['user_id'] == 'u1'


def test_save_twice_overwrites_in_place(sync_store, fake_remote, sample_event):
    """Test that re-saving with the returned id does not duplicate."""
    first = sync_store.save('u1', sample_event)
    updated = replace(sample_event, event_id=first.event_id, title='Renamed')

    second = sync_store.save('u1', updated)

    assert second.event_id == first.event_id
    assert len(fake_remote.records) == 1
    assert fake_remote.records[('u1', first.event_id)]['title'] == 'Renamed'
    assert fake_remote.calls['generate_key'] == 1


def test_save_does_not_touch_snapshot(sync_store, fake_remote, sample_event):
    """Test that writes only show up after the remote notification."""
    sync_store.begin_sync('u1')
    fake_remote.emit('u1', {})

    result = sync_store.save('u1', sample_event)

    assert sync_store.snapshot == ()

    fake_remote.emit('u1', {result.event_id: fake_remote.records[('u1', result.event_id)]})
    assert [e.event_id for e in sync_store.snapshot] == [result.event_id]


def test_save_failure_returns_error(sync_store, fake_remote, sample_event):
    fake_remote.fail_with = ConnectionError('offline')

    result = sync_store.save('u1', sample_event)

    assert not result.success
    assert isinstance(result.error, ConnectionError)


def test_delete_missing_event_succeeds(sync_store, fake_remote):
    """Test that deleting a non-existent event is idempotent."""
    result = sync_store.delete('u1', 'e1')

    assert result.success
    assert fake_remote.calls['delete'] == 1


def test_delete_failure_returns_error(sync_store, fake_remote):
    fake_remote.fail_with = PermissionError('denied')

    result = sync_store.delete('u1', 'e1')

    assert not result.success
    assert isinstance(result.error, PermissionError)


def test_cancellation_freezes_snapshot(sync_store, fake_remote):
    """Test that a cancelled subscription leaves the snapshot untouched."""
    sync_store.begin_sync('u1')
    fake_remote.emit('u1', {'e1': {'title': 'A'}})

    fake_remote.cancel('u1', PermissionError('permission denied'))
    fake_remote.emit('u1', {})

    assert sync_store.state == SyncState.ERROR
    assert [e.title for e in sync_store.snapshot] == ['A']


def test_begin_sync_again_retries_after_cancellation(sync_store, fake_remote):
    sync_store.begin_sync('u1')
    fake_remote.cancel('u1')

    sync_store.begin_sync('u1')
    fake_remote.emit('u1', {'e1': {'title': 'A'}})

    assert sync_store.state == SyncState.SYNCING
    assert [e.title for e in sync_store.snapshot] == ['A']


def test_begin_sync_replaces_previous_subscription(sync_store, fake_remote):
    """Test that switching users cancels the earlier subscription."""
    sync_store.begin_sync('u1')
    fake_remote.emit('u1', {'e1': {'title': 'A'}})
    first_subscription = fake_remote.subscriptions[0]

    sync_store.begin_sync('u2')

    assert not first_subscription.active
    assert sync_store.active_user_id == 'u2'
    assert sync_store.snapshot == ()

    fake_remote.emit('u1', {'e9': {'title': 'stale'}})
    fake_remote.emit('u2', {'e2': {'title': 'B'}})

    assert [e.title for e in sync_store.snapshot] == ['B']


def test_late_notification_cannot_overwrite_new_partition(sync_store, fake_remote):
    """Test that a notification in flight during a user switch lands before the switch."""
    sync_store.begin_sync('u1')
    entered = threading.Event()
    release = threading.Event()
    materialize = sync_store.processor.materialize

    def slow_materialize(children):
        if [key for key, _ in children] == ['e1']:
            entered.set()
            release.wait(5)
        return materialize(children)

    sync_store.processor.materialize = slow_materialize
    notifier = threading.Thread(target=fake_remote.emit, args=('u1', {'e1': {'title': 'U1 private'}}))
    switcher = threading.Thread(target=sync_store.begin_sync, args=('u2',))

    notifier.start()
    assert entered.wait(5)
    switcher.start()
    time.sleep(0.1)
    release.set()
    notifier.join(5)
    switcher.join(5)

    assert sync_store.active_user_id == 'u2'
    assert sync_store.snapshot == ()

    fake_remote.emit('u2', {'e2': {'title': 'U2'}})

    assert [e.title for e in sync_store.snapshot] == ['U2']


def test_cancel_sync_keeps_snapshot(sync_store, fake_remote):
    sync_store.begin_sync('u1')
    fake_remote.emit('u1', {'e1': {'title': 'A'}})

    sync_store.cancel_sync()
    fake_remote.emit('u1', {})

    assert sync_store.state == SyncState.IDLE
    assert [e.title for e in sync_store.snapshot] == ['A']


def test_close_stops_sync(fake_remote, identity):
    with SyncStore(fake_remote, identity) as store:
        store.begin_sync('u1')

    assert store.state == SyncState.CLOSED
    assert not fake_remote.subscriptions[0].active
    with pytest.raises(RuntimeError):
        store.begin_sync('u1')


def test_read_event(sync_store, fake_remote):
    fake_remote.records[('u1', 'e1')] = {'event_id': 'e1', 'title': 'A', 'price': 10}

    event = sync_store.read_event('u1', 'e1')

    assert event.title == 'A'
    assert event.price == 10.0
    assert sync_store.read_event('u1', 'missing') is None


def test_save_then_notification_with_memory_store(sample_event):
    """Test the full round trip against the in-memory store."""
    remote = InMemoryEventStore()
    store = SyncStore(remote, StaticIdentityProvider('u1'))
    store.begin_sync('u1')

    result = store.save('u1', sample_event)

    assert result.success
    assert result.event_id
    assert [e.event_id for e in store.snapshot] == [result.event_id]
    assert store.snapshot[0].user_id == 'u1'

    store.delete('u1', result.event_id)

    assert store.snapshot == ()
    store.close()
