"""Tests for live marshmallow subscriptions."""

import threading
from datetime import datetime, timezone as dt_timezone
from unittest import mock

import pytest
from django.db import DatabaseError

from core.events import store
from core.exceptions import SubscriptionError, SubscriptionSetupFailed
from core.models import Marshmallow
from core.subscriptions import EPOCH, MarshmallowView, SubscriptionHub, message_snapshot


pytestmark = pytest.mark.django_db


@pytest.fixture
def hub():
    """A hub of our own, wired to the store's change feed."""
    hub = SubscriptionHub()
    hub.connect()
    yield hub
    hub.disconnect()


@pytest.fixture
def recorder():
    class Recorder:
        def __init__(self):
            self.updates = []
            self.errors = []

        def on_update(self, snapshot):
            self.updates.append(snapshot)

        def on_error(self, error):
            self.errors.append(error)

    return Recorder()


class TestSnapshot:

    def test_null_timestamp_becomes_epoch(self):
        view = MarshmallowView.from_row({
            'id': 1, 'couple_id': 1, 'sender_id': 1, 'recipient_id': 2,
            'message': 'hi', 'kind': 'custom', 'quick_pick_id': None,
            'photo_url': '', 'created_at': None, 'read': 0,
        })

        assert view.created_at == EPOCH
        assert view.read is False
        assert view.as_dict()['created_at'] == '1970-01-01T00:00:00+00:00'

    def test_newest_first(self, u1, u2, couple):
        ids = [
            store.append_marshmallow(u1, message='one'),
            store.append_marshmallow(u2, message='two'),
            store.append_marshmallow(u1, message='three'),
        ]

        snapshot = message_snapshot(couple.pk)
        assert [m.id for m in snapshot] == list(reversed(ids))
        assert all(a.created_at > b.created_at for a, b in zip(snapshot, snapshot[1:]))


class TestSubscribe:

    def test_initial_snapshot_is_delivered(self, hub, recorder, u1, couple):
        store.append_marshmallow(u1, message='Miss you')

        unsubscribe = hub.subscribe(couple.pk, recorder.on_update, recorder.on_error)

        assert len(recorder.updates) == 1
        assert [m.message for m in recorder.updates[0]] == ['Miss you']
        assert hub.subscriber_count(couple.pk) == 1
        unsubscribe()

    def test_new_message_pushes_full_snapshot(self, hub, recorder, u1, u2, couple,
                                              django_capture_on_commit_callbacks):
        store.append_marshmallow(u2, message='Morning!')
        unsubscribe = hub.subscribe(couple.pk, recorder.on_update)

        with django_capture_on_commit_callbacks(execute=True):
            new_id = store.append_marshmallow(u1, message='Miss you')

        latest = recorder.updates[-1]
        assert len(recorder.updates) == 2
        assert latest[0].id == new_id
        assert latest[0].recipient_id == u2.pk
        assert latest[0].read is False
        assert [m.message for m in latest] == ['Miss you', 'Morning!']
        unsubscribe()

    def test_mark_read_pushes_snapshot(self, hub, recorder, u1, u2, couple,
                                       django_capture_on_commit_callbacks):
        marshmallow_id = store.append_marshmallow(u1, message='Miss you')
        unsubscribe = hub.subscribe(couple.pk, recorder.on_update)

        with django_capture_on_commit_callbacks(execute=True):
            store.mark_marshmallow_read(marshmallow_id, reader=u2)

        assert recorder.updates[-1][0].read is True
        unsubscribe()

    def test_other_couples_are_not_notified(self, hub, recorder, make_user, u1, couple,
                                            django_capture_on_commit_callbacks):
        from core.pairing import directory

        other = directory.create_couple(make_user('cal'))
        directory.join_couple(make_user('dee'), other.invite_code)
        unsubscribe = hub.subscribe(other.pk, recorder.on_update)

        with django_capture_on_commit_callbacks(execute=True):
            store.append_marshmallow(u1, message='Miss you')

        assert recorder.updates == [[]]
        unsubscribe()

    def test_each_subscriber_gets_its_own_list(self, hub, u1, couple):
        store.append_marshmallow(u1, message='Miss you')
        first, second = [], []

        unsub_first = hub.subscribe(couple.pk, first.append)
        unsub_second = hub.subscribe(couple.pk, second.append)
        first[0].clear()
        hub.publish(couple.pk)

        assert len(second[0]) == 1
        assert len(second[1]) == 1
        unsub_first()
        unsub_second()

    def test_unsubscribe_stops_updates(self, hub, recorder, u1, couple):
        unsubscribe = hub.subscribe(couple.pk, recorder.on_update)
        unsubscribe()
        hub.publish(couple.pk)

        assert len(recorder.updates) == 1
        assert hub.subscriber_count(couple.pk) == 0

    def test_raising_consumer_keeps_subscription(self, hub, u1, couple):
        calls = []

        def flaky(snapshot):
            calls.append(snapshot)
            raise RuntimeError('render failed')

        unsubscribe = hub.subscribe(couple.pk, flaky)
        hub.publish(couple.pk)

        assert len(calls) == 2
        assert hub.subscriber_count(couple.pk) == 1
        unsubscribe()


class TestSetupFailure:

    @pytest.mark.parametrize('couple_id', [None, 'abc', '', -1, 0, True, 3.5j])
    def test_malformed_id(self, hub, recorder, couple_id):
        with pytest.raises(SubscriptionSetupFailed):
            hub.subscribe(couple_id, recorder.on_update, recorder.on_error)
        assert recorder.updates == []
        assert recorder.errors == []

    def test_nonexistent_couple(self, hub, recorder, db):
        with pytest.raises(SubscriptionSetupFailed):
            hub.subscribe(987654, recorder.on_update)

    def test_database_unavailable(self, hub, recorder, couple):
        with mock.patch('core.subscriptions.Couple.objects.filter', side_effect=DatabaseError('down')):
            with pytest.raises(SubscriptionSetupFailed):
                hub.subscribe(couple.pk, recorder.on_update)
        assert hub.subscriber_count(couple.pk) == 0

    def test_string_id_is_accepted(self, hub, recorder, couple):
        unsubscribe = hub.subscribe(str(couple.pk), recorder.on_update)
        assert recorder.updates == [[]]
        unsubscribe()


class TestTerminalError:

    @pytest.fixture
    def failing_hub(self):
        loads = []

        def loader(couple_id):
            loads.append(couple_id)
            if len(loads) > 1:
                raise DatabaseError('connection reset')
            return []

        return SubscriptionHub(snapshot_loader=loader)

    def test_error_delivered_once(self, failing_hub, recorder, couple):
        unsubscribe = failing_hub.subscribe(couple.pk, recorder.on_update, recorder.on_error)

        failing_hub.publish(couple.pk)
        failing_hub.publish(couple.pk)

        assert recorder.updates == [[]]
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], SubscriptionError)
        assert recorder.errors[0].message == 'Failed to load marshmallows. Please try again.'
        assert failing_hub.subscriber_count(couple.pk) == 0

        for _ in range(3):
            unsubscribe()
        assert len(recorder.errors) == 1

    def test_initial_load_failure_goes_to_on_error(self, recorder, couple):
        hub = SubscriptionHub(snapshot_loader=mock.Mock(side_effect=DatabaseError('down')))

        unsubscribe = hub.subscribe(couple.pk, recorder.on_update, recorder.on_error)

        assert recorder.updates == []
        assert len(recorder.errors) == 1
        unsubscribe()

    def test_error_without_handler(self, couple):
        hub = SubscriptionHub(snapshot_loader=mock.Mock(side_effect=DatabaseError('down')))
        unsubscribe = hub.subscribe(couple.pk, lambda snapshot: None)

        assert hub.subscriber_count(couple.pk) == 0
        unsubscribe()


def test_view_as_dict_is_json_ready():
    created = datetime(2026, 2, 14, 9, 30, tzinfo=dt_timezone.utc)
    view = MarshmallowView(
        id=7, couple_id=1, sender_id=1, recipient_id=2, message='Miss you',
        kind='custom', quick_pick_id=None, photo_url='', created_at=created, read=False,
    )

    assert view.as_dict() == {
        'id': 7, 'couple_id': 1, 'sender_id': 1, 'recipient_id': 2,
        'message': 'Miss you', 'kind': 'custom', 'quick_pick_id': None,
        'photo_url': '', 'created_at': '2026-02-14T09:30:00+00:00', 'read': False,
    }


def test_marshmallow_without_timestamp_is_normalized(u1, u2, couple):
    marshmallow_id = store.append_marshmallow(u1, message='Miss you')
    row = Marshmallow.objects.filter(pk=marshmallow_id).values(
        'id', 'couple_id', 'sender_id', 'recipient_id', 'message', 'kind',
        'quick_pick_id', 'photo_url', 'read',
    ).get()

    assert MarshmallowView.from_row({**row, 'created_at': None}).created_at == EPOCH


class TestConcurrentWriters:

    def test_older_snapshot_never_lands_last(self, couple):
        loading, release = threading.Event(), threading.Event()
        calls = []

        def loader(couple_id):
            calls.append(couple_id)
            if len(calls) == 1:
                return ['initial']
            if len(calls) == 2:
                # First writer read the table before the second one committed
                loading.set()
                release.wait(timeout=5)
                return ['m1']
            return ['m2', 'm1']

        hub = SubscriptionHub(snapshot_loader=loader)
        updates = []
        unsubscribe = hub.subscribe(couple.pk, updates.append)

        first = threading.Thread(target=hub.publish, args=(couple.pk,))
        first.start()
        assert loading.wait(timeout=5)
        second = threading.Thread(target=hub.publish, args=(couple.pk,))
        second.start()
        second.join(timeout=0.2)
        release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert updates == [['initial'], ['m1'], ['m2', 'm1']]
        unsubscribe()

    def test_other_couples_are_not_held_up(self, make_user, couple):
        from core.pairing import directory

        other = directory.create_couple(make_user('cal'))
        entered, release = threading.Event(), threading.Event()

        def loader(couple_id):
            if couple_id == couple.pk:
                entered.set()
                release.wait(timeout=5)
            return [couple_id]

        hub = SubscriptionHub(snapshot_loader=loader)
        updates = []
        unsubscribe = hub.subscribe(other.pk, updates.append)

        slow = threading.Thread(target=hub._refresh, args=([], couple.pk))
        slow.start()
        assert entered.wait(timeout=5)
        fast = threading.Thread(target=hub.publish, args=(other.pk,))
        fast.start()
        fast.join(timeout=2)
        finished_while_blocked = not fast.is_alive()
        release.set()
        slow.join(timeout=5)

        assert finished_while_blocked
        assert updates == [[other.pk], [other.pk]]
        unsubscribe()


class TestRelay:

    def test_announce_goes_through_the_relay(self, couple, recorder):
        relay = mock.Mock()
        relay.broadcast.return_value = True
        hub = SubscriptionHub(relay=relay)
        unsubscribe = hub.subscribe(couple.pk, recorder.on_update)

        hub.announce(couple.pk)

        relay.start.assert_called_once_with()
        relay.broadcast.assert_called_once_with(couple.pk)
        # Local subscribers are refreshed by the relay's own listener
        assert len(recorder.updates) == 1
        unsubscribe()

    def test_unreachable_relay_still_refreshes_locally(self, couple, recorder):
        relay = mock.Mock()
        relay.broadcast.return_value = False
        hub = SubscriptionHub(relay=relay)
        unsubscribe = hub.subscribe(couple.pk, recorder.on_update)

        hub.announce(couple.pk)

        assert len(recorder.updates) == 2
        unsubscribe()
