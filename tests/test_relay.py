"""Tests for the Redis change-feed relay between worker processes."""

from unittest import mock

import pytest
import redis

from core.relay import RedisRelay


@pytest.fixture
def hub():
    return mock.Mock()


@pytest.fixture
def client():
    return mock.Mock()


def test_broadcast_publishes_couple_id(hub, client):
    relay = RedisRelay(hub, client=client, channel='changes')

    assert relay.broadcast(42) is True
    client.publish.assert_called_once_with('changes', '42')
    hub.publish.assert_not_called()


def test_broadcast_reports_unreachable_redis(hub, client):
    client.publish.side_effect = redis.ConnectionError('refused')
    relay = RedisRelay(hub, client=client)

    with mock.patch('core.relay.logger') as logger:
        assert relay.broadcast(42) is False
    logger.exception.assert_called_once()


@pytest.mark.parametrize('data', [b'42', '42'])
def test_message_refreshes_local_hub(hub, client, data):
    relay = RedisRelay(hub, client=client)

    with mock.patch('core.relay.close_old_connections'):
        relay.handle({'type': 'message', 'data': data})

    hub.publish.assert_called_once_with(42)


def test_malformed_message_is_ignored(hub, client):
    relay = RedisRelay(hub, client=client)

    relay.handle({'type': 'message', 'data': b'not-a-couple'})

    hub.publish.assert_not_called()


def test_listener_delivers_until_stopped(hub, client):
    relay = RedisRelay(hub, client=client, channel='changes')
    pubsub = client.pubsub.return_value

    def listen():
        yield {'type': 'message', 'data': b'7'}
        relay.stop()
        yield {'type': 'message', 'data': b'8'}

    pubsub.listen.side_effect = listen

    with mock.patch('core.relay.close_old_connections'):
        relay._listen()

    pubsub.subscribe.assert_called_once_with('changes')
    hub.publish.assert_called_once_with(7)
    pubsub.close.assert_called_once_with()


def test_listener_resubscribes_after_connection_loss(hub, client):
    relay = RedisRelay(hub, client=client, retry_seconds=0)
    pubsub = client.pubsub.return_value
    attempts = []

    def listen():
        attempts.append(1)
        if len(attempts) == 1:
            raise redis.ConnectionError('reset')
        relay.stop()
        yield {'type': 'message', 'data': b'1'}

    pubsub.listen.side_effect = listen

    with mock.patch('core.relay.logger'), mock.patch('core.relay.close_old_connections'):
        relay._listen()

    assert len(attempts) == 2
    assert pubsub.close.call_count == 2
    hub.publish.assert_not_called()


def test_start_is_idempotent(hub, client):
    relay = RedisRelay(hub, client=client)

    with mock.patch('core.relay.threading.Thread') as thread_cls:
        thread_cls.return_value.is_alive.return_value = True
        relay.start()
        relay.start()

    thread_cls.assert_called_once()
    thread_cls.return_value.start.assert_called_once_with()
