"""
Marshmallows - Change Feed Relay
================================

Carries "this couple's marshmallows changed" between processes over Redis
pub/sub, so a write handled by one gunicorn worker refreshes the live
streams held open by every other worker.

- broadcast() publishes the couple id on the channel
- a listener thread (started with the first subscription in a process)
  hears every broadcast, this process's own included, and refreshes the
  local hub
"""

import logging
import threading

import redis
from django.db import close_old_connections

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = 'marshmallows:changes'


class RedisRelay:

    def __init__(self, hub, url=None, channel=DEFAULT_CHANNEL, client=None, retry_seconds=2.0):
        self.hub = hub
        self.channel = channel
        self.client = client or redis.Redis.from_url(url)
        self.retry_seconds = retry_seconds
        self._lock = threading.Lock()
        self._thread = None
        self._stopped = threading.Event()

    def broadcast(self, couple_id):
        """Publish a change. Returns False if Redis could not be reached."""
        try:
            self.client.publish(self.channel, str(couple_id))
        except redis.RedisError:
            logger.exception("Could not relay change for couple %s", couple_id)
            return False
        return True

    def start(self):
        """Start listening (once per process)."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stopped.clear()
            self._thread = threading.Thread(
                target=self._listen, name='marshmallows-relay', daemon=True,
            )
            self._thread.start()
        logger.info("Listening for changes on %s", self.channel)

    def stop(self):
        self._stopped.set()

    def handle(self, message):
        """Refresh local subscribers for the couple named in a pub/sub message."""
        data = message.get('data')
        if isinstance(data, bytes):
            data = data.decode()
        try:
            couple_id = int(data)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed change message %r", data)
            return

        # Long-lived thread: drop connections the database has given up on
        close_old_connections()
        self.hub.publish(couple_id)

    def _listen(self):
        while not self._stopped.is_set():
            pubsub = self.client.pubsub(ignore_subscribe_messages=True)
            try:
                pubsub.subscribe(self.channel)
                for message in pubsub.listen():
                    if self._stopped.is_set():
                        break
                    if message.get('type') == 'message':
                        self.handle(message)
            except redis.RedisError:
                logger.exception("Lost connection to %s, retrying", self.channel)
                self._stopped.wait(self.retry_seconds)
            finally:
                pubsub.close()
