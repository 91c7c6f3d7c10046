"""
Marshmallows - Live Subscriptions
=================================

A standing view of a couple's marshmallows, newest first. Every change
delivers a full replacement snapshot (never a diff); consumers replace
their whole local view on each callback.

Per subscription:
- the first snapshot is delivered as soon as it is loaded
- updates and the terminal error arrive in order and never concurrently
- on_error fires at most once, after which the subscription is over
- unsubscribe() is idempotent and safe to call after an error

Subscriptions live in the process that serves them. Writes reach them
through the `event_created` and `message_read` signals and, when a Redis
relay is configured (see core/relay.py), from writes in other processes.
"""

import logging
import threading
from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Callable, List, Optional

from django.db import DatabaseError

from .exceptions import SubscriptionError, SubscriptionSetupFailed
from .models import Couple, EventKind, Marshmallow
from .signals import event_created, message_read

logger = logging.getLogger(__name__)

# Stands in for a creation time that has not been written yet
EPOCH = datetime(1970, 1, 1, tzinfo=dt_timezone.utc)

SNAPSHOT_FIELDS = (
    'id', 'couple_id', 'sender_id', 'recipient_id', 'message', 'kind',
    'quick_pick_id', 'photo_url', 'created_at', 'read',
)


@dataclass(frozen=True)
class MarshmallowView:
    id: int
    couple_id: int
    sender_id: int
    recipient_id: int
    message: str
    kind: str
    quick_pick_id: Optional[int]
    photo_url: str
    created_at: datetime
    read: bool

    @classmethod
    def from_row(cls, row):
        return cls(**{
            **row,
            'created_at': row['created_at'] or EPOCH,
            'read': bool(row['read']),
        })

    def as_dict(self):
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        return data


def message_snapshot(couple_id) -> List[MarshmallowView]:
    """All of a couple's marshmallows, newest first by server time."""
    rows = (
        Marshmallow.objects.filter(couple_id=couple_id)
        .order_by('-created_at', '-id')
        .values(*SNAPSHOT_FIELDS)
    )
    return [MarshmallowView.from_row(row) for row in rows]


class Subscription:
    """One consumer's handle. Deliveries are drained by one thread at a time."""

    def __init__(self, hub, couple_id, on_update, on_error=None):
        self.hub = hub
        self.couple_id = couple_id
        self._on_update = on_update
        self._on_error = on_error
        self._lock = threading.Lock()
        self._pending = deque()
        self._draining = False
        self._failed = False
        self._closed = False

    @property
    def active(self):
        return not (self._closed or self._failed)

    def push_update(self, snapshot):
        self._enqueue(('update', snapshot))

    def fail(self, error):
        with self._lock:
            if self._failed or self._closed:
                return
            self._failed = True
        self._enqueue(('error', error), terminal=True)

    def unsubscribe(self):
        with self._lock:
            self._closed = True
            self._pending.clear()
        self.hub._remove(self)

    def _enqueue(self, item, terminal=False):
        with self._lock:
            if self._closed or (self._failed and not terminal):
                return
            self._pending.append(item)
            if self._draining:
                return
            self._draining = True
        self._drain()

    def _drain(self):
        while True:
            with self._lock:
                if not self._pending or self._closed:
                    self._draining = False
                    return
                kind, payload = self._pending.popleft()

            if kind == 'update':
                try:
                    self._on_update(payload)
                except Exception:
                    logger.exception("Subscriber for couple %s raised on update", self.couple_id)
                continue

            # Terminal error: stop listening before telling the consumer
            with self._lock:
                self._pending.clear()
            self.hub._remove(self)
            if self._on_error is not None:
                try:
                    self._on_error(payload)
                except Exception:
                    logger.exception("Subscriber for couple %s raised on error", self.couple_id)


class SubscriptionHub:
    """Keeps every live subscription and pushes snapshots on change."""

    def __init__(self, snapshot_loader: Callable = message_snapshot, relay=None):
        self.snapshot_loader = snapshot_loader
        self.relay = relay
        self._lock = threading.Lock()
        self._subscriptions = defaultdict(set)
        # Load-then-deliver runs one at a time per couple, so a snapshot
        # loaded earlier is never delivered after a newer one
        self._couple_locks = defaultdict(threading.RLock)

    def subscribe(self, couple_id, on_update, on_error=None):
        """
        Start a live view of the couple's marshmallows.

        Returns the unsubscribe function. A malformed or unknown couple id
        fails right here with SubscriptionSetupFailed.
        """
        couple_id = self._validate(couple_id)
        subscription = Subscription(self, couple_id, on_update, on_error)
        with self._lock:
            self._subscriptions[couple_id].add(subscription)

        logger.debug("New subscription for couple %s", couple_id)
        if self.relay is not None:
            self.relay.start()
        self._refresh([subscription], couple_id)
        return subscription.unsubscribe

    def publish(self, couple_id):
        """Push a fresh snapshot to everyone watching this couple in this process."""
        with self._lock:
            subscriptions = list(self._subscriptions.get(couple_id, ()))
        if subscriptions:
            self._refresh(subscriptions, couple_id)

    def announce(self, couple_id):
        """
        A couple's marshmallows changed.

        With a relay, every process hears about it (this one included);
        without one, only this process's subscribers are refreshed.
        """
        if self.relay is None or not self.relay.broadcast(couple_id):
            self.publish(couple_id)

    def subscriber_count(self, couple_id):
        with self._lock:
            return len(self._subscriptions.get(couple_id, ()))

    def _validate(self, couple_id):
        if isinstance(couple_id, bool):
            raise SubscriptionSetupFailed()
        try:
            couple_id = int(couple_id)
        except (TypeError, ValueError) as exc:
            raise SubscriptionSetupFailed() from exc

        try:
            exists = couple_id > 0 and Couple.objects.filter(pk=couple_id).exists()
        except DatabaseError as exc:
            logger.exception("Failed to set up subscription for couple %s", couple_id)
            raise SubscriptionSetupFailed() from exc
        if not exists:
            raise SubscriptionSetupFailed()
        return couple_id

    def _refresh(self, subscriptions, couple_id):
        with self._lock:
            couple_lock = self._couple_locks[couple_id]

        with couple_lock:
            try:
                snapshot = self.snapshot_loader(couple_id)
            except DatabaseError:
                logger.exception("Failed to load marshmallows for couple %s", couple_id)
                for subscription in subscriptions:
                    subscription.fail(SubscriptionError())
                return

            for subscription in subscriptions:
                # Each consumer gets its own list
                subscription.push_update(list(snapshot))

    def _remove(self, subscription):
        with self._lock:
            watchers = self._subscriptions.get(subscription.couple_id)
            if watchers is None:
                return
            watchers.discard(subscription)
            if not watchers:
                del self._subscriptions[subscription.couple_id]

    # -------------------------------------------------------------------------
    # Change feed
    # -------------------------------------------------------------------------

    def on_event_created(self, sender, event, kind, **kwargs):
        if kind == EventKind.MARSHMALLOW:
            self.announce(event.couple_id)

    def on_message_read(self, sender, event, **kwargs):
        self.announce(event.couple_id)

    def connect(self):
        event_created.connect(self.on_event_created)
        message_read.connect(self.on_message_read)

    def disconnect(self):
        event_created.disconnect(self.on_event_created)
        message_read.disconnect(self.on_message_read)


hub = SubscriptionHub()
