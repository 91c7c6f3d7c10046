"""
Marshmallows - Notification Dispatcher
======================================

Turns a newly stored event into a push notification for the partner.

Stages, per event:
1. Triggered          - `event_created` fired after the event committed
2. RecipientResolved  - the message's stored recipient, or the author's
                        partner for check-ins and memories
3. AddressResolved    - the recipient's registered device address
4. Delivered          - payload handed to the push client

A solo user (no partner) and a partner without a device are expected
states and end the pipeline quietly. A failed delivery is logged, recorded
on the receipt and reported; it is never retried here and never touches
the stored event.

The trigger is at-least-once, so a receipt is claimed per event before
sending: a second invocation for the same event sends nothing.
"""

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings
from django.db import connections
from django.utils.module_loading import import_string

from .devices import DeviceTokenRegistry
from .exceptions import DeliveryFailed, InvalidCoupleSize, NotPaired
from .models import (
    DailyCheckin,
    EventKind,
    Marshmallow,
    MarshmallowKind,
    Memory,
    NotificationReceipt,
    ReceiptStatus,
)
from .pairing import PairingDirectory, display_name
from .push import PushMessage, PushResult, get_push_client
from .signals import event_created

logger = logging.getLogger(__name__)

KIND_BY_MODEL = {
    Marshmallow: EventKind.MARSHMALLOW,
    DailyCheckin: EventKind.CHECKIN,
    Memory: EventKind.MEMORY,
}


class DispatchOutcome(enum.Enum):
    DELIVERED = 'delivered'
    NOT_PAIRED = 'not_paired'
    NO_ADDRESS = 'no_address'
    DUPLICATE = 'duplicate'
    FAILED = 'failed'


def report_delivery_failure(error):
    """Hand a DeliveryFailed (or InvalidCoupleSize) to the configured reporter."""
    path = getattr(settings, 'NOTIFICATION_FAILURE_REPORTER', None)
    if not path:
        return
    try:
        import_string(path)(error)
    except Exception:
        logger.exception("Notification failure reporter %s raised", path)


# =============================================================================
# PAYLOADS
# =============================================================================

def build_push_message(event, kind, address):
    """Kind-specific title/body plus the ids the app needs to deep-link."""
    couple_id = str(event.couple_id)

    if kind == EventKind.MARSHMALLOW:
        body = event.message
        if not body and event.kind == MarshmallowKind.PHOTO:
            body = '📷 Sent you a photo'
        return PushMessage(
            to=address,
            title=f'{display_name(event.sender)} sent you a marshmallow 🤍',
            body=body,
            data={
                'type': 'marshmallow',
                'marshmallowId': str(event.pk),
                'senderId': str(event.sender_id),
                'coupleId': couple_id,
            },
            channel_id='marshmallows',
        )

    author = display_name(event.author)
    if kind == EventKind.CHECKIN:
        return PushMessage(
            to=address,
            title=f'{author} checked in for today 💕',
            body="See how they're feeling",
            data={
                'type': 'checkin',
                'checkinId': str(event.pk),
                'userId': str(event.author_id),
                'coupleId': couple_id,
                'date': event.date.isoformat(),
            },
            channel_id='checkins',
        )

    return PushMessage(
        to=address,
        title=f'{author} added a new memory 📸',
        body=event.title,
        data={
            'type': 'memory',
            'memoryId': str(event.pk),
            'creatorId': str(event.author_id),
            'coupleId': couple_id,
        },
        channel_id='memories',
    )


# =============================================================================
# DISPATCHER
# =============================================================================

class NotificationDispatcher:

    def __init__(self, directory=None, registry=None, push_client=None, reporter=None, workers=None):
        self.directory = directory or PairingDirectory()
        self.registry = registry or DeviceTokenRegistry()
        self._push_client = push_client
        self.reporter = reporter or report_delivery_failure
        self._workers = workers
        self._executor = None
        self._lock = threading.Lock()

    @property
    def push_client(self):
        return self._push_client or get_push_client()

    @property
    def workers(self):
        if self._workers is not None:
            return self._workers
        return getattr(settings, 'NOTIFICATION_WORKERS', 0)

    def connect(self):
        event_created.connect(self.on_event_created)

    def disconnect(self):
        event_created.disconnect(self.on_event_created)

    def on_event_created(self, sender, event, kind=None, **kwargs):
        """
        Dispatch on a worker thread so the writer's response never waits
        on the push service. With no workers configured, dispatch inline.
        """
        if not self.workers:
            return self.dispatch(event, kind)
        return self._get_executor().submit(self._dispatch_in_worker, event, kind)

    def shutdown(self, wait=True):
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def _get_executor(self):
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.workers, thread_name_prefix='marshmallows-push',
                )
            return self._executor

    def _dispatch_in_worker(self, event, kind):
        try:
            return self.dispatch(event, kind)
        except Exception:
            logger.exception("Dispatch crashed for %s %s", kind, event.pk)
            return DispatchOutcome.FAILED
        finally:
            # Worker threads hold their own connections
            connections.close_all()

    def resolve_recipient(self, event, kind):
        if kind == EventKind.MARSHMALLOW:
            return event.recipient
        return self.directory.resolve_partner(event.author_id)

    def dispatch(self, event, kind=None):
        kind = kind or KIND_BY_MODEL[type(event)]

        try:
            recipient = self.resolve_recipient(event, kind)
        except NotPaired:
            logger.debug("No partner to notify for %s %s", kind, event.pk)
            return DispatchOutcome.NOT_PAIRED
        except InvalidCoupleSize as exc:
            logger.critical("Cannot notify for %s %s: %s", kind, event.pk, exc.message)
            self.reporter(exc)
            return DispatchOutcome.FAILED

        address = self.registry.lookup(recipient)
        if not address:
            logger.debug("User %s has no device registered", recipient.pk)
            return DispatchOutcome.NO_ADDRESS

        receipt, created = NotificationReceipt.objects.get_or_create(
            event_kind=kind,
            event_id=event.pk,
            defaults={'recipient': recipient},
        )
        if not created:
            logger.info("Push for %s %s already handled (%s)", kind, event.pk, receipt.status)
            return DispatchOutcome.DUPLICATE

        message = build_push_message(event, kind, address)
        try:
            result = self.push_client.send(message)
        except Exception as exc:
            # The client contract is to return a result; treat a raise the same way
            logger.exception("Push client raised for %s %s", kind, event.pk)
            result = PushResult(ok=False, error=str(exc) or type(exc).__name__)

        if result.ok:
            receipt.status = ReceiptStatus.SENT
            receipt.save(update_fields=['status', 'updated_at'])
            logger.info("Delivered push for %s %s to user %s", kind, event.pk, recipient.pk)
            return DispatchOutcome.DELIVERED

        receipt.status = ReceiptStatus.FAILED
        receipt.error = result.error
        receipt.save(update_fields=['status', 'error', 'updated_at'])

        failure = DeliveryFailed(kind, event.pk, result.error)
        logger.error(failure.message)
        self.reporter(failure)

        if result.device_not_registered:
            self.registry.forget(recipient, address)
        return DispatchOutcome.FAILED


dispatcher = NotificationDispatcher()
