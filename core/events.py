"""
Marshmallows - Event Store
==========================

Append-only, per-couple collections of marshmallows, check-ins and
memories. The only mutation after creation is a marshmallow's read flag.

Write path:
1. Validate the payload with the matching form (nothing malformed is saved)
2. Stamp the event with a server-assigned, strictly increasing timestamp
3. Save it in its own transaction
4. After commit, announce it on `event_created` (live subscribers and the
   notification dispatcher listen there)

Writes fail with a stable, user-readable message per operation so the UI
can offer a retry without guessing the cause.
"""

import logging
import random
import threading
from datetime import timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from .exceptions import CheckinAlreadyExists, InvalidEvent, NotFound, StoreWriteFailed
from .forms import CheckinForm, MarshmallowForm, MemoryForm
from .models import (
    DailyCheckin,
    EventKind,
    Marshmallow,
    MarshmallowKind,
    Memory,
    MemorySource,
    Profile,
    QuickPick,
)
from .pairing import PairingDirectory, user_id_of
from .signals import event_created, message_read

logger = logging.getLogger(__name__)


class ServerClock:
    """Hands out strictly increasing timestamps within this process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last = None

    def now(self):
        with self._lock:
            now = timezone.now()
            if self._last is not None and now <= self._last:
                now = self._last + timedelta(microseconds=1)
            self._last = now
            return now


def user_timezone(user):
    name = Profile.objects.filter(user_id=user_id_of(user)).values_list('timezone', flat=True).first()
    try:
        return ZoneInfo(name or 'UTC')
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo('UTC')


def local_today(user):
    """Today's date in the user's own timezone."""
    return timezone.localdate(timezone=user_timezone(user))


def form_errors(form):
    return {field: [str(error) for error in errors] for field, errors in form.errors.items()}


def _announce(signal, event, **kwargs):
    """Send `signal` for `event` once the surrounding transaction commits."""

    def send():
        for receiver, response in signal.send_robust(sender=type(event), event=event, **kwargs):
            if isinstance(response, Exception):
                logger.error(
                    "Signal receiver %r failed for %s %s",
                    receiver, type(event).__name__, event.pk, exc_info=response,
                )

    transaction.on_commit(send)


class EventStore:

    def __init__(self, directory=None, clock=None):
        self.directory = directory or PairingDirectory()
        self.clock = clock or ServerClock()

    def _persist(self, event, failure_message):
        event.created_at = self.clock.now()
        try:
            with transaction.atomic():
                event.save()
        except DatabaseError as exc:
            logger.exception("Failed to store %s", type(event).__name__)
            raise StoreWriteFailed(failure_message) from exc

    # =========================================================================
    # MARSHMALLOWS
    # =========================================================================

    def append_marshmallow(self, sender, message='', kind=MarshmallowKind.CUSTOM,
                           recipient=None, quick_pick=None, photo_url=''):
        """
        Send a marshmallow to the sender's partner. Returns the new id.

        The recipient is always the other member of the sender's couple;
        passing anyone else (including the sender) is rejected.
        """
        couple, partner = self.directory.resolve(sender)

        if recipient is not None and str(user_id_of(recipient)) != str(partner.pk):
            raise InvalidEvent(
                'Marshmallows can only be sent to your partner.',
                errors={'recipient': ['Recipient must be your partner.']},
            )

        form = MarshmallowForm(data={
            'message': message,
            'kind': kind,
            'quick_pick': getattr(quick_pick, 'pk', quick_pick),
            'photo_url': photo_url or '',
        })
        if not form.is_valid():
            raise InvalidEvent('Invalid marshmallow.', errors=form_errors(form))

        event = form.save(commit=False)
        event.couple = couple
        event.sender_id = user_id_of(sender)
        event.recipient = partner
        event.read = False
        self._persist(event, 'Failed to send marshmallow. Please try again.')

        logger.info("Stored marshmallow %s (%s) in couple %s", event.pk, event.kind, couple.pk)
        _announce(event_created, event, kind=EventKind.MARSHMALLOW)
        return event.pk

    def mark_marshmallow_read(self, marshmallow_id, reader=None):
        """
        Set the read flag. Marking an already-read marshmallow succeeds
        without changing anything.
        """
        changed = False
        try:
            with transaction.atomic():
                event = (
                    Marshmallow.objects.select_for_update()
                    .filter(pk=marshmallow_id)
                    .first()
                )
                if event is None or (
                    reader is not None and user_id_of(reader) not in event.couple.member_ids
                ):
                    raise NotFound('Marshmallow', marshmallow_id)
                if not event.read:
                    event.read = True
                    event.save(update_fields=['read'])
                    changed = True
        except (ValueError, TypeError) as exc:
            raise NotFound('Marshmallow', marshmallow_id) from exc
        except DatabaseError as exc:
            logger.exception("Failed to mark marshmallow %s as read", marshmallow_id)
            raise StoreWriteFailed('Failed to mark marshmallow as read. Please try again.') from exc

        if changed:
            _announce(message_read, event)
        return event

    # =========================================================================
    # DAILY CHECK-INS
    # =========================================================================

    def append_checkin(self, author, mood, gratitude, mood_note='', date=None):
        """
        Record the author's check-in for `date` (default: their today).

        One check-in per author per date: a second one is rejected with
        CheckinAlreadyExists and the first is left untouched.
        """
        couple = self.directory.couple_for(author)
        date = date or local_today(author)

        form = CheckinForm(data={
            'mood': mood,
            'mood_note': mood_note or '',
            'gratitude': gratitude,
            'date': date,
        })
        if not form.is_valid():
            raise InvalidEvent('Invalid check-in.', errors=form_errors(form))

        checkin = form.save(commit=False)
        checkin.couple = couple
        checkin.author_id = user_id_of(author)

        if DailyCheckin.objects.filter(
            couple=couple, author_id=checkin.author_id, date=checkin.date
        ).exists():
            raise CheckinAlreadyExists(checkin.date)

        try:
            self._persist(checkin, 'Failed to create daily check-in. Please try again.')
        except StoreWriteFailed as exc:
            # Lost a race with a concurrent check-in for the same date
            if isinstance(exc.__cause__, IntegrityError):
                raise CheckinAlreadyExists(checkin.date) from exc.__cause__
            raise

        logger.info("Stored check-in %s for %s in couple %s", checkin.pk, checkin.date, couple.pk)
        _announce(event_created, checkin, kind=EventKind.CHECKIN)
        return checkin.pk

    def todays_checkin(self, user):
        return DailyCheckin.objects.filter(
            author_id=user_id_of(user), date=local_today(user)
        ).first()

    def partner_todays_checkin(self, user):
        """The partner's check-in for the partner's own today, if any."""
        partner = self.directory.resolve_partner(user)
        return DailyCheckin.objects.filter(
            author=partner, date=local_today(partner)
        ).first()

    def checkin_streak(self, user, today=None):
        """Consecutive days checked in, ending today."""
        today = today or local_today(user)
        dates = set(
            DailyCheckin.objects.filter(
                author_id=user_id_of(user), date__lte=today
            ).values_list('date', flat=True)
        )

        streak = 0
        day = today
        while day in dates:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def checkin_history(self, user, limit=30):
        return list(
            DailyCheckin.objects.filter(author_id=user_id_of(user)).order_by('-date')[:limit]
        )

    # =========================================================================
    # MEMORIES
    # =========================================================================

    def append_memory(self, author, title, date, description='', photo_urls=None,
                      video_urls=None, tags=None, source=MemorySource.MANUAL):
        couple = self.directory.couple_for(author)

        form = MemoryForm(data={
            'title': title,
            'description': description or '',
            'photo_urls': list(photo_urls or []),
            'video_urls': list(video_urls or []),
            'tags': list(tags or []),
            'date': date,
            'source': source,
        })
        if not form.is_valid():
            raise InvalidEvent('Invalid memory.', errors=form_errors(form))

        memory = form.save(commit=False)
        memory.couple = couple
        memory.author_id = user_id_of(author)
        self._persist(memory, 'Failed to create memory. Please try again.')

        logger.info("Stored memory %s in couple %s", memory.pk, couple.pk)
        _announce(event_created, memory, kind=EventKind.MEMORY)
        return memory.pk

    def memories_for_couple(self, couple, limit=50):
        return list(Memory.objects.filter(couple=couple).order_by('-date', '-created_at')[:limit])

    def memories_by_tag(self, couple, tag):
        tag = tag.strip().lower()
        return [
            memory for memory in Memory.objects.filter(couple=couple).order_by('-date', '-created_at')
            if tag in (t.lower() for t in memory.tags)
        ]

    def random_memory(self, couple):
        ids = list(Memory.objects.filter(couple=couple).values_list('pk', flat=True))
        if not ids:
            return None
        return Memory.objects.get(pk=random.choice(ids))


def quick_picks(category=None):
    """Preset messages in display order, optionally for one category."""
    qs = QuickPick.objects.all()
    if category:
        qs = qs.filter(category=category)
    return list(qs.order_by('order', 'id'))


store = EventStore()
