"""
Management command to send the morning check-in and evening reminders.

Meant to run once a minute (cron / Render cron job). A user gets a
reminder when the current time in their own timezone matches the
reminder time in their settings.

Usage:
    python manage.py send_reminders
    python manage.py send_reminders --at 09:00     # Pretend it is 09:00 everywhere
    python manage.py send_reminders --dry-run      # Only list who would be reminded
"""

import logging

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from core.devices import registry
from core.events import local_today, user_timezone
from core.models import DailyCheckin, Profile, validate_time_of_day
from core.push import PushMessage, get_push_client

logger = logging.getLogger(__name__)

MORNING = 'morning'
EVENING = 'evening'


def local_time_of_day(user):
    """"HH:MM" right now in the user's own timezone."""
    return timezone.localtime(timezone=user_timezone(user)).strftime('%H:%M')


def build_reminder(kind, address, checked_in):
    if kind == MORNING:
        return PushMessage(
            to=address,
            title='Good morning! ☀️',
            body='How are you feeling today? Take a moment to check in.',
            data={'type': 'reminder', 'reminder': MORNING},
            channel_id='reminders',
        )
    body = (
        'Send your partner a marshmallow before bed 💕'
        if checked_in else
        "You haven't checked in today. How was your day?"
    )
    return PushMessage(
        to=address,
        title='Evening reminder 🌙',
        body=body,
        data={'type': 'reminder', 'reminder': EVENING},
        channel_id='reminders',
    )


class Command(BaseCommand):
    help = 'Sends reminders to users whose local reminder time is now'

    def add_arguments(self, parser):
        parser.add_argument(
            '--at',
            help='Local time to match (HH:MM) instead of the current time',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List reminders without sending them',
        )

    def handle(self, *args, **options):
        at = options.get('at')
        if at:
            try:
                validate_time_of_day(at)
            except ValidationError:
                raise CommandError(f'Invalid time "{at}". Use HH:MM (24-hour) format.')

        client = None if options['dry_run'] else get_push_client()
        sent = failed = 0

        profiles = Profile.objects.exclude(push_token='').select_related('user')
        for profile in profiles:
            user = profile.user
            now = at or local_time_of_day(user)

            if now == profile.morning_checkin_time:
                kind = MORNING
            elif now == profile.evening_reminder_time:
                kind = EVENING
            else:
                continue

            checked_in = DailyCheckin.objects.filter(author=user, date=local_today(user)).exists()
            if kind == MORNING and checked_in:
                continue

            if client is None:
                self.stdout.write(f'  - Would send {kind} reminder to {profile.name}')
                continue

            message = build_reminder(kind, profile.push_token, checked_in)
            result = client.send(message)
            if result.ok:
                sent += 1
                continue

            failed += 1
            logger.warning("%s reminder for user %s failed: %s", kind, user.pk, result.error)
            if result.device_not_registered:
                registry.forget(user, profile.push_token)

        if client is None:
            return
        style = self.style.SUCCESS if not failed else self.style.WARNING
        self.stdout.write(style(f'Sent {sent} reminder(s), {failed} failed'))
