"""
Management command to wipe user data from a test or staging database.

Deletes users (except staff), couples, marshmallows, check-ins, memories
and notification receipts. Quick picks are reference data and are kept.

Usage:
    python manage.py cleanup_test_data        # Asks for confirmation
    python manage.py cleanup_test_data --yes  # No prompt
"""

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from core.models import Couple, DailyCheckin, Marshmallow, Memory, NotificationReceipt

User = get_user_model()


class Command(BaseCommand):
    help = 'Deletes all non-staff users and every couple and event'

    def add_arguments(self, parser):
        parser.add_argument(
            '--yes',
            action='store_true',
            help='Do not ask for confirmation',
        )

    def handle(self, *args, **options):
        if not options['yes']:
            answer = input('This deletes all user data. Type "yes" to continue: ')
            if answer.strip().lower() != 'yes':
                self.stdout.write(self.style.WARNING('Cleanup cancelled'))
                return

        self.stdout.write('Cleaning up test data...')

        # Children first so nothing is left pointing at a deleted couple
        steps = [
            ('notification receipt(s)', NotificationReceipt.objects.all()),
            ('marshmallow(s)', Marshmallow.objects.all()),
            ('check-in(s)', DailyCheckin.objects.all()),
            ('memories', Memory.objects.all()),
            ('couple(s)', Couple.objects.all()),
            ('user(s)', User.objects.filter(is_staff=False, is_superuser=False)),
        ]

        with transaction.atomic():
            for label, queryset in steps:
                count = queryset.count()
                queryset.delete()
                self.stdout.write(f'  - Deleted {count} {label}')

        self.stdout.write(self.style.SUCCESS('Cleanup complete!'))
