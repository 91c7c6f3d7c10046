"""
Management command to seed the database with the default quick picks.

Usage:
    python manage.py seed_quick_picks
    python manage.py seed_quick_picks --clear  # Clear existing quick picks first
"""

from django.core.management.base import BaseCommand
from django.db.models import ProtectedError
from core.models import QuickPick, QuickPickCategory


class Command(BaseCommand):
    help = 'Seeds the database with the preset quick pick marshmallows'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear all existing quick picks before seeding',
        )

    def handle(self, *args, **options):
        if options['clear']:
            try:
                deleted_count = QuickPick.objects.all().delete()[0]
            except ProtectedError:
                self.stdout.write(self.style.ERROR(
                    'Quick picks are referenced by sent marshmallows and cannot be cleared'
                ))
                return
            self.stdout.write(self.style.WARNING(f'Deleted {deleted_count} existing quick picks'))

        created_count = 0
        for pick in self.get_quick_pick_data():
            _, created = QuickPick.objects.get_or_create(
                message=pick['message'],
                defaults={
                    'emoji': pick['emoji'],
                    'category': pick['category'],
                    'order': pick['order'],
                }
            )
            if created:
                created_count += 1

        self.stdout.write(self.style.SUCCESS(
            f'Successfully seeded {created_count} new quick picks (total: {QuickPick.objects.count()})'
        ))

    def get_quick_pick_data(self):
        """Return list of quick pick data dictionaries, in display order."""
        picks = [
            ('Thinking of you', '💭', QuickPickCategory.SWEET),
            ('I love you', '❤️', QuickPickCategory.LOVING),
            ('Miss you', '🥺', QuickPickCategory.SWEET),
            ("You're amazing", '✨', QuickPickCategory.LOVING),
            ("Can't wait to see you", '😍', QuickPickCategory.PLAYFUL),
            ('You make me smile', '😊', QuickPickCategory.SWEET),
            ('Grateful for you', '🙏', QuickPickCategory.LOVING),
            ("You're my favorite", '💖', QuickPickCategory.PLAYFUL),
            ('Sending you a hug', '🤗', QuickPickCategory.SWEET),
            ("You're beautiful", '🌸', QuickPickCategory.LOVING),
        ]

        return [
            {'message': message, 'emoji': emoji, 'category': category, 'order': i}
            for i, (message, emoji, category) in enumerate(picks, start=1)
        ]
