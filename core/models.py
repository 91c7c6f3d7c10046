"""
Marshmallows - Data Models
==========================

Every event (marshmallow, check-in, memory) belongs to exactly one Couple.
A Couple pairs exactly two users; nothing is ever shared across couples.

Collections:
- Profile: per-user settings, owning couple, current device address
- Couple: the pairing itself plus the invite code used to complete it
- Marshmallow: small messages sent from one partner to the other
- DailyCheckin: one mood/gratitude record per author per day
- Memory: titled, dated records with photo/video references and tags
- QuickPick: immutable message templates (not couple-scoped)
- NotificationReceipt: one row per event that triggered a push
"""

import re
import secrets

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

TIME_OF_DAY_RE = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def validate_time_of_day(value):
    """Reminder times are stored as 24-hour "HH:MM" strings."""
    if not TIME_OF_DAY_RE.match(value or ''):
        raise ValidationError('Use HH:MM (24-hour) format.', code='invalid_time')


class Profile(models.Model):
    """
    Extends Django's User with the fields the app needs.

    Created automatically when a User is created via signals.
    """
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile'
    )

    # Display
    display_name = models.CharField(
        max_length=50,
        blank=True,
        help_text="Name shown to your partner (defaults to username)"
    )
    avatar_url = models.URLField(
        max_length=500,
        blank=True,
        default='',
        help_text="Avatar reference supplied by the identity provider"
    )

    # Set once: by creating a couple or by joining one with an invite code
    couple = models.ForeignKey(
        'Couple',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='profiles',
        help_text="The couple this user belongs to"
    )

    # Push delivery (last registered device wins)
    push_token = models.CharField(
        max_length=255,
        blank=True,
        default='',
        help_text="Device address for push notifications"
    )
    push_token_updated_at = models.DateTimeField(null=True, blank=True)

    # Settings
    timezone = models.CharField(
        max_length=50,
        default='UTC',
        help_text="For working out the correct 'today' for check-ins"
    )
    morning_checkin_time = models.CharField(
        max_length=5,
        default='09:00',
        validators=[validate_time_of_day],
        help_text="Local time for the morning check-in reminder (HH:MM)"
    )
    evening_reminder_time = models.CharField(
        max_length=5,
        default='20:00',
        validators=[validate_time_of_day],
        help_text="Local time for the evening reminder (HH:MM)"
    )
    wifi_only_sync = models.BooleanField(
        default=False,
        help_text="Only sync photos and videos on Wi-Fi"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Profile: {self.user.username}"

    @property
    def name(self):
        """Returns display_name if set, otherwise username."""
        return self.display_name or self.user.username


class Couple(models.Model):
    """
    Pairs two users together as a couple.

    user2 stays empty until the partner joins with the invite code; until
    then the couple is "waiting for partner" and nobody can be notified.
    There is no way to remove a member or add a third one.
    """
    user1 = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='couple_as_user1'
    )
    user2 = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='couple_as_user2',
        null=True,
        blank=True,
        help_text="Empty until the partner joins with the invite code"
    )

    # Invite system
    invite_code = models.CharField(
        max_length=20,
        unique=True,
        blank=True,
        help_text="Share this code with your partner to join"
    )
    expected_partner = models.CharField(
        max_length=150,
        blank=True,
        default='',
        help_text="Username allowed to join (blank: anyone with the code)"
    )

    member_names = models.JSONField(
        default=dict,
        blank=True,
        help_text="Display names keyed by user id"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Couple'
        verbose_name_plural = 'Couples'
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(user1=models.F('user2')),
                name='couple_members_distinct'
            )
        ]

    def __str__(self):
        if self.user2:
            return f"{self.user1.username} & {self.user2.username}"
        return f"{self.user1.username} (waiting for partner)"

    def save(self, *args, **kwargs):
        # Auto-generate invite code if not set
        if not self.invite_code:
            self.invite_code = secrets.token_urlsafe(8)
        super().save(*args, **kwargs)

    @property
    def member_ids(self):
        """Stored membership as a list of user ids (may be short while waiting)."""
        return [user_id for user_id in (self.user1_id, self.user2_id) if user_id is not None]

    @property
    def is_paired(self):
        return self.user2_id is not None


class MarshmallowKind(models.TextChoices):
    CUSTOM = 'custom', 'Custom message'
    QUICK_PICK = 'quick-pick', 'Quick pick'
    PHOTO = 'photo', 'Photo'


class Marshmallow(models.Model):
    """
    A single affection signal from one partner to the other.

    Append-only: the only field that ever changes after creation is `read`,
    and it only ever goes from False to True.
    """
    couple = models.ForeignKey(
        Couple,
        on_delete=models.CASCADE,
        related_name='marshmallows'
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sent_marshmallows'
    )
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='received_marshmallows'
    )
    message = models.TextField(blank=True, default='')
    kind = models.CharField(
        max_length=20,
        choices=MarshmallowKind.choices,
        default=MarshmallowKind.CUSTOM
    )
    quick_pick = models.ForeignKey(
        'QuickPick',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='marshmallows'
    )
    photo_url = models.URLField(max_length=500, blank=True, default='')

    # Assigned by the event store, never by the client
    created_at = models.DateTimeField(default=timezone.now, editable=False, db_index=True)
    read = models.BooleanField(default=False)

    class Meta:
        ordering = ['-created_at', '-id']
        verbose_name = 'Marshmallow'
        verbose_name_plural = 'Marshmallows'
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(sender=models.F('recipient')),
                name='marshmallow_sender_not_recipient'
            )
        ]
        indexes = [
            models.Index(fields=['couple', 'created_at'], name='marsh_couple_created_idx'),
        ]

    def __str__(self):
        return f"{self.sender} -> {self.recipient} ({self.kind})"


class Mood(models.TextChoices):
    """Predefined moods. Check-ins may also carry any free-form mood."""
    HAPPY = 'happy', 'Happy'
    LOVING = 'loving', 'Loving'
    STRESSED = 'stressed', 'Stressed'
    EXCITED = 'excited', 'Excited'
    PEACEFUL = 'peaceful', 'Peaceful'
    DOWN = 'down', 'Down'


MOOD_EMOJI = {
    Mood.HAPPY: '😊',
    Mood.LOVING: '💕',
    Mood.STRESSED: '😰',
    Mood.EXCITED: '✨',
    Mood.PEACEFUL: '😌',
    Mood.DOWN: '😔',
}


class DailyCheckin(models.Model):
    """
    Once-per-day mood and gratitude record.

    A second check-in by the same author for the same date is rejected,
    backed by the unique constraint below.
    """
    couple = models.ForeignKey(
        Couple,
        on_delete=models.CASCADE,
        related_name='checkins'
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='checkins'
    )
    date = models.DateField(help_text="Calendar date in the author's timezone")
    mood = models.CharField(
        max_length=50,
        help_text="One of the predefined moods or any custom word"
    )
    mood_note = models.TextField(blank=True, default='')
    gratitude = models.TextField()

    created_at = models.DateTimeField(default=timezone.now, editable=False, db_index=True)

    class Meta:
        ordering = ['-date', '-created_at']
        verbose_name = 'Daily check-in'
        verbose_name_plural = 'Daily check-ins'
        constraints = [
            models.UniqueConstraint(
                fields=['couple', 'author', 'date'],
                name='unique_checkin_per_author_per_day'
            )
        ]

    def __str__(self):
        return f"{self.author} - {self.date} ({self.mood})"

    @property
    def mood_emoji(self):
        return MOOD_EMOJI.get(self.mood, '')


class MemorySource(models.TextChoices):
    MANUAL = 'manual', 'Manually entered'
    SUGGESTED = 'suggested', 'Suggested'
    DEVICE = 'device', 'Imported from device'


class Memory(models.Model):
    """A titled, dated record with attached photo/video references and tags."""
    couple = models.ForeignKey(
        Couple,
        on_delete=models.CASCADE,
        related_name='memories'
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='memories'
    )
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    photo_urls = models.JSONField(default=list, blank=True)
    video_urls = models.JSONField(default=list, blank=True)
    tags = models.JSONField(default=list, blank=True)
    date = models.DateField(help_text="When the memory happened")
    source = models.CharField(
        max_length=20,
        choices=MemorySource.choices,
        default=MemorySource.MANUAL
    )

    created_at = models.DateTimeField(default=timezone.now, editable=False, db_index=True)

    class Meta:
        ordering = ['-date', '-created_at']
        verbose_name = 'Memory'
        verbose_name_plural = 'Memories'

    def __str__(self):
        return f"{self.title} ({self.date})"


class QuickPickCategory(models.TextChoices):
    SWEET = 'sweet', 'Sweet'
    PLAYFUL = 'playful', 'Playful'
    LOVING = 'loving', 'Loving'


class QuickPick(models.Model):
    """Preset message a sender can pick instead of typing. Reference data."""
    message = models.CharField(max_length=200)
    emoji = models.CharField(max_length=16, blank=True, default='')
    category = models.CharField(
        max_length=20,
        choices=QuickPickCategory.choices,
        db_index=True
    )
    order = models.PositiveIntegerField(default=0, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['order', 'id']
        verbose_name = 'Quick pick'
        verbose_name_plural = 'Quick picks'

    def __str__(self):
        return f"{self.emoji} {self.message}".strip()


class EventKind(models.TextChoices):
    MARSHMALLOW = 'marshmallow', 'Marshmallow'
    CHECKIN = 'checkin', 'Check-in'
    MEMORY = 'memory', 'Memory'


class ReceiptStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    SENT = 'sent', 'Sent'
    FAILED = 'failed', 'Failed'


class NotificationReceipt(models.Model):
    """
    Claimed by the dispatcher before a push is sent.

    Uniqueness on (event_kind, event_id) turns a duplicate trigger for the
    same event into a no-op. Failed rows are the operational record of
    deliveries that did not go out; they are never retried automatically.
    """
    event_kind = models.CharField(max_length=20, choices=EventKind.choices)
    event_id = models.PositiveBigIntegerField()
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notification_receipts'
    )
    status = models.CharField(
        max_length=20,
        choices=ReceiptStatus.choices,
        default=ReceiptStatus.PENDING,
        db_index=True
    )
    error = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['event_kind', 'event_id'],
                name='unique_receipt_per_event'
            )
        ]

    def __str__(self):
        return f"{self.event_kind}#{self.event_id}: {self.status}"
