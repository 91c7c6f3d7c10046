"""
Marshmallows - Signals

Auto-create Profile when a User is created.

The event store announces its writes through the two signals below; the
live subscription hub and the notification dispatcher register themselves
as receivers in CoreConfig.ready(). Both are sent only after the write's
transaction has committed.
"""

from django.contrib.auth import get_user_model
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from .models import Profile

User = get_user_model()

# kwargs: event (the saved model instance), kind (EventKind value)
event_created = Signal()

# kwargs: event (the Marshmallow that was just marked read)
message_read = Signal()


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    """Create a Profile automatically when a new User is created."""
    if created:
        Profile.objects.get_or_create(user=instance)
