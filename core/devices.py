"""
Marshmallows - Device Token Registry

One device address per user. Registering again overwrites the previous
address; no history is kept. An empty address means nothing to deliver to.
"""

import logging

from django.db import DatabaseError
from django.utils import timezone

from .exceptions import InvalidEvent, NotFound, StoreWriteFailed
from .models import Profile
from .pairing import user_id_of

logger = logging.getLogger(__name__)


class DeviceTokenRegistry:

    def register(self, user, address):
        """Upsert the user's device address (last registered device wins)."""
        address = (address or '').strip()
        if not address:
            raise InvalidEvent('A device address is required.', errors={'token': ['This field is required.']})

        uid = user_id_of(user)
        try:
            updated = Profile.objects.filter(user_id=uid).update(
                push_token=address,
                push_token_updated_at=timezone.now(),
            )
        except DatabaseError as exc:
            logger.exception("Failed to register push token for user %s", uid)
            raise StoreWriteFailed('Failed to register push token. Please try again.') from exc

        if not updated:
            raise NotFound('User', uid)
        logger.info("Registered push token for user %s", uid)

    def lookup(self, user):
        """The user's current device address, or None."""
        token = Profile.objects.filter(user_id=user_id_of(user)).values_list('push_token', flat=True).first()
        return token or None

    def forget(self, user, address):
        """
        Drop an address the push service reported as unregistered.

        Only clears it if it is still the current one, so a newer
        registration is never lost.
        """
        uid = user_id_of(user)
        cleared = Profile.objects.filter(user_id=uid, push_token=address).update(
            push_token='',
            push_token_updated_at=timezone.now(),
        )
        if cleared:
            logger.info("Cleared unregistered push token for user %s", uid)
        return bool(cleared)


registry = DeviceTokenRegistry()
