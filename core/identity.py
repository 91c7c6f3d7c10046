"""
Marshmallows - Identity hand-off

Sign-in happens elsewhere. The sign-in service signs the verified
(identity, display name, avatar) triple it produces with a shared key;
this module checks that signature and makes sure a user and profile
exist for the identity.
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core import signing

from .events import form_errors
from .exceptions import IdentityRejected, InvalidEvent
from .forms import ProfileSettingsForm
from .models import Profile

logger = logging.getLogger(__name__)

User = get_user_model()

IDENTITY_SALT = 'marshmallows.identity'


def issue_identity_token(identity, display_name, avatar_url=None):
    """Sign a verified identity (used by the sign-in service)."""
    return signing.dumps(
        {'identity': identity, 'display_name': display_name, 'avatar_url': avatar_url},
        key=settings.IDENTITY_SIGNING_KEY,
        salt=IDENTITY_SALT,
    )


def verify_identity_token(token):
    """Return (identity, display_name, avatar_url) from a signed hand-off."""
    if not token or not isinstance(token, str):
        raise IdentityRejected('Sign-in could not be verified.')
    try:
        claims = signing.loads(
            token,
            key=settings.IDENTITY_SIGNING_KEY,
            salt=IDENTITY_SALT,
            max_age=settings.IDENTITY_TOKEN_MAX_AGE,
        )
    except signing.SignatureExpired as exc:
        raise IdentityRejected() from exc
    except signing.BadSignature as exc:
        logger.warning("Rejected identity hand-off with a bad signature")
        raise IdentityRejected('Sign-in could not be verified.') from exc

    identity = claims.get('identity') if isinstance(claims, dict) else None
    if not identity or not isinstance(identity, str) or len(identity) > 150:
        raise IdentityRejected('Sign-in could not be verified.')
    return identity, claims.get('display_name') or '', claims.get('avatar_url')


def sign_in(identity, display_name, avatar_url=None):
    """Get or create the user for a verified identity. Returns the User."""
    user, created = User.objects.get_or_create(username=identity)
    if created:
        user.set_unusable_password()
        user.save(update_fields=['password'])
        logger.info("Created user %s on first sign-in", user.pk)

    profile, _ = Profile.objects.get_or_create(user=user)
    update_fields = []
    if not profile.display_name and display_name:
        profile.display_name = display_name[:50]
        update_fields.append('display_name')
    if avatar_url and avatar_url != profile.avatar_url:
        profile.avatar_url = avatar_url
        update_fields.append('avatar_url')
    if update_fields:
        profile.save(update_fields=update_fields)

    return user


def update_settings(user, **changes):
    """Apply a partial settings update. Unknown or invalid values are rejected."""
    profile = Profile.objects.get(user=user)
    fields = ProfileSettingsForm._meta.fields
    unknown = set(changes) - set(fields)
    if unknown:
        raise InvalidEvent(
            'Invalid settings.',
            errors={name: ['Unknown setting.'] for name in sorted(unknown)},
        )

    data = {name: getattr(profile, name) for name in fields}
    data.update(changes)
    form = ProfileSettingsForm(data=data, instance=profile)
    if not form.is_valid():
        raise InvalidEvent('Invalid settings.', errors=form_errors(form))
    return form.save()
