"""Pytest configuration and shared fixtures."""

import pytest
from django.contrib.auth import get_user_model

from core import push
from core.models import Profile
from core.pairing import directory
from core.subscriptions import hub


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture(autouse=True)
def test_settings(settings):
    """Keep tests off the network and off HTTPS redirects; pushes go out inline."""
    settings.SECURE_SSL_REDIRECT = False
    settings.PUSH_CLIENT = 'core.push.LocmemPushClient'
    settings.NOTIFICATION_FAILURE_REPORTER = ''
    settings.SUBSCRIPTION_HEARTBEAT_SECONDS = 0.05
    settings.NOTIFICATION_WORKERS = 0
    settings.IDENTITY_SIGNING_KEY = 'test-identity-key'
    settings.IDENTITY_TOKEN_MAX_AGE = 300
    settings.STORAGES = {
        **settings.STORAGES,
        'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
    }
    return settings


@pytest.fixture(autouse=True)
def local_change_feed(monkeypatch):
    """Live updates stay in this process (no Redis)."""
    monkeypatch.setattr(hub, 'relay', None)


@pytest.fixture(autouse=True)
def outbox():
    """Messages handed to the in-memory push client."""
    push.outbox.clear()
    yield push.outbox
    push.outbox.clear()


# ============================================================================
# Users and couples
# ============================================================================

@pytest.fixture
def make_user(db):
    """Create a user (profile comes from the post_save signal)."""
    User = get_user_model()

    def make(username, push_token='', **profile):
        user = User.objects.create_user(username=username, password='marshmallow-pw-123')
        if push_token:
            profile['push_token'] = push_token
        if profile:
            Profile.objects.filter(user=user).update(**profile)
        return User.objects.select_related('profile').get(pk=user.pk)

    return make


@pytest.fixture
def u1(make_user):
    return make_user('ana', display_name='Ana')


@pytest.fixture
def u2(make_user):
    return make_user('ben', display_name='Ben')


@pytest.fixture
def couple(u1, u2):
    """A complete couple: u1 created it, u2 joined with the invite code."""
    created = directory.create_couple(u1)
    directory.join_couple(u2, created.invite_code)
    created.refresh_from_db()
    return created


@pytest.fixture
def waiting_couple(u1):
    """u1's couple before the partner has joined."""
    return directory.create_couple(u1)
