"""Tests for the identity hand-off and profile settings."""

import pytest
from django.contrib.auth import get_user_model
from django.core import signing

from core.exceptions import IdentityRejected, InvalidEvent
from core.identity import (
    IDENTITY_SALT,
    issue_identity_token,
    sign_in,
    update_settings,
    verify_identity_token,
)
from core.models import Profile


pytestmark = pytest.mark.django_db


class TestSignIn:

    def test_first_sign_in_creates_user_with_defaults(self):
        user = sign_in('google-oauth2|123', 'Erica', 'https://example.com/erica.png')

        assert not user.has_usable_password()
        profile = Profile.objects.get(user=user)
        assert profile.display_name == 'Erica'
        assert profile.avatar_url == 'https://example.com/erica.png'
        assert profile.timezone == 'UTC'
        assert profile.morning_checkin_time == '09:00'
        assert profile.evening_reminder_time == '20:00'
        assert profile.wifi_only_sync is False
        assert profile.couple is None

    def test_returning_user_keeps_chosen_name(self):
        first = sign_in('google-oauth2|123', 'Erica')
        update_settings(first, display_name='Ricky')

        again = sign_in('google-oauth2|123', 'Erica M.', 'https://example.com/new.png')

        assert again.pk == first.pk
        assert get_user_model().objects.count() == 1
        profile = Profile.objects.get(user=again)
        assert profile.display_name == 'Ricky'
        assert profile.avatar_url == 'https://example.com/new.png'


class TestUpdateSettings:

    def test_partial_update(self, u1):
        profile = update_settings(u1, morning_checkin_time='07:30', timezone='Europe/Rome')

        assert profile.morning_checkin_time == '07:30'
        assert profile.timezone == 'Europe/Rome'
        assert profile.evening_reminder_time == '20:00'
        assert profile.display_name == 'Ana'

    def test_invalid_time(self, u1):
        with pytest.raises(InvalidEvent) as exc_info:
            update_settings(u1, evening_reminder_time='25:00')

        assert 'evening_reminder_time' in exc_info.value.errors
        assert Profile.objects.get(user=u1).evening_reminder_time == '20:00'

    def test_unknown_timezone(self, u1):
        with pytest.raises(InvalidEvent) as exc_info:
            update_settings(u1, timezone='Mars/Olympus_Mons')
        assert 'timezone' in exc_info.value.errors

    def test_unknown_setting(self, u1):
        with pytest.raises(InvalidEvent) as exc_info:
            update_settings(u1, push_token='sneaky')
        assert exc_info.value.errors == {'push_token': ['Unknown setting.']}


class TestIdentityToken:

    def test_round_trip(self):
        token = issue_identity_token('google-oauth2|123', 'Erica', 'https://example.com/e.png')

        assert verify_identity_token(token) == ('google-oauth2|123', 'Erica', 'https://example.com/e.png')

    def test_signed_but_without_identity(self, settings):
        token = signing.dumps({'display_name': 'Nobody'}, key=settings.IDENTITY_SIGNING_KEY, salt=IDENTITY_SALT)

        with pytest.raises(IdentityRejected):
            verify_identity_token(token)

    def test_tampered(self):
        token = issue_identity_token('google-oauth2|123', 'Erica')

        with pytest.raises(IdentityRejected):
            verify_identity_token(token[:-2] + 'xx')
