"""
Marshmallows - Forms

Incoming payloads are loosely typed; these forms turn them into the strict
entities before anything reaches the database. Server-owned fields
(couple, author, timestamps, read flag) are never accepted from clients.
"""

from zoneinfo import available_timezones

from django import forms
from django.core.validators import URLValidator

from .models import DailyCheckin, Marshmallow, MarshmallowKind, Memory, Profile

url_validator = URLValidator(schemes=['http', 'https'])


class MarshmallowForm(forms.ModelForm):
    """Validates the kind-specific shape of a marshmallow."""

    class Meta:
        model = Marshmallow
        fields = ['message', 'kind', 'quick_pick', 'photo_url']

    def clean_message(self):
        return (self.cleaned_data.get('message') or '').strip()

    def clean(self):
        cleaned = super().clean()
        kind = cleaned.get('kind')
        message = cleaned.get('message', '')
        quick_pick = cleaned.get('quick_pick')
        photo_url = cleaned.get('photo_url', '')

        if kind == MarshmallowKind.CUSTOM and not message:
            self.add_error('message', 'Write a message to send.')

        if kind == MarshmallowKind.QUICK_PICK:
            if quick_pick is None:
                if 'quick_pick' not in self.errors:
                    self.add_error('quick_pick', 'Quick pick marshmallows need a quick pick.')
            elif not message:
                cleaned['message'] = quick_pick.message
        elif quick_pick is not None:
            self.add_error('quick_pick', 'Only quick pick marshmallows can reference a quick pick.')

        if kind == MarshmallowKind.PHOTO:
            if not photo_url and 'photo_url' not in self.errors:
                self.add_error('photo_url', 'Photo marshmallows need a photo.')
        elif photo_url:
            self.add_error('photo_url', 'Only photo marshmallows can carry a photo.')

        return cleaned


class CheckinForm(forms.ModelForm):

    class Meta:
        model = DailyCheckin
        fields = ['mood', 'mood_note', 'gratitude', 'date']

    def clean_mood(self):
        mood = (self.cleaned_data.get('mood') or '').strip()
        if not mood:
            raise forms.ValidationError('Pick a mood.')
        return mood

    def clean_gratitude(self):
        gratitude = (self.cleaned_data.get('gratitude') or '').strip()
        if not gratitude:
            raise forms.ValidationError('Share one thing you are grateful for.')
        return gratitude


class MemoryForm(forms.ModelForm):

    class Meta:
        model = Memory
        fields = ['title', 'description', 'photo_urls', 'video_urls', 'tags', 'date', 'source']

    def _clean_url_list(self, field):
        value = self.cleaned_data.get(field) or []
        if not isinstance(value, list):
            raise forms.ValidationError('Expected a list of URLs.')
        for url in value:
            if not isinstance(url, str):
                raise forms.ValidationError('Expected a list of URLs.')
            url_validator(url)
        return value

    def clean_photo_urls(self):
        return self._clean_url_list('photo_urls')

    def clean_video_urls(self):
        return self._clean_url_list('video_urls')

    def clean_tags(self):
        value = self.cleaned_data.get('tags') or []
        if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
            raise forms.ValidationError('Expected a list of tags.')
        return [tag.strip() for tag in value if tag.strip()]

    def clean_title(self):
        title = (self.cleaned_data.get('title') or '').strip()
        if not title:
            raise forms.ValidationError('Give this memory a title.')
        return title


class ProfileSettingsForm(forms.ModelForm):
    """Form for editing user profile settings."""

    class Meta:
        model = Profile
        fields = [
            'display_name',
            'timezone',
            'morning_checkin_time',
            'evening_reminder_time',
            'wifi_only_sync',
        ]

    def clean_timezone(self):
        tz = self.cleaned_data.get('timezone')
        if tz not in available_timezones():
            raise forms.ValidationError('Unknown timezone.')
        return tz
