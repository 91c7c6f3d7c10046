"""
Marshmallows - Admin Configuration

Admin interface for couples and their events, the preset quick picks, and
notification receipts (the operational view of push delivery).
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth import get_user_model
from .models import (
    Couple,
    DailyCheckin,
    Marshmallow,
    Memory,
    NotificationReceipt,
    Profile,
    QuickPick,
)

User = get_user_model()


def _short(text, length=60):
    return text[:length] + '...' if len(text) > length else text


# Inline Profile in User admin
class ProfileInline(admin.StackedInline):
    model = Profile
    can_delete = False
    verbose_name_plural = 'Profile'
    fk_name = 'user'
    readonly_fields = ['push_token_updated_at', 'created_at']


# Extend the User admin to show Profile
class UserAdmin(BaseUserAdmin):
    inlines = [ProfileInline]
    list_display = ['username', 'email', 'get_display_name', 'has_device', 'is_staff']

    def get_display_name(self, obj):
        if hasattr(obj, 'profile'):
            return obj.profile.name
        return obj.username
    get_display_name.short_description = 'Display Name'

    def has_device(self, obj):
        return bool(getattr(obj, 'profile', None) and obj.profile.push_token)
    has_device.boolean = True
    has_device.short_description = 'Device'


# Re-register User with our custom admin
admin.site.unregister(User)
admin.site.register(User, UserAdmin)


@admin.register(Couple)
class CoupleAdmin(admin.ModelAdmin):
    list_display = ['__str__', 'invite_code', 'is_paired', 'expected_partner', 'created_at']
    list_filter = ['created_at']
    search_fields = ['user1__username', 'user2__username', 'invite_code']
    readonly_fields = ['invite_code', 'created_at']

    def is_paired(self, obj):
        return obj.user2 is not None
    is_paired.boolean = True
    is_paired.short_description = 'Paired'


@admin.register(Marshmallow)
class MarshmallowAdmin(admin.ModelAdmin):
    list_display = ['sender', 'recipient', 'kind', 'message_short', 'read', 'created_at']
    list_filter = ['kind', 'read', 'created_at']
    search_fields = ['message', 'sender__username', 'recipient__username']
    readonly_fields = ['created_at']
    ordering = ['-created_at']
    date_hierarchy = 'created_at'

    def message_short(self, obj):
        return _short(obj.message)
    message_short.short_description = 'Message'


@admin.register(DailyCheckin)
class DailyCheckinAdmin(admin.ModelAdmin):
    list_display = ['author', 'date', 'mood', 'couple', 'created_at']
    list_filter = ['mood', 'date']
    search_fields = ['author__username', 'gratitude', 'mood_note']
    readonly_fields = ['created_at']
    ordering = ['-date']
    date_hierarchy = 'date'


@admin.register(Memory)
class MemoryAdmin(admin.ModelAdmin):
    list_display = ['title', 'author', 'date', 'source', 'photo_count', 'created_at']
    list_filter = ['source', 'date']
    search_fields = ['title', 'description', 'author__username']
    readonly_fields = ['created_at']
    ordering = ['-date']

    fieldsets = (
        (None, {
            'fields': ('couple', 'author', 'title', 'description', 'date', 'source')
        }),
        ('Media', {
            'fields': ('photo_urls', 'video_urls'),
            'classes': ('collapse',)
        }),
        ('Optional', {
            'fields': ('tags', 'created_at'),
            'classes': ('collapse',)
        }),
    )

    def photo_count(self, obj):
        return len(obj.photo_urls or [])
    photo_count.short_description = 'Photos'


@admin.register(QuickPick)
class QuickPickAdmin(admin.ModelAdmin):
    list_display = ['order', 'emoji', 'message_short', 'category', 'use_count']
    list_filter = ['category']
    search_fields = ['message']
    ordering = ['order']

    def message_short(self, obj):
        return _short(obj.message)
    message_short.short_description = 'Message'

    def use_count(self, obj):
        return obj.marshmallows.count()
    use_count.short_description = 'Sent'


@admin.register(NotificationReceipt)
class NotificationReceiptAdmin(admin.ModelAdmin):
    list_display = ['event_kind', 'event_id', 'recipient', 'status', 'error_short', 'updated_at']
    list_filter = ['status', 'event_kind', 'created_at']
    search_fields = ['recipient__username', 'error']
    readonly_fields = ['event_kind', 'event_id', 'recipient', 'status', 'error', 'created_at', 'updated_at']
    ordering = ['-created_at']

    def error_short(self, obj):
        return _short(obj.error)
    error_short.short_description = 'Error'
