"""
Marshmallows - Core URL Configuration
"""

from django.urls import path
from . import views

urlpatterns = [
    # Auth
    path('auth/login/', views.login_view, name='login'),
    path('auth/identity/', views.identity_login, name='identity_login'),
    path('auth/logout/', views.logout_view, name='logout'),

    # Couple pairing
    path('couple/', views.partner_status, name='partner_status'),
    path('couple/create/', views.create_couple, name='create_couple'),
    path('couple/join/', views.join_couple, name='join_couple'),

    # Devices
    path('devices/', views.register_device, name='register_device'),

    # Marshmallows
    path('marshmallows/', views.marshmallows, name='marshmallows'),
    path('marshmallows/stream/', views.marshmallow_stream, name='marshmallow_stream'),
    path('marshmallows/<int:marshmallow_id>/read/', views.mark_read, name='mark_read'),
    path('quick-picks/', views.quick_pick_list, name='quick_picks'),

    # Daily check-ins
    path('checkins/', views.checkins, name='checkins'),
    path('checkins/today/', views.checkin_today, name='checkin_today'),
    path('checkins/history/', views.checkin_history, name='checkin_history'),

    # Memories
    path('memories/', views.memories, name='memories'),
    path('memories/random/', views.random_memory, name='random_memory'),

    # Media
    path('media/photos/', views.upload_photo, name='upload_photo'),
    path('media/videos/', views.upload_video, name='upload_video'),

    # Settings
    path('settings/', views.settings_view, name='settings'),
]
