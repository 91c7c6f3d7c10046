"""
Marshmallows - Django Settings
==============================

Production-ready configuration for:
- Render (Stateless deployment)
- Neon.tech (PostgreSQL)
- Cloudinary (Photo and video storage)
- Expo (Push notifications)
- WhiteNoise (Static files for the admin)
"""

import os
from pathlib import Path

import cloudinary
import dj_database_url
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Load local environment variables from .env (no-op if missing).
# This helps local dev (e.g. `manage.py runserver` / local gunicorn).
load_dotenv(BASE_DIR / ".env")

# =============================================================================
# SECURITY SETTINGS
# =============================================================================

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get('SECRET_KEY', 'django-insecure-dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.environ.get('DEBUG', 'False').lower() in ('true', '1', 'yes')

# Get the hostname from Render, or use environment variable, or default to localhost for local dev
RENDER_EXTERNAL_HOSTNAME = os.environ.get('RENDER_EXTERNAL_HOSTNAME')
ALLOWED_HOSTS = []

if RENDER_EXTERNAL_HOSTNAME:
    ALLOWED_HOSTS.append(RENDER_EXTERNAL_HOSTNAME)
elif os.environ.get('ALLOWED_HOSTS'):
    ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS').split(',')
else:
    ALLOWED_HOSTS = ['localhost', '127.0.0.1']

# Render.com specific: Trust the proxy headers
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

# Production security settings (enabled when DEBUG=False)
if not DEBUG:
    SECURE_SSL_REDIRECT = os.environ.get('SECURE_SSL_REDIRECT', 'True').lower() in ('true', '1', 'yes')
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True

# CSRF trusted origins for Render
CSRF_TRUSTED_ORIGINS = []
if RENDER_EXTERNAL_HOSTNAME:
    CSRF_TRUSTED_ORIGINS.append(f'https://{RENDER_EXTERNAL_HOSTNAME}')
elif os.environ.get('CSRF_TRUSTED_ORIGINS'):
    CSRF_TRUSTED_ORIGINS = os.environ.get('CSRF_TRUSTED_ORIGINS').split(',')
else:
    # Default fallback for local development
    CSRF_TRUSTED_ORIGINS = ['https://*.onrender.com']

# =============================================================================
# APPLICATION DEFINITION
# =============================================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    
    # Local apps
    'core',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',  # WhiteNoise for static files
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'marshmallows.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'marshmallows.wsgi.application'

# =============================================================================
# DATABASE - Neon.tech PostgreSQL
# =============================================================================

# Database configuration priority:
# 1. DB_* variables (for local Postgres with explicit settings)
# 2. DATABASE_URL (for production/Render/Neon.tech)
# 3. SQLite (local development fallback)
DATABASE_URL = os.environ.get('DATABASE_URL')
DB_NAME = os.environ.get('DB_NAME')
DB_USER = os.environ.get('DB_USER')
DB_PASSWORD = os.environ.get('DB_PASSWORD')
DB_HOST = os.environ.get('DB_HOST', 'localhost')
DB_PORT = os.environ.get('DB_PORT', '5432')

if DB_NAME and DB_USER and DB_PASSWORD:
    # Use explicit DB_* variables (takes priority for local development)
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': DB_NAME,
            'USER': DB_USER,
            'PASSWORD': DB_PASSWORD,
            'HOST': DB_HOST,
            'PORT': DB_PORT,
        }
    }
elif DATABASE_URL:
    # Use DATABASE_URL (for production/Render/Neon.tech)
    # Note: SSL requirements are handled by the DATABASE_URL itself (e.g., sslmode=require)
    # Setting ssl_require=False allows the connection string to control SSL behavior
    DATABASES = {
        'default': dj_database_url.config(
            default=DATABASE_URL,
            conn_max_age=600,
            conn_health_checks=True,
            ssl_require=False,  # Let DATABASE_URL connection string handle SSL (Neon includes sslmode=require)
        )
    }
else:
    # Local development fallback to SQLite
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

# =============================================================================
# PASSWORD VALIDATION
# =============================================================================

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# =============================================================================
# INTERNATIONALIZATION
# =============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# =============================================================================
# STATIC FILES - WhiteNoise
# =============================================================================

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# In production, use hashed + compressed static files via WhiteNoise.
# In local dev, avoid manifest requirements (no need to run collectstatic).
if DEBUG:
    STATICFILES_BACKEND = 'django.contrib.staticfiles.storage.StaticFilesStorage'
    # When running via gunicorn locally (not `runserver`), Django won't serve static files
    # automatically. Enable WhiteNoise "finders" mode so /static/* works without collectstatic.
    WHITENOISE_USE_FINDERS = True
    WHITENOISE_AUTOREFRESH = True
else:
    STATICFILES_BACKEND = 'whitenoise.storage.CompressedManifestStaticFilesStorage'

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': STATICFILES_BACKEND},
}

# =============================================================================
# MEDIA FILES - Cloudinary
# =============================================================================

# Photos and videos are uploaded straight to Cloudinary (core.media);
# the database only keeps the returned URLs.
cloudinary.config(
    cloud_name=os.environ.get('CLOUDINARY_CLOUD_NAME', ''),
    api_key=os.environ.get('CLOUDINARY_API_KEY', ''),
    api_secret=os.environ.get('CLOUDINARY_API_SECRET', ''),
    secure=True,
)

# =============================================================================
# PUSH NOTIFICATIONS - Expo
# =============================================================================

# Dotted path to the push client class. core.push.LocmemPushClient keeps
# messages in memory instead of sending them (local dev and tests).
PUSH_CLIENT = os.environ.get('PUSH_CLIENT', 'core.push.ExpoPushClient')
EXPO_PUSH_URL = os.environ.get('EXPO_PUSH_URL', 'https://exp.host/--/api/v2/push/send')
EXPO_ACCESS_TOKEN = os.environ.get('EXPO_ACCESS_TOKEN', '')
PUSH_TIMEOUT_SECONDS = float(os.environ.get('PUSH_TIMEOUT_SECONDS', '10'))

# Optional dotted path to a callable receiving each DeliveryFailed
NOTIFICATION_FAILURE_REPORTER = os.environ.get('NOTIFICATION_FAILURE_REPORTER', '')

# Threads sending pushes after a write commits; 0 sends inside the request
NOTIFICATION_WORKERS = int(os.environ.get('NOTIFICATION_WORKERS', '2'))

# =============================================================================
# LIVE UPDATES
# =============================================================================

# Seconds between keep-alive comments on an idle marshmallow stream
SUBSCRIPTION_HEARTBEAT_SECONDS = float(os.environ.get('SUBSCRIPTION_HEARTBEAT_SECONDS', '15'))

# Redis carries changes between worker processes. Leave unset only when
# running a single process (e.g. `manage.py runserver`).
CHANGE_FEED_REDIS_URL = os.environ.get('REDIS_URL', '')
CHANGE_FEED_CHANNEL = os.environ.get('CHANGE_FEED_CHANNEL', 'marshmallows:changes')

# =============================================================================
# IDENTITY HAND-OFF
# =============================================================================

# Key shared with the sign-in service that signs verified identities
IDENTITY_SIGNING_KEY = os.environ.get('IDENTITY_SIGNING_KEY', SECRET_KEY)
# Seconds a signed identity stays valid
IDENTITY_TOKEN_MAX_AGE = int(os.environ.get('IDENTITY_TOKEN_MAX_AGE', '300'))

# =============================================================================
# DEFAULT PRIMARY KEY
# =============================================================================

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# AUTHENTICATION
# =============================================================================

LOGIN_URL = 'login'

# The JSON API is csrf_exempt; Lax keeps the session cookie off cross-site POSTs
SESSION_COOKIE_SAMESITE = 'Lax'

# =============================================================================
# LOGGING
# =============================================================================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.environ.get('DJANGO_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'core': {
            'handlers': ['console'],
            'level': os.environ.get('CORE_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
