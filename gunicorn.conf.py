"""
Gunicorn settings for Render.

Marshmallow streams hold a thread open for as long as the app is
connected, so workers are threaded. Streams in different workers stay in
sync through REDIS_URL (see core/relay.py).
"""

import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"
wsgi_app = 'marshmallows.wsgi:application'
worker_class = 'gthread'
workers = int(os.environ.get('WEB_CONCURRENCY', '2'))
threads = int(os.environ.get('GUNICORN_THREADS', '16'))
# Idle streams send a keep-alive every SUBSCRIPTION_HEARTBEAT_SECONDS
timeout = 60
accesslog = '-'
