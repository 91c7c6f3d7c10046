"""
WSGI config for the Marshmallows project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'marshmallows.settings')

application = get_wsgi_application()

