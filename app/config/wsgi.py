"""
WSGI config for the booking platform.

The API is served through ASGI (see asgi.py); this WSGI callable is kept for
gunicorn-style deployments and the Django development tooling.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
