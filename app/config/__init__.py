"""
Django project configuration: settings, URLs, ASGI/WSGI and the Celery app.

The Celery app is imported here so that ``shared_task`` functions in every
installed app (bookings, disputes, settlement, payments) bind to it when
Django starts.
"""

from config.celery import app as celery_app

__all__ = ("celery_app",)
