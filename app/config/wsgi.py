"""
WSGI config for the Django application.

This file exposes the WSGI callable as a module-level variable named `application`.
Stripe webhooks and the operator API are plain request/response endpoints,
so the project is served over WSGI (e.g., gunicorn config.wsgi).

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
