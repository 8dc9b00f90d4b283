"""WSGI entry point for the Estate Ledger service."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "estate_ledger.settings")

application = get_wsgi_application()
