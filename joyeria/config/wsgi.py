"""WSGI entry point for the joyeria project."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'joyeria.config.settings')

application = get_wsgi_application()
