"""Celery application for the fulfillment engine.

``DJANGO_SETTINGS_MODULE`` is set before the app is instantiated so Celery
reads the Django settings (``CELERY_`` prefix).  Invoice generation and
shipment creation run here after the confirming transaction commits.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("fulfillment")

app.config_from_object("django.conf:settings", namespace="CELERY")

# Discovers tasks.py in every installed app
app.autodiscover_tasks()
