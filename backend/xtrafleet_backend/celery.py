"""Celery application for background notification delivery and expiry sweeps."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "xtrafleet_backend.settings.settings")

app = Celery("xtrafleet_backend")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
