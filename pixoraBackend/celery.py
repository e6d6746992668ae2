"""
Celery Configuration for Pixora Backend

Runs the best-effort work queued after a settlement commits (purchase
receipts) and the periodic retry of failed seller transfers.
"""

import os

from celery import Celery


# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "pixoraBackend.settings")

app = Celery("pixoraBackend")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()
app.autodiscover_tasks(["payment_system.Tasks"], related_name="payment_tasks")

# Celery Beat configuration for periodic tasks
app.conf.beat_schedule = {
    # Retry seller transfers that failed during settlement completion
    "retry-failed-transfers": {
        "task": "payment_system.Tasks.payment_tasks.retry_failed_transfers_task",
        "schedule": 30.0 * 60.0,  # Every 30 minutes
        "options": {"expires": 10.0 * 60.0, "queue": "payment_tasks"},
    },
}

app.conf.update(
    task_routes={
        "payment_system.Tasks.payment_tasks.*": {"queue": "payment_tasks"},
    },
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=60 * 60 * 24,  # Results expire after 24 hours
    worker_max_tasks_per_child=1000,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
)
