"""
Celery Worker Configuration

Runs audits and page scans in the background on the ``audit`` queue.
"""

from celery import Celery
from celery.signals import setup_logging

from siteaudit.config import settings
from siteaudit.logging_config import configure_logging


# Create Celery app
celery_app = Celery(
    "siteaudit",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "siteaudit.tasks.audit_tasks",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=3600,  # 1 hour max per task
    task_soft_time_limit=3300,  # 55 min soft limit

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Retry settings
    task_default_retry_delay=60,

    # Queue routing
    task_routes={
        "siteaudit.tasks.audit_tasks.*": {"queue": "audit"},
    },

    # Default queue
    task_default_queue="default",
)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    """Use the application's logging setup instead of Celery's."""
    configure_logging()
