"""
Celery configuration for background report delivery
"""
from celery import Celery

from .config import Config

celery_app = Celery(
    "cashdesk",
    broker=Config.CELERY_BROKER_URL,
    backend=Config.CELERY_RESULT_BACKEND,
    include=["cashdesk.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    worker_prefetch_multiplier=1,
    # A report is only acknowledged once SMTP accepted it
    task_acks_late=True,
    result_expires=3600,
    task_routes={
        "cashdesk.tasks.*": {"queue": "email"},
    },
)
