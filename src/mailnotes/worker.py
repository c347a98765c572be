from celery import Celery

from mailnotes.config import settings

celery_app = Celery(
    "mailnotes",
    broker=settings.celery_broker_url,
    include=["mailnotes.tasks.capture"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    # Run the "digest" queue with --concurrency 1 to serialize day-document writes
    task_routes={"mailnotes.tasks.capture.*": {"queue": "digest"}},
)
