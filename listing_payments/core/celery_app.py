from celery import Celery
from listing_payments.core.config import settings

# Initialize Celery
celery_app = Celery(
    "tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "listing_payments.tasks.notification_tasks",
    ]
)

celery_app.conf.update(
    task_track_started=True,
    task_acks_late=True,
)
