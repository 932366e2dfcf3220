from celery import Celery
from celery.schedules import crontab

from vidmark.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "vidmark",
    broker=settings.get_celery_broker_url(),
    backend=settings.get_celery_result_backend(),
    include=["vidmark.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
)

celery_app.conf.beat_schedule = {
    "scratch-sweep-hourly": {
        "task": "vidmark.sweep_scratch",
        "schedule": crontab(minute=15),
    }
}
