from datetime import timedelta

from celery import Celery
from unisphere.config import settings


celery_app = Celery(
    "unisphere",
    broker=settings.CELERY_BROKER_URL,
    include=[
        "unisphere.tasks.tokens",
        ]
)


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "purge-refresh-tokens": {
            "task": "unisphere.tasks.tokens.purge_refresh_tokens",
            "schedule": timedelta(minutes=settings.TOKEN_PURGE_INTERVAL_MINUTES),
        },
    },
)
