"""Celery application configuration (notification worker)."""
from __future__ import annotations

import os

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger


CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)


celery_app = Celery("laundry_core")
# shared_task proxies resolve through current_app, which is thread-local;
# worker threads (asyncio.to_thread) fall back to the default app
celery_app.set_default()

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    # JSON only: no pickled payloads
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="notifications",
    task_queues=(
        Queue("notifications"),
    ),
    task_routes={
        "infrastructure.tasks.tasks.notifications.*": {"queue": "notifications"},
    },
)

celery_app.conf.imports = CELERY_IMPORTS

environment = getattr(settings, "ENVIRONMENT", "production") or "production"
if environment.lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info("celery_configured", broker=sender.conf.broker_url, default_queue=sender.conf.task_default_queue)
