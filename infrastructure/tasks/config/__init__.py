"""Expose the Celery app for `celery -A infrastructure.tasks worker`."""
from .celery import celery_app

__all__ = ["celery_app"]
