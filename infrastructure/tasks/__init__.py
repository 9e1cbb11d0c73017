"""Celery task infrastructure package.

Run the notification worker with ``celery -A infrastructure.tasks worker -Q notifications``.
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
