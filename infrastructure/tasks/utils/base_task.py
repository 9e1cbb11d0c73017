"""Base task for notification jobs."""
from __future__ import annotations

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)


def _order_context(kwargs) -> dict:
    kwargs = kwargs or {}
    return {"order_id": kwargs.get("order_id"), "customer_id": kwargs.get("customer_id")}


class BaseTask(Task):
    """Logs every outcome with the order it concerns.

    Notifications are best effort: a failure here never touches order state.
    """

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "notification_task_failed",
            task_id=task_id,
            task_name=self.name,
            error=str(exc),
            **_order_context(kwargs),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "notification_task_retry",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            error=str(exc),
            **_order_context(kwargs),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "notification_task_sent",
            task_id=task_id,
            task_name=self.name,
            **_order_context(kwargs),
        )
        super().on_success(retval, task_id, args, kwargs)
