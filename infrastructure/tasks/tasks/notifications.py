"""Customer notification tasks.

Templating and delivery belong to the email/SMS provider; these tasks only
record what would be sent.
"""
from __future__ import annotations

from typing import Optional

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


@shared_task(
    bind=True,
    base=BaseTask,
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_order_status_email(
    self,
    order_id: int,
    customer_id: Optional[int],
    old_status: str,
    new_status: str,
    notes: Optional[str] = None,
) -> None:
    logger.info(
        "order_status_email",
        order_id=order_id,
        customer_id=customer_id,
        old_status=old_status,
        new_status=new_status,
        notes=notes,
    )


@shared_task(bind=True, base=BaseTask)
def send_refund_notice(
    self,
    order_id: int,
    customer_id: int,
    refund_amount: str,
    method: str,
) -> None:
    logger.info(
        "refund_notice",
        order_id=order_id,
        customer_id=customer_id,
        refund_amount=refund_amount,
        method=method,
    )
