"""Notification sink that hands customer-facing events to the Celery worker."""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from application.ports.events import NotificationSink
from core.logging_config import get_logger
from domain.order.entity import OrderStatus
from domain.order.events import OrderStatusChanged
from domain.order.state_machine import EMAIL_WORTHY_STATUSES
from domain.payment.events import RefundProcessed
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryNotificationSink(NotificationSink):
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    async def notify(self, event: Any) -> None:  # type: ignore[override]
        if isinstance(event, OrderStatusChanged):
            if not event.should_send_email:
                return
            try:
                worthy = OrderStatus(event.new_status) in EMAIL_WORTHY_STATUSES
            except ValueError:
                worthy = False
            if not worthy:
                return
            # Broker publish is blocking IO
            await asyncio.to_thread(
                self._dispatcher.send_order_status_email,
                order_id=event.order_id,
                customer_id=event.customer_id,
                old_status=event.old_status,
                new_status=event.new_status,
                notes=event.notes,
            )
            logger.info("order_status_email_enqueued", order_id=event.order_id, new_status=event.new_status)
        elif isinstance(event, RefundProcessed):
            await asyncio.to_thread(
                self._dispatcher.send_refund_notice,
                order_id=event.order_id,
                customer_id=event.customer_id,
                refund_amount=event.refund_amount,
                method=event.method,
            )
            logger.info("refund_notice_enqueued", order_id=event.order_id, payment_id=event.payment_id)
