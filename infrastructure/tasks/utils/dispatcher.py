"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Optional

from ..tasks.notifications import send_order_status_email, send_refund_notice


class TaskDispatcher:
    """Facade the notification sink uses to schedule tasks.

    ``apply_async`` honours ``task_always_eager`` so development runs without a broker.
    """

    def send_order_status_email(
        self,
        *,
        order_id: int,
        customer_id: Optional[int],
        old_status: str,
        new_status: str,
        notes: Optional[str] = None,
    ) -> None:
        send_order_status_email.apply_async(
            kwargs={
                "order_id": order_id,
                "customer_id": customer_id,
                "old_status": old_status,
                "new_status": new_status,
                "notes": notes,
            },
        )

    def send_refund_notice(self, *, order_id: int, customer_id: int, refund_amount: str, method: str) -> None:
        send_refund_notice.apply_async(
            kwargs={
                "order_id": order_id,
                "customer_id": customer_id,
                "refund_amount": refund_amount,
                "method": method,
            },
        )
