"""
Order and order history tables.

Not domain models: the status rules live in domain.order.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text,
)

from .base import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True, comment="Human order number")
    customer_id = Column(Integer, nullable=False, index=True)
    status = Column(String(40), nullable=False, default="ORDER_PLACED", index=True)
    payment_status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        comment="PENDING/PAID/FAILED/REFUNDED/PARTIAL_REFUND",
    )
    # Null until facility processing has priced the items
    invoice_total = Column(Numeric(precision=12, scale=3), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"


class OrderHistoryModel(Base):
    """Append-only audit rows."""

    __tablename__ = "order_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=True)
    action = Column(String(40), nullable=False)
    old_value = Column(String(100), nullable=True)
    new_value = Column(String(100), nullable=True)
    description = Column(Text, nullable=False)
    # extra_metadata avoids clashing with DeclarativeBase.metadata
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_order_history_order_action", "order_id", "action"),
    )
