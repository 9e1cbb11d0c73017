"""
Driver assignment table.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from .base import Base


class DriverAssignmentModel(Base):
    __tablename__ = "driver_assignments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("staff.id"), nullable=False, index=True)
    assignment_type = Column(String(20), nullable=False, comment="pickup/delivery")
    status = Column(String(20), nullable=False, default="ASSIGNED", index=True)
    estimated_time = Column(DateTime(timezone=True), nullable=True)
    actual_time = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_driver_assignments_order_type", "order_id", "assignment_type"),
    )

    def __repr__(self):
        return (
            f"<DriverAssignmentModel(id={self.id}, order_id={self.order_id}, "
            f"type='{self.assignment_type}', status='{self.status}')>"
        )
