"""
Staff table - admins, drivers and facility team members.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from .base import Base


class StaffModel(Base):
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="Display name")
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(
        String(30),
        nullable=False,
        index=True,
        comment="SUPER_ADMIN/OPERATION_MANAGER/DRIVER/FACILITY_TEAM",
    )
    is_active = Column(Boolean, nullable=False, default=True)
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

    def __repr__(self):
        return f"<StaffModel(id={self.id}, email='{self.email}', role='{self.role}')>"
