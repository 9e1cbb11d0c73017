"""
Driver assignment DTOs.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CreateAssignmentCommand(BaseModel):
    order_id: int
    driver_id: int
    assignment_type: str
    estimated_time: Optional[datetime] = None
    notes: Optional[str] = None


class AdvanceAssignmentCommand(BaseModel):
    assignment_id: int
    new_status: str
    notes: Optional[str] = None


class ReassignCommand(BaseModel):
    assignment_id: int
    new_driver_id: int
    estimated_time: Optional[datetime] = None
    notes: Optional[str] = None


class AssignmentDTO(BaseModel):
    id: int
    order_id: int
    driver_id: int
    assignment_type: str
    status: str
    estimated_time: Optional[datetime] = None
    actual_time: Optional[datetime] = None
    notes: Optional[str] = None
    order_status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
