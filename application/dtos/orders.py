"""
Order lifecycle DTOs.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransitionCommand(BaseModel):
    order_id: int
    requested_status: str
    notes: Optional[str] = None
    should_send_email: bool = True
    actor_id: Optional[int] = None


class TransitionResult(BaseModel):
    order_id: int
    old_status: str
    new_status: str
    history_id: int


class AllowedTransitions(BaseModel):
    order_id: int
    current_status: str
    allowed: list[str] = Field(default_factory=list)


class OrderHistoryDTO(BaseModel):
    id: int
    order_id: int
    action: str
    description: str
    staff_id: Optional[int] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
