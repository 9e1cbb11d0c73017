"""
Driver assignment API routes.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_current_staff, get_dispatch_service
from application.dtos.dispatch import (
    AdvanceAssignmentCommand,
    AssignmentDTO,
    CreateAssignmentCommand,
    ReassignCommand,
)
from application.services.dispatch_service import DispatchService
from core.response import Response as ApiResponse, success_response
from domain.staff.entity import Staff


router = APIRouter(prefix="/assignments", tags=["Assignments"])


class AdvanceBody(BaseModel):
    status: str
    notes: Optional[str] = None


class ReassignBody(BaseModel):
    driver_id: int
    estimated_time: Optional[datetime] = None
    notes: Optional[str] = None


@router.post("", summary="Assign a driver", response_model=ApiResponse[AssignmentDTO])
async def create_assignment(
    payload: CreateAssignmentCommand,
    actor: Optional[Staff] = Depends(get_current_staff),
    service: DispatchService = Depends(get_dispatch_service),
):
    """
    Create a pickup or delivery leg.

    - **assignment_type**: ``pickup`` or ``delivery``
    - **estimated_time**: planned start; anchors the start window
    """
    assignment = await service.create(payload, actor)
    return success_response(data=assignment, message="Driver assigned")


@router.post("/{assignment_id}/status", summary="Driver status update", response_model=ApiResponse[AssignmentDTO])
async def advance_assignment(
    assignment_id: int,
    body: AdvanceBody,
    actor: Optional[Staff] = Depends(get_current_staff),
    service: DispatchService = Depends(get_dispatch_service),
):
    assignment = await service.advance(
        AdvanceAssignmentCommand(assignment_id=assignment_id, new_status=body.status, notes=body.notes),
        actor.id if actor else None,
    )
    return success_response(data=assignment, message="Assignment updated")


@router.post("/{assignment_id}/cancel", summary="Cancel assignment", response_model=ApiResponse[AssignmentDTO])
async def cancel_assignment(
    assignment_id: int,
    actor: Optional[Staff] = Depends(get_current_staff),
    service: DispatchService = Depends(get_dispatch_service),
):
    assignment = await service.cancel(assignment_id, actor)
    return success_response(data=assignment, message="Assignment cancelled")


@router.post("/{assignment_id}/reassign", summary="Reassign failed leg", response_model=ApiResponse[AssignmentDTO])
async def reassign_assignment(
    assignment_id: int,
    body: ReassignBody,
    actor: Optional[Staff] = Depends(get_current_staff),
    service: DispatchService = Depends(get_dispatch_service),
):
    assignment = await service.reassign(
        ReassignCommand(
            assignment_id=assignment_id,
            new_driver_id=body.driver_id,
            estimated_time=body.estimated_time,
            notes=body.notes,
        ),
        actor,
    )
    return success_response(data=assignment, message="Assignment reassigned")


@router.get("/orders/{order_id}", summary="Assignments for an order", response_model=ApiResponse[List[AssignmentDTO]])
async def list_assignments(
    order_id: int,
    service: DispatchService = Depends(get_dispatch_service),
):
    assignments = await service.list_for_order(order_id)
    return success_response(data=assignments)
