"""
Order lifecycle API routes.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_current_staff, get_order_status_service
from application.dtos.orders import AllowedTransitions, OrderHistoryDTO, TransitionResult
from application.services.order_status_service import OrderStatusService
from core.response import Response as ApiResponse, success_response
from domain.staff.entity import Staff, StaffRole
from domain.staff.policy import require_role


router = APIRouter(prefix="/orders", tags=["Orders"])


class TransitionBody(BaseModel):
    status: str
    notes: Optional[str] = None
    should_send_email: bool = True


@router.post("/{order_id}/transitions", summary="Change order status", response_model=ApiResponse[TransitionResult])
async def transition_order(
    order_id: int,
    body: TransitionBody,
    actor: Optional[Staff] = Depends(get_current_staff),
    service: OrderStatusService = Depends(get_order_status_service),
):
    """
    Move the order to ``status`` if the adjacency table and the caller's role allow it.

    - **status**: requested order status
    - **notes**: free text kept on the history row
    - **should_send_email**: forwarded to the notification sink
    """
    # Per-status role limits are applied by the service
    require_role(actor, list(StaffRole))
    result = await service.transition(
        order_id,
        body.status,
        notes=body.notes,
        should_send_email=body.should_send_email,
        actor=actor,
    )
    return success_response(data=result, message="Order status updated")


@router.get("/{order_id}/transitions", summary="Allowed next statuses", response_model=ApiResponse[AllowedTransitions])
async def allowed_transitions(
    order_id: int,
    service: OrderStatusService = Depends(get_order_status_service),
):
    result = await service.allowed_transitions(order_id)
    return success_response(data=result)


@router.get("/{order_id}/history", summary="Order audit log", response_model=ApiResponse[List[OrderHistoryDTO]])
async def order_history(
    order_id: int,
    service: OrderStatusService = Depends(get_order_status_service),
):
    entries = await service.history(order_id)
    return success_response(data=entries)
