"""
Payments API routes.

Wallet, card and split payments, refunds, manual reconciliation and the
gateway webhook. Keep this thin: no gateway details here.
"""
from __future__ import annotations

import ipaddress
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from api.dependencies import get_current_staff, get_payment_service
from application.dtos.payments import (
    CardPaymentCommand,
    PaymentRecordDTO,
    PaymentResult,
    RefundCommand,
    RefundResult,
    SplitPaymentCommand,
    SplitPaymentResult,
    WalletPaymentCommand,
)
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import Response as ApiResponse, success_response
from core.settings import payment_settings
from domain.staff.entity import Staff


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _ip_allowed(remote_ip: Optional[str]) -> bool:
    allowlist = payment_settings.webhook.ip_allowlist or []
    if not allowlist:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        if "/" in entry:
            try:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            except ValueError:
                logger.warning("webhook_allowlist_entry_invalid", entry=entry)
        elif remote_ip == entry:
            return True
    return False


@router.post("/webhooks/{provider}", summary="Gateway webhook")
async def payments_webhook(
    provider: str,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    if service.gateway is None or provider.lower() != service.gateway.provider:
        raise HTTPException(status_code=404, detail=f"Unknown payment provider: {provider}")
    if "application/json" not in (request.headers.get("content-type") or "").lower():
        raise HTTPException(status_code=415, detail="Webhook body must be JSON")
    remote_ip = request.client.host if request.client else None
    if not _ip_allowed(remote_ip):
        logger.warning("webhook_ip_rejected", provider=provider, remote_ip=remote_ip)
        raise HTTPException(status_code=403, detail="Webhook source not allowed")

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    event = await service.handle_webhook(headers, raw_body)
    # 200 acknowledges receipt; repeated deliveries are no-ops
    return success_response(
        data={"id": event.id, "provider": event.provider, "status": event.status},
        message="Webhook received",
    )


@router.post("/wallet", summary="Pay from wallet", response_model=ApiResponse[PaymentResult])
async def pay_with_wallet(
    payload: WalletPaymentCommand,
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.pay_with_wallet(payload)
    return success_response(data=result, message="Payment completed")


@router.post("/card", summary="Pay by card", response_model=ApiResponse[PaymentResult])
async def pay_with_card(
    payload: CardPaymentCommand,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Charge the card token through the gateway.

    When ``redirect_url`` is set the customer must finish 3-D Secure; the
    record stays PENDING until the webhook arrives.
    """
    result = await service.pay_with_card(payload)
    return success_response(data=result, message="Payment submitted")


@router.post("/split", summary="Split wallet and card", response_model=ApiResponse[SplitPaymentResult])
async def pay_split(
    payload: SplitPaymentCommand,
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.pay_split(payload)
    return success_response(data=result, message="Payment submitted")


@router.post("/refunds", summary="Refund a payment", response_model=ApiResponse[RefundResult])
async def refund_payment(
    payload: RefundCommand,
    actor: Optional[Staff] = Depends(get_current_staff),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.refund(payload, actor)
    return success_response(data=result, message="Refund processed")


@router.post("/{payment_id}/sync", summary="Reconcile with gateway", response_model=ApiResponse[PaymentRecordDTO])
async def sync_payment(
    payment_id: int,
    actor: Optional[Staff] = Depends(get_current_staff),
    service: PaymentService = Depends(get_payment_service),
):
    record = await service.sync_payment_status(payment_id, actor)
    return success_response(data=record)


@router.get("/orders/{order_id}", summary="Payments for an order", response_model=ApiResponse[List[PaymentRecordDTO]])
async def list_payments(
    order_id: int,
    service: PaymentService = Depends(get_payment_service),
):
    records = await service.list_for_order(order_id)
    return success_response(data=records)
