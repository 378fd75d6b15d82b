"""
Payments API routes.

Checkout, client confirmation and gateway webhooks. Keep this thin: every
status change goes through the reconciliation engine.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.dependencies import get_checkout_service, get_container, get_reconciliation_engine
from application.dtos.orders import ConfirmPaymentDTO, CreateOrderPaymentDTO
from application.services.checkout_service import CheckoutService
from application.services.reconciliation import (
    ClientConfirmSignal,
    ReconciliationEngine,
    WebhookSignal,
)
from core.logging_config import get_logger
from core.response import success_response
from domain.common.exceptions import OrderNotFoundException
from infrastructure.container import Container


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/intents", summary="Create order and payment intent")
async def create_order_payment(
    payload: CreateOrderPaymentDTO,
    service: CheckoutService = Depends(get_checkout_service),
):
    result = await service.create_order_payment(payload)
    return success_response(data=result.model_dump(mode="json"), message="Payment intent created")


@router.post("/confirm", summary="Confirm payment after client-side completion")
async def confirm_payment(
    payload: ConfirmPaymentDTO,
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    # Status is re-fetched from the gateway; the client only names the intent
    result = await engine.handle(
        ClientConfirmSignal(intent_id=payload.payment_intent_id, order_id=payload.order_id)
    )
    return success_response(data=result.to_dict(), message="Payment reconciled")


@router.post("/webhooks/{provider}", summary="Gateway webhook")
async def payments_webhook(
    provider: str,
    request: Request,
    container: Container = Depends(get_container),
):
    if provider.lower() != container.gateway.provider:
        raise HTTPException(status_code=404, detail=f"Unknown payment provider: {provider}")

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    try:
        result = await container.reconciliation.handle(WebhookSignal(headers=headers, body=raw_body))
    except OrderNotFoundException as exc:
        # Acknowledge so the gateway stops redelivering events for intents we never created
        logger.warning("webhook_order_unresolved", provider=provider, details=exc.details)
        return success_response(data={"resolved": False}, message="Webhook received")

    return success_response(data={"resolved": True, **result.to_dict()}, message="Webhook received")
