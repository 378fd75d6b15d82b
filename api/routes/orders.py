"""
Order API routes: administrative status changes and tracking, public lookup.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_order_service, get_reconciliation_engine, require_admin
from application.dtos.orders import (
    AdminStatusUpdateDTO,
    OrderTrackLookupDTO,
    TrackingEntryCreateDTO,
)
from application.services.order_service import OrderApplicationService
from application.services.reconciliation import AdminStatusSignal, ReconciliationEngine
from core.response import success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("/track", summary="Track order by number and email")
async def track_order(
    payload: OrderTrackLookupDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    tracking = await service.track_order(payload.order_number, payload.email)
    return success_response(data=tracking.model_dump(mode="json"))


@router.get("/{order_id}", summary="Order details", dependencies=[Depends(require_admin)])
async def get_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.get_order(order_id)
    return success_response(data=order.model_dump(mode="json"))


@router.post("/{order_id}/status", summary="Change order status", dependencies=[Depends(require_admin)])
async def update_order_status(
    order_id: str,
    payload: AdminStatusUpdateDTO,
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    result = await engine.handle(
        AdminStatusSignal(
            order_id=order_id,
            target_status=payload.status,
            note=payload.note,
            location=payload.location,
            tracking_number=payload.tracking_number,
        )
    )
    return success_response(data=result.to_dict(), message="Order status updated")


@router.post("/{order_id}/tracking", summary="Add tracking entry", dependencies=[Depends(require_admin)])
async def add_tracking_entry(
    order_id: str,
    payload: TrackingEntryCreateDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    event = await service.add_tracking_entry(order_id, payload)
    return success_response(data=event.model_dump(mode="json"), message="Tracking entry added")
