"""
Order lifecycle API endpoints.

Domain errors raised by the services are rendered by the application's
``TelecoreError`` handler.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from telecore.api.deps import DatabaseSession, LockManager
from telecore.core.logging import get_logger
from telecore.database.models.order import PricingType
from telecore.schemas.orders import (
    CancelRequest,
    ConfirmRequest,
    DeliverRequest,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderResponse,
    OrderStatusHistoryResponse,
    StatusChangeRequest,
)
from telecore.schemas.pricing import (
    PricingViewResponse,
    SnapshotResponse,
    SnapshotUpsertRequest,
)
from telecore.services.orders.enums import OrderStatus
from telecore.services.orders.service import OrderLifecycleService
from telecore.services.pricing.snapshot import OrderPricingService

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "/",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order from a cart item",
)
async def create_order(
    request: OrderCreateRequest, db: DatabaseSession, locks: LockManager
) -> OrderCreateResponse:
    """
    Create an order in ``In Progress``.

    The desired pricing write is best effort: its outcome is reported in
    ``pricing_state`` and never undoes the order.
    """
    service = OrderLifecycleService(db, locks=locks)
    creation = await service.create(
        customer_id=request.customer_id,
        product_id=request.product_id,
        country_id=request.country_id,
        area_code=request.area_code,
        quantity=request.quantity,
        vendor_id=request.vendor_id,
        documents=request.documents,
        notes=request.notes,
        desired_pricing=request.desired_pricing,
    )
    return OrderCreateResponse.model_validate(creation, from_attributes=True)


@router.get("/", response_model=list[OrderResponse], summary="List orders")
async def list_orders(
    db: DatabaseSession,
    locks: LockManager,
    customer_id: Optional[UUID] = Query(None),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> list[OrderResponse]:
    service = OrderLifecycleService(db, locks=locks)
    orders = await service.list(
        customer_id=customer_id, status=order_status, limit=limit, offset=offset
    )
    return [OrderResponse.model_validate(order) for order in orders]


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order")
async def get_order(order_id: UUID, db: DatabaseSession, locks: LockManager) -> OrderResponse:
    order = await OrderLifecycleService(db, locks=locks).get(order_id)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}/history",
    response_model=list[OrderStatusHistoryResponse],
    summary="Get order status history",
)
async def get_order_history(
    order_id: UUID, db: DatabaseSession, locks: LockManager
) -> list[OrderStatusHistoryResponse]:
    entries = await OrderLifecycleService(db, locks=locks).history(order_id)
    return [OrderStatusHistoryResponse.model_validate(entry) for entry in entries]


@router.post("/{order_id}/confirm", response_model=OrderResponse, summary="Confirm order")
async def confirm_order(
    order_id: UUID,
    request: ConfirmRequest,
    db: DatabaseSession,
    locks: LockManager,
) -> OrderResponse:
    """
    Lock in current pricing and compute the total.

    Returns 422 when neither a catalog plan nor an override prices the
    order; supply ``current_override`` and retry.
    """
    order = await OrderLifecycleService(db, locks=locks).confirm(
        order_id,
        current_override=request.current_override,
        changed_by=request.changed_by,
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/mark-paid", response_model=OrderResponse, summary="Mark order paid")
async def mark_order_paid(
    order_id: UUID,
    request: StatusChangeRequest,
    db: DatabaseSession,
    locks: LockManager,
) -> OrderResponse:
    order = await OrderLifecycleService(db, locks=locks).mark_paid(
        order_id, changed_by=request.changed_by
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/pay-from-wallet",
    response_model=OrderResponse,
    summary="Pay order from customer wallet",
)
async def pay_order_from_wallet(
    order_id: UUID,
    request: StatusChangeRequest,
    db: DatabaseSession,
    locks: LockManager,
) -> OrderResponse:
    order = await OrderLifecycleService(db, locks=locks).pay_from_wallet(
        order_id, changed_by=request.changed_by
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/deliver", response_model=OrderResponse, summary="Deliver order")
async def deliver_order(
    order_id: UUID,
    request: DeliverRequest,
    db: DatabaseSession,
    locks: LockManager,
) -> OrderResponse:
    order = await OrderLifecycleService(db, locks=locks).mark_delivered(
        order_id, override=request.override, changed_by=request.changed_by
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel order")
async def cancel_order(
    order_id: UUID,
    request: CancelRequest,
    db: DatabaseSession,
    locks: LockManager,
) -> OrderResponse:
    order = await OrderLifecycleService(db, locks=locks).cancel(
        order_id, reason=request.reason, changed_by=request.changed_by
    )
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}/pricing",
    response_model=PricingViewResponse,
    summary="Get order pricing snapshots",
)
async def get_order_pricing(
    order_id: UUID, db: DatabaseSession, locks: LockManager
) -> PricingViewResponse:
    view = await OrderPricingService(db, locks=locks).get(order_id)
    return PricingViewResponse.model_validate(view, from_attributes=True)


@router.put(
    "/{order_id}/pricing/{pricing_type}",
    response_model=SnapshotResponse,
    summary="Create or replace a pricing snapshot",
)
async def upsert_order_pricing(
    order_id: UUID,
    pricing_type: PricingType,
    request: SnapshotUpsertRequest,
    db: DatabaseSession,
    locks: LockManager,
) -> SnapshotResponse:
    snapshot = await OrderPricingService(db, locks=locks).upsert(
        order_id, pricing_type, request.fields, changed_by=request.changed_by
    )
    logger.info(
        "Pricing snapshot updated via API",
        order_id=str(order_id),
        pricing_type=pricing_type.value,
    )
    return SnapshotResponse.model_validate(snapshot)
