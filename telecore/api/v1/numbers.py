"""
Number allocation API endpoints.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from telecore.api.deps import DatabaseSession, LockManager
from telecore.database.models.number import NumberStatus
from telecore.schemas.numbers import AllocateNumberRequest, PhoneNumberResponse
from telecore.services.numbers.allocation import NumberAllocationService

router = APIRouter(tags=["numbers"])


@router.post(
    "/orders/{order_id}/numbers",
    response_model=PhoneNumberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Allocate a number to a paid order",
)
async def allocate_number(
    order_id: UUID,
    request: AllocateNumberRequest,
    db: DatabaseSession,
    locks: LockManager,
) -> PhoneNumberResponse:
    phone_number = await NumberAllocationService(db, locks=locks).allocate(
        order_id, request.number
    )
    return PhoneNumberResponse.model_validate(phone_number)


@router.get(
    "/orders/{order_id}/numbers",
    response_model=list[PhoneNumberResponse],
    summary="List numbers allocated to an order",
)
async def list_order_numbers(
    order_id: UUID, db: DatabaseSession, locks: LockManager
) -> list[PhoneNumberResponse]:
    numbers = await NumberAllocationService(db, locks=locks).list_for_order(order_id)
    return [PhoneNumberResponse.model_validate(n) for n in numbers]


@router.get(
    "/numbers",
    response_model=list[PhoneNumberResponse],
    summary="List a customer's numbers",
)
async def list_customer_numbers(
    db: DatabaseSession,
    locks: LockManager,
    customer_id: UUID = Query(...),
    number_status: Optional[NumberStatus] = Query(None, alias="status"),
) -> list[PhoneNumberResponse]:
    numbers = await NumberAllocationService(db, locks=locks).list_for_customer(
        customer_id, status=number_status
    )
    return [PhoneNumberResponse.model_validate(n) for n in numbers]


@router.delete(
    "/numbers/{number_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Release a number before delivery",
)
async def release_number(number_id: UUID, db: DatabaseSession, locks: LockManager) -> Response:
    await NumberAllocationService(db, locks=locks).release(number_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/numbers/{number_id}", response_model=PhoneNumberResponse, summary="Get number")
async def get_number(number_id: UUID, db: DatabaseSession, locks: LockManager) -> PhoneNumberResponse:
    phone_number = await NumberAllocationService(db, locks=locks).get(number_id)
    return PhoneNumberResponse.model_validate(phone_number)
