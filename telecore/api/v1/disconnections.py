"""
Disconnection workflow API endpoints.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from telecore.api.deps import DatabaseSession, LockManager
from telecore.database.models.number import RequestStatus
from telecore.schemas.numbers import (
    ApproveRequest,
    DisconnectionCreateRequest,
    DisconnectionResponse,
    RejectRequest,
)
from telecore.services.numbers.disconnection import DisconnectionWorkflow

router = APIRouter(prefix="/disconnections", tags=["disconnections"])


@router.post(
    "/",
    response_model=DisconnectionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request disconnection of a number",
)
async def request_disconnection(
    request: DisconnectionCreateRequest, db: DatabaseSession, locks: LockManager
) -> DisconnectionResponse:
    created = await DisconnectionWorkflow(db, locks=locks).request(
        request.number_id, request.customer_id, notes=request.notes
    )
    return DisconnectionResponse.model_validate(created)


@router.get("/", response_model=list[DisconnectionResponse], summary="List requests")
async def list_disconnections(
    db: DatabaseSession,
    locks: LockManager,
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
    customer_id: Optional[UUID] = Query(None),
) -> list[DisconnectionResponse]:
    requests = await DisconnectionWorkflow(db, locks=locks).list_requests(
        status=request_status, customer_id=customer_id
    )
    return [DisconnectionResponse.model_validate(r) for r in requests]


@router.post(
    "/{request_id}/approve",
    response_model=DisconnectionResponse,
    summary="Approve and disconnect",
)
async def approve_disconnection(
    request_id: UUID, request: ApproveRequest, db: DatabaseSession, locks: LockManager
) -> DisconnectionResponse:
    decided = await DisconnectionWorkflow(db, locks=locks).approve(
        request_id, decided_by=request.decided_by, notes=request.notes
    )
    return DisconnectionResponse.model_validate(decided)


@router.post(
    "/{request_id}/reject",
    response_model=DisconnectionResponse,
    summary="Reject a disconnection request",
)
async def reject_disconnection(
    request_id: UUID, request: RejectRequest, db: DatabaseSession, locks: LockManager
) -> DisconnectionResponse:
    decided = await DisconnectionWorkflow(db, locks=locks).reject(
        request_id, reason=request.reason, decided_by=request.decided_by
    )
    return DisconnectionResponse.model_validate(decided)


@router.get("/{request_id}", response_model=DisconnectionResponse, summary="Get request")
async def get_disconnection(
    request_id: UUID, db: DatabaseSession, locks: LockManager
) -> DisconnectionResponse:
    found = await DisconnectionWorkflow(db, locks=locks).get(request_id)
    return DisconnectionResponse.model_validate(found)
