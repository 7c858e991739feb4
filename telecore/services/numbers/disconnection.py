"""
Disconnection workflow.

Number.disconnection_status moves ``None -> Pending -> Approved|Rejected``;
approval disconnects the number at once, so the number lands directly on
``Completed``. A disconnected number is never reactivated.

All operations on one number are serialized by the ``number:<id>`` lock.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    TelecoreError,
    ValidationError,
)
from telecore.core.locks import KeyLockManager, get_lock_manager, number_key
from telecore.core.logging import get_logger
from telecore.database.models.number import (
    DisconnectionRequest,
    DisconnectionStatus,
    NumberStatus,
    PhoneNumber,
    RequestStatus,
)

logger = get_logger(__name__)


class DisconnectionWorkflow:
    """Request, approve and reject number disconnections."""

    def __init__(self, session: AsyncSession, locks: Optional[KeyLockManager] = None):
        self.session = session
        self.locks = locks or get_lock_manager()

    async def _lock_number(self, number_id: uuid.UUID) -> PhoneNumber:
        result = await self.session.execute(
            select(PhoneNumber)
            .where(PhoneNumber.id == number_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        phone_number = result.scalar_one_or_none()
        if phone_number is None:
            raise NotFoundError("PhoneNumber", number_id)
        return phone_number

    async def _lock_request(self, request_id: uuid.UUID) -> DisconnectionRequest:
        result = await self.session.execute(
            select(DisconnectionRequest)
            .where(DisconnectionRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundError("DisconnectionRequest", request_id)
        return request

    async def _pending_request_id(self, number_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.session.execute(
            select(DisconnectionRequest.id).where(
                DisconnectionRequest.number_id == number_id,
                DisconnectionRequest.status == RequestStatus.PENDING,
            )
        )
        return result.scalar_one_or_none()

    async def request(
        self,
        number_id: uuid.UUID,
        customer_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> DisconnectionRequest:
        """
        Open a disconnection request for an Active number.

        Raises:
            NotFoundError: If the number does not exist
            InvalidTransitionError: If the number is not Active or already
                has a pending request
            ValidationError: If the number does not belong to the customer
        """
        async with self.locks.hold(number_key(number_id)):
            try:
                phone_number = await self._lock_number(number_id)
                if phone_number.status != NumberStatus.ACTIVE:
                    raise InvalidTransitionError(
                        f"Number is {phone_number.status.value}; only Active "
                        "numbers can be disconnected",
                        number_id=number_id,
                        current_status=phone_number.status.value,
                    )
                if phone_number.customer_id != customer_id:
                    raise ValidationError(
                        "Number does not belong to customer",
                        number_id=number_id,
                        customer_id=customer_id,
                    )
                pending_id = await self._pending_request_id(number_id)
                if pending_id is not None:
                    raise InvalidTransitionError(
                        "Number already has a pending disconnection request",
                        number_id=number_id,
                        request_id=pending_id,
                    )

                request = DisconnectionRequest(
                    number_id=number_id,
                    customer_id=customer_id,
                    status=RequestStatus.PENDING,
                    notes=notes,
                    requested_at=datetime.now(timezone.utc),
                )
                self.session.add(request)
                phone_number.disconnection_status = DisconnectionStatus.PENDING
                await self.session.flush()
                await self.session.commit()
            except TelecoreError as e:
                await self.session.rollback()
                logger.warning(
                    "Disconnection request rejected",
                    number_id=str(number_id),
                    error=e.message,
                )
                raise
            except IntegrityError as e:
                await self.session.rollback()
                raise ConflictError(
                    "Number already has a pending disconnection request",
                    number_id=number_id,
                ) from e
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(
                    "Disconnection request failed", number_id=str(number_id), error=str(e)
                )
                raise

        logger.info(
            "Disconnection requested",
            request_id=str(request.id),
            number_id=str(number_id),
            customer_id=str(customer_id),
        )
        return request

    async def _decide(
        self,
        request_id: uuid.UUID,
        outcome: RequestStatus,
        decided_by: Optional[uuid.UUID],
        notes: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> DisconnectionRequest:
        existing = await self.session.get(DisconnectionRequest, request_id)
        if existing is None:
            raise NotFoundError("DisconnectionRequest", request_id)
        number_id = existing.number_id

        async with self.locks.hold(number_key(number_id)):
            try:
                request = await self._lock_request(request_id)
                if request.status != RequestStatus.PENDING:
                    raise InvalidTransitionError(
                        f"Request is already {request.status.value}",
                        request_id=request_id,
                        current_status=request.status.value,
                    )
                phone_number = await self._lock_number(number_id)

                values = {
                    "status": outcome,
                    "decided_at": datetime.now(timezone.utc),
                    "decided_by": decided_by,
                }
                if notes is not None:
                    values["notes"] = notes
                if reason is not None:
                    values["rejection_reason"] = reason

                result = await self.session.execute(
                    update(DisconnectionRequest)
                    .where(
                        DisconnectionRequest.id == request_id,
                        DisconnectionRequest.status == RequestStatus.PENDING,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidTransitionError(
                        "Request was decided concurrently", request_id=request_id
                    )

                if outcome == RequestStatus.APPROVED:
                    phone_number.status = NumberStatus.DISCONNECTED
                    phone_number.disconnection_status = DisconnectionStatus.COMPLETED
                else:
                    phone_number.disconnection_status = DisconnectionStatus.REJECTED

                await self.session.flush()
                await self.session.commit()
                await self.session.refresh(request)
            except TelecoreError as e:
                await self.session.rollback()
                logger.warning(
                    "Disconnection decision rejected",
                    request_id=str(request_id),
                    error=e.message,
                )
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(
                    "Disconnection decision failed",
                    request_id=str(request_id),
                    error=str(e),
                )
                raise

        logger.info(
            "Disconnection request decided",
            request_id=str(request_id),
            number_id=str(number_id),
            outcome=outcome.value,
            decided_by=str(decided_by) if decided_by else None,
        )
        return request

    async def approve(
        self,
        request_id: uuid.UUID,
        decided_by: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> DisconnectionRequest:
        """
        Approve a pending request, disconnecting the number.

        The request becomes ``Approved`` and the number ``Disconnected``
        with ``Completed`` in the same commit.

        Raises:
            InvalidTransitionError: If the request is not Pending
        """
        return await self._decide(
            request_id, RequestStatus.APPROVED, decided_by, notes=notes
        )

    async def reject(
        self,
        request_id: uuid.UUID,
        reason: Optional[str] = None,
        decided_by: Optional[uuid.UUID] = None,
    ) -> DisconnectionRequest:
        """
        Reject a pending request; the number stays Active.

        Raises:
            InvalidTransitionError: If the request is not Pending
        """
        return await self._decide(
            request_id, RequestStatus.REJECTED, decided_by, reason=reason
        )

    async def get(self, request_id: uuid.UUID) -> DisconnectionRequest:
        request = await self.session.get(DisconnectionRequest, request_id)
        if request is None:
            raise NotFoundError("DisconnectionRequest", request_id)
        return request

    async def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        customer_id: Optional[uuid.UUID] = None,
    ) -> Sequence[DisconnectionRequest]:
        """List requests newest first."""
        stmt = select(DisconnectionRequest)
        if status is not None:
            stmt = stmt.where(DisconnectionRequest.status == status)
        if customer_id is not None:
            stmt = stmt.where(DisconnectionRequest.customer_id == customer_id)
        result = await self.session.execute(
            stmt.order_by(DisconnectionRequest.requested_at.desc())
        )
        return result.scalars().all()
