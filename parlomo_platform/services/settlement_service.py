"""
Settlement request service: organizer payouts for event revenue.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import SettlementRequest, SettlementRequestStatus, User
from ..schemas.financial import SettlementRequestCreate, SettlementRequestUpdate
from ..utils.exceptions import (
    AuthorizationError,
    DuplicateResourceError,
    FinancialRequestNotFoundError,
    InvalidStateTransitionError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from .order_service import OrderService

logger = logging.getLogger(__name__)

OPEN_STATUSES = (SettlementRequestStatus.PENDING, SettlementRequestStatus.APPROVED)


class SettlementService:
    """Service class for settlement requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.orders = OrderService(db)

    async def create_request(self, data: SettlementRequestCreate, user: User) -> SettlementRequest:
        """
        Ask to be paid the event's revenue.

        The payout is worked out from the event's paid orders less amounts
        already settled. ``amount`` defaults to that payout and may not exceed it.

        Raises:
            DuplicateResourceError: The event already has an open request
            ValidationError: Nothing to settle or amount above the payout
        """
        financials = await self.orders.event_financials(data.event_id, user)
        event = await self.orders.events.get_event(data.event_id)

        open_result = await self.db.execute(
            select(func.count(SettlementRequest.id)).where(
                SettlementRequest.event_id == event.id,
                SettlementRequest.status.in_(OPEN_STATUSES),
            )
        )
        if open_result.scalar():
            raise DuplicateResourceError(
                "This event already has an open settlement request",
                field="event_id"
            )

        paid_result = await self.db.execute(
            select(func.coalesce(func.sum(SettlementRequest.amount), 0)).where(
                SettlementRequest.event_id == event.id,
                SettlementRequest.status == SettlementRequestStatus.PAID,
            )
        )
        already_paid = int(paid_result.scalar() or 0)
        payout = financials["payout"]
        available = payout["payout"] - already_paid

        if available <= 0:
            raise ValidationError("There is no revenue left to settle for this event")
        amount = data.amount if data.amount is not None else available
        if amount > available:
            raise ValidationError(
                f"Requested amount exceeds the available payout of {available}",
                details={"available": available, "requested": amount}
            )

        request = SettlementRequest(
            organizer_id=user.id,
            event_id=event.id,
            event_title=event.title,
            amount=amount,
            currency=event.currency,
            total_sales=financials["ticket_revenue"],
            platform_fees=payout["platform_fee"],
            processing_fees=financials["total_fees"],
            payment_method=data.payment_method,
            payment_details=data.payment_details,
            status=SettlementRequestStatus.PENDING,
        )
        self.db.add(request)
        await self.db.commit()
        await self.db.refresh(request)

        log_business_event(
            "settlement_requested",
            {"request_id": str(request.id), "event_id": str(event.id), "amount": amount},
            str(user.id)
        )
        return request

    async def list_requests(
        self,
        user: User,
        status: Optional[SettlementRequestStatus] = None,
        organizer_id: Optional[UUID] = None,
        event_id: Optional[UUID] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[SettlementRequest], int]:
        if not user.is_admin:
            organizer_id = user.id

        conditions = []
        if status is not None:
            conditions.append(SettlementRequest.status == status)
        if organizer_id is not None:
            conditions.append(SettlementRequest.organizer_id == organizer_id)
        if event_id is not None:
            conditions.append(SettlementRequest.event_id == event_id)

        count_result = await self.db.execute(select(func.count(SettlementRequest.id)).where(*conditions))
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(SettlementRequest)
            .where(*conditions)
            .order_by(SettlementRequest.requested_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_request(self, request_id: UUID, user: User) -> SettlementRequest:
        request = await self.db.get(SettlementRequest, request_id)
        if not request:
            raise FinancialRequestNotFoundError("settlement_request", str(request_id))
        if not user.is_admin and request.organizer_id != user.id:
            raise AuthorizationError("You can only view your own settlement requests")
        return request

    async def approve(self, request_id: UUID, admin: User, admin_notes: Optional[str] = None) -> SettlementRequest:
        request = await self.get_request(request_id, admin)
        request.approve(admin_notes, admin.id)
        return await self._decided(request, admin)

    async def reject(
        self,
        request_id: UUID,
        admin: User,
        reason: str,
        admin_notes: Optional[str] = None
    ) -> SettlementRequest:
        request = await self.get_request(request_id, admin)
        request.reject(reason, admin_notes, admin.id)
        return await self._decided(request, admin)

    async def mark_as_paid(self, request_id: UUID, admin: User, transaction_reference: str) -> SettlementRequest:
        request = await self.get_request(request_id, admin)
        request.mark_as_paid(transaction_reference)
        return await self._decided(request, admin)

    async def update_request(
        self,
        request_id: UUID,
        data: SettlementRequestUpdate,
        admin: User
    ) -> SettlementRequest:
        """Generic update; status changes use the same transitions as the dedicated actions."""
        if data.status is None:
            request = await self.get_request(request_id, admin)
            if data.admin_notes is not None:
                request.admin_notes = data.admin_notes
                await self.db.commit()
            return request

        if data.status == SettlementRequestStatus.APPROVED:
            return await self.approve(request_id, admin, data.admin_notes)
        if data.status == SettlementRequestStatus.REJECTED:
            return await self.reject(request_id, admin, data.rejection_reason or "", data.admin_notes)
        if data.status == SettlementRequestStatus.PAID:
            return await self.mark_as_paid(request_id, admin, data.transaction_reference or "")

        request = await self.get_request(request_id, admin)
        raise InvalidStateTransitionError(
            "settlement_request", str(request.id), request.status.value, data.status.value
        )

    async def _decided(self, request: SettlementRequest, admin: User) -> SettlementRequest:
        await self.db.commit()
        await self.db.refresh(request)

        log_business_event(
            f"settlement_request_{request.status.value.lower()}",
            {"request_id": str(request.id), "event_id": str(request.event_id), "amount": request.amount},
            str(admin.id)
        )

        try:
            from ..tasks.notification_tasks import send_settlement_decision_task
            send_settlement_decision_task.delay(str(request.id))
        except Exception as e:
            logger.warning(f"Failed to queue settlement decision email for {request.id}: {e}")

        return request
