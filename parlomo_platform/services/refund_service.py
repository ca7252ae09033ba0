"""
Refund request service: organizers ask, admins decide, processing refunds orders.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    Order,
    OrderStatus,
    RefundRequest,
    RefundRequestStatus,
    RefundRequestType,
    User,
)
from ..schemas.financial import RefundRequestCreate, RefundRequestUpdate
from ..utils.exceptions import (
    AuthorizationError,
    FinancialRequestNotFoundError,
    InvalidStateTransitionError,
    ParlomoError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from .order_service import OrderService
from .public_event_service import PublicEventService, ensure_event_owner

logger = logging.getLogger(__name__)


class RefundService:
    """Service class for refund requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = PublicEventService(db)
        self.orders = OrderService(db)

    async def create_request(self, data: RefundRequestCreate, user: User) -> RefundRequest:
        """
        Raise a refund request for an event.

        Event cancellation requests cover every paid order of the event;
        single and bulk requests name their orders, which must be paid orders
        of that event.

        Raises:
            ValidationError: No refundable orders
        """
        event = await self.events.get_event(data.event_id)
        ensure_event_owner(event, user)

        query = select(Order).where(Order.event_id == event.id, Order.status == OrderStatus.PAID)
        if data.type != RefundRequestType.EVENT_CANCELLATION:
            query = query.where(Order.id.in_(data.order_ids))
        result = await self.db.execute(query)
        orders = list(result.scalars().all())

        if data.type != RefundRequestType.EVENT_CANCELLATION:
            found = {order.id for order in orders}
            missing = [str(order_id) for order_id in data.order_ids if order_id not in found]
            if missing:
                raise ValidationError(
                    "Some orders are not paid orders of this event",
                    field_errors={"order_ids": missing}
                )
        if not orders:
            raise ValidationError("This event has no paid orders to refund")

        request = RefundRequest(
            organizer_id=user.id,
            event_id=event.id,
            event_title=event.title,
            type=data.type,
            order_ids=[str(order.id) for order in orders],
            affected_orders_count=len(orders),
            total_refund_amount=sum(order.total for order in orders),
            currency=event.currency,
            reason=data.reason,
            description=data.description,
            status=RefundRequestStatus.PENDING,
        )
        self.db.add(request)
        await self.db.commit()
        await self.db.refresh(request)

        log_business_event(
            "refund_requested",
            {
                "request_id": str(request.id),
                "event_id": str(event.id),
                "type": data.type.value,
                "orders": request.affected_orders_count,
                "amount": request.total_refund_amount,
            },
            str(user.id)
        )
        return request

    async def list_requests(
        self,
        user: User,
        status: Optional[RefundRequestStatus] = None,
        organizer_id: Optional[UUID] = None,
        event_id: Optional[UUID] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[RefundRequest], int]:
        """Organizers only ever see their own requests; admins see all."""
        if not user.is_admin:
            organizer_id = user.id

        conditions = []
        if status is not None:
            conditions.append(RefundRequest.status == status)
        if organizer_id is not None:
            conditions.append(RefundRequest.organizer_id == organizer_id)
        if event_id is not None:
            conditions.append(RefundRequest.event_id == event_id)

        count_result = await self.db.execute(select(func.count(RefundRequest.id)).where(*conditions))
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(RefundRequest)
            .where(*conditions)
            .order_by(RefundRequest.requested_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_pending(self) -> List[RefundRequest]:
        result = await self.db.execute(
            select(RefundRequest)
            .where(RefundRequest.status == RefundRequestStatus.PENDING)
            .order_by(RefundRequest.requested_at.asc())
        )
        return list(result.scalars().all())

    async def get_request(self, request_id: UUID, user: User) -> RefundRequest:
        request = await self.db.get(RefundRequest, request_id)
        if not request:
            raise FinancialRequestNotFoundError("refund_request", str(request_id))
        if not user.is_admin and request.organizer_id != user.id:
            raise AuthorizationError("You can only view your own refund requests")
        return request

    async def approve(self, request_id: UUID, admin: User, admin_notes: Optional[str] = None) -> RefundRequest:
        request = await self.get_request(request_id, admin)
        request.approve(admin_notes, admin.id)
        return await self._decided(request, admin)

    async def reject(
        self,
        request_id: UUID,
        admin: User,
        reason: str,
        admin_notes: Optional[str] = None
    ) -> RefundRequest:
        request = await self.get_request(request_id, admin)
        request.reject(reason, admin_notes, admin.id)
        return await self._decided(request, admin)

    async def process(self, request_id: UUID, admin: User) -> RefundRequest:
        """
        Refund every order of an approved request.

        Orders that can no longer be refunded (already refunded, cancelled)
        are counted as failures with their error; the rest are refunded and
        the request becomes ``PROCESSED``.
        """
        request = await self.get_request(request_id, admin)
        if request.status != RefundRequestStatus.APPROVED:
            raise InvalidStateTransitionError(
                "refund_request", str(request.id), request.status.value,
                RefundRequestStatus.PROCESSED.value,
                message="Only approved refund requests can be processed"
            )

        processed = 0
        errors: List[Dict[str, Any]] = []
        for order_id in request.order_ids:
            try:
                await self.orders.refund_order(UUID(order_id))
                processed += 1
            except ParlomoError as e:
                logger.warning(f"Refund of order {order_id} failed for request {request.id}: {e.message}")
                errors.append({"order_id": order_id, "error": e.message})

        request.mark_as_processed(processed, len(errors), errors)
        return await self._decided(request, admin)

    async def update_request(self, request_id: UUID, data: RefundRequestUpdate, admin: User) -> RefundRequest:
        """
        Generic update: a status change goes through approve / reject / process.

        Raises:
            InvalidStateTransitionError: Status change not allowed from the current status
        """
        if data.status is None:
            request = await self.get_request(request_id, admin)
            if data.admin_notes is not None:
                request.admin_notes = data.admin_notes
                await self.db.commit()
            return request

        if data.status == RefundRequestStatus.APPROVED:
            return await self.approve(request_id, admin, data.admin_notes)
        if data.status == RefundRequestStatus.REJECTED:
            return await self.reject(request_id, admin, data.rejection_reason or "", data.admin_notes)
        if data.status == RefundRequestStatus.PROCESSED:
            return await self.process(request_id, admin)

        request = await self.get_request(request_id, admin)
        raise InvalidStateTransitionError(
            "refund_request", str(request.id), request.status.value, data.status.value
        )

    async def _decided(self, request: RefundRequest, admin: User) -> RefundRequest:
        await self.db.commit()
        await self.db.refresh(request)

        log_business_event(
            f"refund_request_{request.status.value.lower()}",
            {"request_id": str(request.id), "event_id": str(request.event_id)},
            str(admin.id)
        )

        try:
            from ..tasks.notification_tasks import send_refund_decision_task
            send_refund_decision_task.delay(str(request.id))
        except Exception as e:
            logger.warning(f"Failed to queue refund decision email for {request.id}: {e}")

        return request
