"""
Order service: buyer and organizer views of orders, tickets and revenue.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheInvalidator
from ..models import (
    Order,
    OrderItem,
    OrderStatus,
    PublicEvent,
    Ticket,
    TicketStatus,
    TicketType,
    User,
)
from ..models.base import utcnow
from ..utils.exceptions import AuthorizationError, InvalidStateTransitionError, OrderNotFoundError
from ..utils.fees import calculate_organizer_payout
from .public_event_service import PublicEventService, ensure_event_owner
from .ticket_type_service import TicketTypeService

logger = logging.getLogger(__name__)


def ticket_to_dict(ticket: Ticket, ticket_type_name: Optional[str]) -> Dict[str, Any]:
    return {
        "id": ticket.id,
        "order_id": ticket.order_id,
        "event_id": ticket.event_id,
        "ticket_type_id": ticket.ticket_type_id,
        "ticket_type_name": ticket_type_name,
        "code": ticket.code,
        "qr_payload": ticket.qr_payload,
        "barcode": ticket.barcode,
        "status": ticket.status,
        "status_label": ticket.status_label,
        "attendee_name": ticket.attendee_name,
        "attendee_email": ticket.attendee_email,
        "seat_section": ticket.seat_section,
        "seat_row": ticket.seat_row,
        "seat_number": ticket.seat_number,
        "used_at": ticket.used_at,
        "scan_location": ticket.scan_location,
    }


def can_refund_ticket(ticket: Ticket, ticket_type: Optional[TicketType], event: PublicEvent) -> bool:
    """Refundable type, still valid and the event has not happened yet."""
    refundable = ticket_type.refundable if ticket_type else False
    return refundable and ticket.status == TicketStatus.VALID and not event.is_past


def can_transfer_ticket(ticket: Ticket, ticket_type: Optional[TicketType], event: PublicEvent) -> bool:
    allowed = ticket_type.transfer_allowed if ticket_type else False
    return allowed and ticket.status == TicketStatus.VALID and not event.is_past


class OrderService:
    """Service class for order and ticket queries."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = PublicEventService(db)

    async def get_order(self, order_id: UUID, user: User) -> Order:
        """
        Fetch an order visible to ``user``.

        Buyers see their own orders; the event organizer and admins see all
        orders of the event.
        """
        order = await self.db.get(Order, order_id)
        if not order:
            raise OrderNotFoundError(str(order_id))

        if order.user_id == user.id or user.is_admin:
            return order

        event = await self.events.get_event(order.event_id)
        if event.organizer_id != user.id:
            raise AuthorizationError("You do not have access to this order")
        return order

    async def get_order_tickets(self, order_id: UUID, user: User) -> List[Dict[str, Any]]:
        """Tickets of an order with their type name and refund / transfer eligibility."""
        order = await self.get_order(order_id, user)
        event = await self.events.get_event(order.event_id)
        result = await self.db.execute(
            select(Ticket, TicketType)
            .outerjoin(TicketType, TicketType.id == Ticket.ticket_type_id)
            .where(Ticket.order_id == order.id)
            .order_by(Ticket.created_at, Ticket.code)
        )
        tickets = []
        for ticket, ticket_type in result.all():
            data = ticket_to_dict(ticket, ticket_type.name if ticket_type else None)
            data["can_refund"] = can_refund_ticket(ticket, ticket_type, event)
            data["can_transfer"] = can_transfer_ticket(ticket, ticket_type, event)
            tickets.append(data)
        return tickets

    async def list_my_orders(self, user: User) -> List[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.user_id == user.id)
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_event_orders(
        self,
        event_id: UUID,
        user: User,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Orders of one event with their ticket counts, newest first.

        Returns:
            Tuple of (order dicts with ``order`` and ``ticket_count``, total)
        """
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)

        conditions = [Order.event_id == event.id]
        if status is not None:
            conditions.append(Order.status == status)

        count_result = await self.db.execute(select(func.count(Order.id)).where(*conditions))
        total = count_result.scalar() or 0

        ticket_counts = (
            select(Ticket.order_id, func.count(Ticket.id).label("ticket_count"))
            .group_by(Ticket.order_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Order, func.coalesce(ticket_counts.c.ticket_count, 0))
            .outerjoin(ticket_counts, ticket_counts.c.order_id == Order.id)
            .where(*conditions)
            .order_by(Order.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        orders = [{"order": order, "ticket_count": int(count)} for order, count in result.all()]
        return orders, total

    async def list_attendees(self, event_id: UUID, user: User) -> List[Dict[str, Any]]:
        """Ticket holders of an event (cancelled and refunded tickets excluded)."""
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)

        result = await self.db.execute(
            select(Ticket, TicketType.name, Order.order_number)
            .join(Order, Order.id == Ticket.order_id)
            .outerjoin(TicketType, TicketType.id == Ticket.ticket_type_id)
            .where(
                Ticket.event_id == event.id,
                Ticket.status.in_([TicketStatus.VALID, TicketStatus.USED]),
            )
            .order_by(Ticket.attendee_name, Ticket.code)
        )
        return [
            {
                "id": ticket.id,
                "name": ticket.attendee_name,
                "email": ticket.attendee_email,
                "ticket_type": type_name,
                "ticket_code": ticket.code,
                "order_number": order_number,
                "status": ticket.status,
                "checked_in": ticket.checked_in,
                "checked_in_at": ticket.used_at,
            }
            for ticket, type_name, order_number in result.all()
        ]

    async def event_financials(self, event_id: UUID, user: User) -> Dict[str, Any]:
        """Revenue summary from paid orders plus the organizer payout breakdown."""
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)

        paid = await self.db.execute(
            select(
                func.count(Order.id),
                func.coalesce(func.sum(Order.total), 0),
                func.coalesce(func.sum(Order.fees), 0),
                func.coalesce(func.sum(Order.tax), 0),
                func.coalesce(func.sum(Order.discount), 0),
                func.coalesce(func.sum(Order.subtotal), 0),
            ).where(Order.event_id == event.id, Order.status == OrderStatus.PAID)
        )
        order_count, total_revenue, total_fees, total_tax, total_discounts, subtotal = paid.one()

        sold = await self.db.execute(
            select(func.coalesce(func.sum(OrderItem.quantity), 0))
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.event_id == event.id, Order.status == OrderStatus.PAID)
        )
        tickets_sold = int(sold.scalar() or 0)

        refunded = await self.db.execute(
            select(func.coalesce(func.sum(Order.subtotal - Order.discount), 0))
            .where(Order.event_id == event.id, Order.status == OrderStatus.REFUNDED)
        )
        refunded_amount = int(refunded.scalar() or 0)

        ticket_revenue = int(subtotal) - int(total_discounts)
        payout = calculate_organizer_payout(
            ticket_revenue,
            0,
            event.platform_fee_percentage,
            event.currency,
        )

        return {
            "event_id": event.id,
            "currency": event.currency,
            "order_count": int(order_count),
            "tickets_sold": tickets_sold,
            "total_revenue": int(total_revenue),
            "total_fees": int(total_fees),
            "total_tax": int(total_tax),
            "total_discounts": int(total_discounts),
            "ticket_revenue": ticket_revenue,
            "net_revenue": int(total_revenue) - int(total_fees),
            "refunded_amount": refunded_amount,
            "payout": payout,
        }

    async def refund_order(self, order_id: UUID) -> Order:
        """
        Refund a paid order: tickets are refunded and sold counts given back.

        Does not commit; refund processing commits once per request.

        Raises:
            OrderNotFoundError: Unknown order
            InvalidStateTransitionError: Order is not paid
        """
        order = await self.db.get(Order, order_id)
        if not order:
            raise OrderNotFoundError(str(order_id))
        if order.status != OrderStatus.PAID:
            raise InvalidStateTransitionError(
                "order", str(order.id), order.status.value, OrderStatus.REFUNDED.value,
                message=f"Only paid orders can be refunded (order is {order.status.value})"
            )

        await self.db.execute(
            update(Ticket)
            .where(
                Ticket.order_id == order.id,
                Ticket.status.in_([TicketStatus.VALID, TicketStatus.USED]),
            )
            .values(status=TicketStatus.REFUNDED)
            .execution_options(synchronize_session=False)
        )

        ticket_types = TicketTypeService(self.db)
        for item in order.items:
            if item.ticket_type_id:
                await ticket_types.release_sold(item.ticket_type_id, item.quantity)

        order.status = OrderStatus.REFUNDED
        order.refunded_at = utcnow()
        await self.db.flush()

        await CacheInvalidator.invalidate_ticketing_caches(str(order.event_id))
        logger.info(f"Refunded order {order.order_number}")
        return order
