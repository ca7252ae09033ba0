"""
Ticket type service: CRUD and capacity bookkeeping.

Counter changes are single conditional UPDATE statements so two checkouts
racing for the last tickets can never both win.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheInvalidator, CacheKeyBuilder, CacheTTL, get_cache
from ..models import PublicEvent, TicketType, User
from ..models.base import as_aware
from ..schemas.ticketing import TicketTypeCreate, TicketTypeResponse, TicketTypeUpdate
from ..utils.currency import calculate_percentage
from ..utils.exceptions import (
    AuthorizationError,
    InsufficientCapacityError,
    TicketTypeNotFoundError,
    ValidationError,
)
from .public_event_service import PublicEventService, ensure_event_owner

logger = logging.getLogger(__name__)


class TicketTypeService:
    """Service class for ticket type management and capacity operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.cache = get_cache()
        self.events = PublicEventService(db)

    async def list_ticket_types(
        self,
        event_id: UUID,
        include_hidden: bool = False,
        user: Optional[User] = None
    ) -> List[TicketType]:
        """Ticket types in display order; hidden and inactive ones only for the event owner."""
        event = await self.events.get_event(event_id)
        if include_hidden:
            ensure_event_owner(event, user)
        query = select(TicketType).where(TicketType.event_id == event_id)
        if not include_hidden:
            query = query.where(TicketType.visible.is_(True))
        result = await self.db.execute(query.order_by(TicketType.display_order, TicketType.created_at))
        return list(result.scalars().all())

    async def get_ticket_type(self, ticket_type_id: UUID) -> TicketType:
        ticket_type = await self.db.get(TicketType, ticket_type_id)
        if not ticket_type:
            raise TicketTypeNotFoundError(str(ticket_type_id))
        return ticket_type

    async def get_event_ticket_type(self, event_id: UUID, ticket_type_id: UUID) -> TicketType:
        """Fetch a ticket type and check it belongs to ``event_id``."""
        ticket_type = await self.get_ticket_type(ticket_type_id)
        if ticket_type.event_id != event_id:
            raise AuthorizationError("Ticket type does not belong to this event")
        return ticket_type

    async def create_ticket_type(self, event_id: UUID, data: TicketTypeCreate, user: User) -> TicketType:
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)

        values = data.model_dump()
        values["currency"] = (values.get("currency") or event.currency).upper()

        ticket_type = TicketType(event_id=event.id, sold=0, reserved=0, **values)
        self.db.add(ticket_type)
        await self.db.commit()
        await self.db.refresh(ticket_type)

        await CacheInvalidator.invalidate_ticketing_caches(str(event.id))
        logger.info(f"Created ticket type {ticket_type.name} for event {event.id}")
        return ticket_type

    async def update_ticket_type(
        self,
        event_id: UUID,
        ticket_type_id: UUID,
        data: TicketTypeUpdate,
        user: User
    ) -> TicketType:
        """
        Update a ticket type.

        Raises:
            AuthorizationError: If the ticket type belongs to another event
            ValidationError: If capacity would drop below sold + reserved, or
                the per-order limits / sales window become inconsistent
        """
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)
        ticket_type = await self.get_event_ticket_type(event.id, ticket_type_id)

        updates = data.model_dump(exclude_unset=True)

        new_capacity = updates.get("capacity")
        if new_capacity is not None:
            min_capacity = ticket_type.sold + ticket_type.reserved
            if new_capacity < min_capacity:
                raise ValidationError(
                    f"Capacity cannot be lower than {min_capacity} (sold + reserved)",
                    details={
                        "min_capacity": min_capacity,
                        "sold": ticket_type.sold,
                        "reserved": ticket_type.reserved,
                    }
                )

        min_per_order = updates.get("min_per_order") or ticket_type.min_per_order
        max_per_order = updates.get("max_per_order") or ticket_type.max_per_order
        if min_per_order > max_per_order:
            raise ValidationError(
                "min_per_order cannot exceed max_per_order",
                field_errors={"min_per_order": ["greater than max_per_order"]}
            )

        sales_start = as_aware(updates.get("sales_start", ticket_type.sales_start))
        sales_end = as_aware(updates.get("sales_end", ticket_type.sales_end))
        if sales_start and sales_end and sales_end <= sales_start:
            raise ValidationError(
                "sales_end must be after sales_start",
                field_errors={"sales_end": ["must be after sales_start"]}
            )

        for field, value in updates.items():
            if value is None and field not in ("description", "sales_start", "sales_end", "seat_section", "seat_row"):
                continue
            setattr(ticket_type, field, value)

        await self.db.commit()
        await self.db.refresh(ticket_type)

        await CacheInvalidator.invalidate_ticketing_caches(str(event.id))
        return ticket_type

    async def delete_ticket_type(self, event_id: UUID, ticket_type_id: UUID, user: User) -> Dict[str, Any]:
        """
        Delete a ticket type nobody has bought or reserved; otherwise deactivate it.

        Returns:
            ``{deleted, deactivated, message}``
        """
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)
        ticket_type = await self.get_event_ticket_type(event.id, ticket_type_id)

        if ticket_type.sold > 0 or ticket_type.reserved > 0:
            ticket_type.active = False
            await self.db.commit()
            await CacheInvalidator.invalidate_ticketing_caches(str(event.id))
            return {
                "deleted": False,
                "deactivated": True,
                "message": "Ticket type has sales and was deactivated instead of deleted",
            }

        await self.db.delete(ticket_type)
        await self.db.commit()
        await CacheInvalidator.invalidate_ticketing_caches(str(event.id))
        return {"deleted": True, "deactivated": False, "message": "Ticket type deleted"}

    async def reserve(self, ticket_type_id: UUID, quantity: int) -> None:
        """
        Hold ``quantity`` tickets; does not commit.

        Raises:
            InsufficientCapacityError: If fewer than ``quantity`` are available
        """
        result = await self.db.execute(
            update(TicketType)
            .where(
                TicketType.id == ticket_type_id,
                TicketType.capacity - TicketType.sold - TicketType.reserved >= quantity,
            )
            .values(reserved=TicketType.reserved + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            ticket_type = await self.get_ticket_type(ticket_type_id)
            await self.db.refresh(ticket_type)
            raise InsufficientCapacityError(
                requested=quantity,
                available=ticket_type.available,
                ticket_type_id=str(ticket_type.id),
                ticket_type_name=ticket_type.name,
            )

    async def release(self, ticket_type_id: UUID, quantity: int) -> None:
        """Give back held tickets; ``reserved`` never goes below zero. Does not commit."""
        await self.db.execute(
            update(TicketType)
            .where(TicketType.id == ticket_type_id)
            .values(reserved=case(
                (TicketType.reserved >= quantity, TicketType.reserved - quantity),
                else_=0,
            ))
            .execution_options(synchronize_session=False)
        )

    async def mark_sold(self, ticket_type_id: UUID, quantity: int) -> None:
        """Turn held tickets into sold ones. Does not commit."""
        await self.db.execute(
            update(TicketType)
            .where(TicketType.id == ticket_type_id)
            .values(
                sold=TicketType.sold + quantity,
                reserved=case(
                    (TicketType.reserved >= quantity, TicketType.reserved - quantity),
                    else_=0,
                ),
            )
            .execution_options(synchronize_session=False)
        )

    async def release_sold(self, ticket_type_id: UUID, quantity: int) -> None:
        """Return refunded tickets to sale. Does not commit."""
        await self.db.execute(
            update(TicketType)
            .where(TicketType.id == ticket_type_id)
            .values(sold=case(
                (TicketType.sold >= quantity, TicketType.sold - quantity),
                else_=0,
            ))
            .execution_options(synchronize_session=False)
        )

    async def event_ticketing_view(self, event_id: UUID) -> Dict[str, Any]:
        """Visible ticket types with availability, cached briefly."""
        cache_key = CacheKeyBuilder.ticketing_view(str(event_id))
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        event: PublicEvent = await self.events.get_event(event_id)
        result = await self.db.execute(
            select(TicketType)
            .where(TicketType.event_id == event.id, TicketType.visible.is_(True))
            .order_by(TicketType.display_order, TicketType.created_at)
            .execution_options(populate_existing=True)
        )
        ticket_types = list(result.scalars().all())

        total_capacity = sum(ticket_type.capacity for ticket_type in ticket_types)
        total_sold = sum(ticket_type.sold for ticket_type in ticket_types)
        total_available = sum(ticket_type.available for ticket_type in ticket_types)

        view = {
            "event_id": str(event.id),
            "event_title": event.title,
            "event_type": event.event_type.value,
            "currency": event.currency,
            "seatsio_event_key": event.seatsio_event_key,
            "ticket_types": [
                TicketTypeResponse.model_validate(ticket_type).model_dump(mode="json")
                for ticket_type in ticket_types
            ],
            "summary": {
                "total_capacity": total_capacity,
                "total_sold": total_sold,
                "total_available": total_available,
                "sold_percentage": round(calculate_percentage(total_sold, total_capacity), 1),
                "sold_out": total_available == 0,
            },
        }
        await self.cache.set(cache_key, view, CacheTTL.TICKETING_VIEW)
        return view
