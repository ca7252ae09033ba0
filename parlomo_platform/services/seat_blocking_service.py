"""
Seat blocking service: hold seats on an event's seats.io chart back from sale.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheKeyBuilder, CacheTTL, get_cache
from ..models import EventType, PublicEvent, SeatBlock, TicketType, User
from ..models.seat_block import BlockReason, block_display_name
from ..utils.currency import format_currency
from ..utils.exceptions import ValidationError
from ..utils.logging_config import log_business_event
from .public_event_service import PublicEventService, ensure_event_owner
from .seatsio_client import SeatsioClient

logger = logging.getLogger(__name__)

HELD_STATUSES = ("reservedByToken", "held")


def summarize_category(label: str, summary: Dict[str, Any]) -> Dict[str, int]:
    """Turn a seats.io category summary into available/booked/held/blocked counts."""
    by_status = summary.get("byStatus", {}) or {}
    total = int(summary.get("count", sum(by_status.values())))
    available = int(by_status.get("free", 0))
    booked = int(by_status.get("booked", 0))
    held = sum(int(by_status.get(status, 0)) for status in HELD_STATUSES)
    return {
        "category_label": label,
        "total": total,
        "available": available,
        "booked": booked,
        "held": held,
        "blocked": max(0, total - available - booked - held),
    }


class SeatBlockingService:
    """Service class for blocking seats on seated events."""

    def __init__(self, db: AsyncSession, client: Optional[SeatsioClient] = None):
        self.db = db
        self.events = PublicEventService(db)
        self.client = client or SeatsioClient()
        self.cache = get_cache()

    async def _seated_event(self, event_id: UUID, user: User) -> PublicEvent:
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)
        if event.event_type != EventType.SEATED or not event.seatsio_event_key:
            raise ValidationError(
                "Seat blocking is only available for seated events with a seating chart",
                field_errors={"event_type": ["must be seated with a seats.io event key"]}
            )
        return event

    async def block_seats(
        self,
        event_id: UUID,
        seat_labels: List[str],
        reason: BlockReason,
        user: User,
        notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Block seats on the chart and record who blocked them and why.

        The seats.io object status is the reason's display name. Seats that
        are already blocked take the new reason.

        Raises:
            ValidationError: Event is not seated
            SeatsioServiceError: seats.io rejected the request
        """
        event = await self._seated_event(event_id, user)
        status = block_display_name(reason)

        await self.client.change_object_status(event.seatsio_event_key, seat_labels, status)

        existing = await self._blocks_by_label(event.id, seat_labels)
        for label in seat_labels:
            block = existing.get(label)
            if block is None:
                self.db.add(SeatBlock(
                    event_id=event.id,
                    seat_label=label,
                    reason=reason,
                    notes=notes,
                    blocked_by=user.id,
                ))
            else:
                block.reason = reason
                block.notes = notes
                block.blocked_by = user.id
        await self.db.commit()

        await self.cache.delete(CacheKeyBuilder.seat_availability(str(event.id)))
        log_business_event(
            "seats_blocked",
            {"event_id": str(event.id), "count": len(seat_labels), "reason": reason.value},
            user_id=str(user.id)
        )
        return {
            "message": f"{len(seat_labels)} seat(s) blocked as {status}",
            "status": status,
            "seat_labels": seat_labels,
        }

    async def unblock_seats(self, event_id: UUID, seat_labels: List[str], user: User) -> Dict[str, Any]:
        """Release seats on the chart and remove their local block records."""
        event = await self._seated_event(event_id, user)

        await self.client.release_objects(event.seatsio_event_key, seat_labels)

        await self.db.execute(
            delete(SeatBlock).where(
                SeatBlock.event_id == event.id,
                SeatBlock.seat_label.in_(seat_labels),
            )
        )
        await self.db.commit()

        await self.cache.delete(CacheKeyBuilder.seat_availability(str(event.id)))
        logger.info(f"Unblocked {len(seat_labels)} seats for event {event.id}")
        return {"message": f"{len(seat_labels)} seat(s) released", "seat_labels": seat_labels}

    async def list_blocked_seats(self, event_id: UUID, user: User) -> List[SeatBlock]:
        event = await self.events.get_event(event_id)
        ensure_event_owner(event, user)
        result = await self.db.execute(
            select(SeatBlock)
            .where(SeatBlock.event_id == event.id)
            .order_by(SeatBlock.seat_label)
        )
        return list(result.scalars().all())

    async def seat_availability(self, event_id: UUID, user: User) -> Dict[str, Any]:
        """
        Seat counts per chart category, with the ticket type sold for it.

        A ticket type matches a category when its seat section equals the
        category label (case-insensitive).
        """
        event = await self._seated_event(event_id, user)

        cache_key = CacheKeyBuilder.seat_availability(str(event.id))
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        summary = await self.client.summary_by_category(event.seatsio_event_key)

        result = await self.db.execute(
            select(TicketType).where(TicketType.event_id == event.id, TicketType.active.is_(True))
        )
        by_section = {
            tt.seat_section.strip().lower(): tt
            for tt in result.scalars().all()
            if tt.seat_section
        }

        categories = {}
        for label, data in summary.items():
            entry = summarize_category(label, data or {})
            ticket_type = by_section.get(label.strip().lower())
            entry["ticket_type"] = {
                "id": str(ticket_type.id),
                "name": ticket_type.name,
                "price": ticket_type.price,
                "price_formatted": format_currency(ticket_type.price, ticket_type.currency),
                "currency": ticket_type.currency,
            } if ticket_type else None
            categories[label] = entry

        availability = {
            "event_id": str(event.id),
            "seatsio_event_key": event.seatsio_event_key,
            "categories": categories,
        }
        await self.cache.set(cache_key, availability, ttl=CacheTTL.SEAT_AVAILABILITY)
        return availability

    async def _blocks_by_label(self, event_id: UUID, labels: List[str]) -> Dict[str, SeatBlock]:
        result = await self.db.execute(
            select(SeatBlock).where(SeatBlock.event_id == event_id, SeatBlock.seat_label.in_(labels))
        )
        return {block.seat_label: block for block in result.scalars().all()}
