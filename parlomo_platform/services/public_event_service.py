"""
Public event service: organizer-managed events and their lifecycle.
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import String, asc, cast, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import CacheInvalidator, CacheKeyBuilder, CacheTTL, get_cache
from ..config import get_settings
from ..models import (
    EventStatus,
    Order,
    OrderItem,
    OrderStatus,
    PublicEvent,
    Ticket,
    TicketStatus,
    TicketType,
    User,
)
from ..models.base import as_aware, utcnow
from ..schemas.public_event import PublicEventCreate, PublicEventResponse, PublicEventUpdate
from ..utils.exceptions import (
    AuthorizationError,
    EventNotFoundError,
    InvalidStateTransitionError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from ..utils.slugs import slugify, unique_slug
from .category_service import CategoryService

logger = logging.getLogger(__name__)


# Columns that cannot be cleared through an update
REQUIRED_FIELDS = {
    "start_date", "timezone", "currency", "event_type", "waitlist_enabled",
    "gallery_images", "age_restriction", "tax_rate", "service_charges", "tags", "featured",
}

SORTABLE_FIELDS = {
    "created_at": PublicEvent.created_at,
    "start_date": PublicEvent.start_date,
    "title": PublicEvent.title,
    "updated_at": PublicEvent.updated_at,
}


def ensure_event_owner(event: PublicEvent, user: Optional[User]) -> None:
    """Only the organizer who owns an event (or an admin) may manage it."""
    if user is not None and (user.is_admin or event.organizer_id == user.id):
        return
    raise AuthorizationError("You can only manage your own events")


class PublicEventService:
    """Service class for public event management operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.cache = get_cache()

    async def create_event(self, data: PublicEventCreate, organizer: User) -> PublicEvent:
        """
        Create a draft event owned by ``organizer``.

        Raises:
            CategoryNotFoundError: If the category reference is unknown
        """
        values = data.model_dump(exclude_unset=True, exclude={"category"})
        values = {key: value for key, value in values.items() if value is not None}

        category_id = None
        if data.category:
            category = await CategoryService(self.db).resolve(data.category)
            category_id = category.id

        event = PublicEvent(
            **values,
            slug=await unique_slug(slugify(data.title, fallback="event"), self._slug_taken),
            category_id=category_id,
            organizer_id=organizer.id,
            status=EventStatus.DRAFT,
        )
        event.currency = values.get("currency") or get_settings().default_currency
        if not event.organizer_name:
            event.organizer_name = organizer.full_name
        if not event.organizer_email:
            event.organizer_email = organizer.email

        self.db.add(event)
        await self.db.commit()
        await self.db.refresh(event)

        await CacheInvalidator.invalidate_event_list_caches()
        logger.info(f"Created event {event.slug} for organizer {organizer.id}")
        return event

    async def get_event(self, event_id: UUID) -> PublicEvent:
        event = await self.db.get(PublicEvent, event_id)
        if not event:
            raise EventNotFoundError(str(event_id))
        return event

    async def get_event_detail(self, event_id: UUID, viewer: Optional[User] = None) -> Dict[str, Any]:
        """Serialized event, cached once published."""
        cache_key = CacheKeyBuilder.event_detail(str(event_id))
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        event = await self.get_event(event_id)
        self._ensure_visible(event, viewer)
        return await self._serialize_and_cache(event, cache_key)

    async def get_event_by_slug(self, slug: str, viewer: Optional[User] = None) -> Dict[str, Any]:
        cache_key = CacheKeyBuilder.event_slug(slug.lower())
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        result = await self.db.execute(select(PublicEvent).where(PublicEvent.slug == slug.lower()))
        event = result.scalar_one_or_none()
        if not event:
            raise EventNotFoundError(slug)
        self._ensure_visible(event, viewer)
        return await self._serialize_and_cache(event, cache_key)

    async def query_events(
        self,
        viewer: Optional[User] = None,
        organizer_id: Optional[UUID] = None,
        status: Optional[EventStatus] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        city: Optional[str] = None,
        start_date_from: Optional[datetime] = None,
        start_date_to: Optional[datetime] = None,
        featured: Optional[bool] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc"
    ) -> Tuple[List[PublicEvent], int]:
        """
        Filtered, paginated event listing.

        Anonymous callers and buyers only ever see published events;
        organizers also see their own drafts when filtering by themselves;
        admins see everything.

        Returns:
            Tuple of (events, total count)
        """
        conditions = []

        can_see_all = viewer is not None and (
            viewer.is_admin or (organizer_id is not None and organizer_id == viewer.id)
        )
        if not can_see_all:
            conditions.append(PublicEvent.status == EventStatus.PUBLISHED)
        elif status is not None:
            conditions.append(PublicEvent.status == status)

        if organizer_id is not None:
            conditions.append(PublicEvent.organizer_id == organizer_id)
        if category:
            resolved = await CategoryService(self.db).resolve(category)
            conditions.append(PublicEvent.category_id == resolved.id)
        if search:
            term = f"%{search.strip()}%"
            conditions.append(or_(
                PublicEvent.title.ilike(term),
                PublicEvent.description.ilike(term),
                cast(PublicEvent.tags, String).ilike(term),
            ))
        if city:
            conditions.append(PublicEvent.city.ilike(city.strip()))
        if start_date_from:
            conditions.append(PublicEvent.start_date >= start_date_from)
        if start_date_to:
            conditions.append(PublicEvent.start_date <= start_date_to)
        if featured is not None:
            conditions.append(PublicEvent.featured == featured)

        count_result = await self.db.execute(select(func.count(PublicEvent.id)).where(*conditions))
        total = count_result.scalar() or 0

        column = SORTABLE_FIELDS.get(sort_by, PublicEvent.created_at)
        ordering = asc(column) if sort_order == "asc" else desc(column)

        result = await self.db.execute(
            select(PublicEvent)
            .where(*conditions)
            .order_by(ordering, PublicEvent.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_published(
        self,
        page: int = 1,
        limit: int = 10,
        **filters: Any
    ) -> Dict[str, Any]:
        """Anonymous listing served from cache; shape matches the list response."""
        filters_hash = self._filters_hash({"page": page, "limit": limit, **filters})
        cache_key = CacheKeyBuilder.event_list(filters_hash, page, limit)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        events, total = await self.query_events(viewer=None, page=page, limit=limit, **filters)
        payload = {
            "events": [PublicEventResponse.model_validate(event).model_dump(mode="json") for event in events],
            "total": total,
        }
        await self.cache.set(cache_key, payload, CacheTTL.EVENT_LIST)
        return payload

    async def update_event(self, event_id: UUID, data: PublicEventUpdate, user: User) -> PublicEvent:
        """
        Update an event; a new title regenerates the slug.

        Raises:
            AuthorizationError: If the caller does not own the event
            InvalidStateTransitionError: If the event is cancelled or completed
            ValidationError: If the resulting dates are inconsistent
        """
        event = await self.get_event(event_id)
        ensure_event_owner(event, user)
        if not event.is_editable:
            raise InvalidStateTransitionError(
                "event", str(event.id), event.status.value, "update",
                message=f"Cannot edit a {event.status.value} event"
            )

        old_slug = event.slug
        updates = data.model_dump(exclude_unset=True)

        category_ref = updates.pop("category", None)
        if category_ref:
            category = await CategoryService(self.db).resolve(category_ref)
            event.category_id = category.id

        new_title = updates.pop("title", None)
        if new_title and new_title != event.title:
            event.title = new_title
            event.slug = await unique_slug(
                slugify(new_title, fallback="event"),
                lambda slug: self._slug_taken(slug, exclude_id=event.id)
            )

        for field, value in updates.items():
            if value is None and field in REQUIRED_FIELDS:
                continue
            setattr(event, field, value)

        end_date = as_aware(event.end_date)
        if end_date and end_date < as_aware(event.start_date):
            raise ValidationError(
                "End date must be after start date",
                field_errors={"end_date": ["must not precede start_date"]}
            )

        await self.db.commit()
        await self.db.refresh(event)

        await CacheInvalidator.invalidate_event_caches(str(event.id), old_slug)
        if old_slug != event.slug:
            await self.cache.delete(CacheKeyBuilder.event_slug(event.slug))
        return event

    async def delete_event(self, event_id: UUID, user: User) -> PublicEvent:
        """Events are never removed; deleting cancels."""
        return await self.cancel_event(event_id, user, reason="Event deleted by organizer")

    async def publish_event(self, event_id: UUID, user: User) -> PublicEvent:
        event = await self.get_event(event_id)
        ensure_event_owner(event, user)

        if event.status == EventStatus.PUBLISHED:
            raise InvalidStateTransitionError(
                "event", str(event.id), event.status.value, EventStatus.PUBLISHED.value,
                message="Event is already published"
            )
        if event.status != EventStatus.DRAFT:
            raise InvalidStateTransitionError(
                "event", str(event.id), event.status.value, EventStatus.PUBLISHED.value,
                message=f"Cannot publish a {event.status.value} event"
            )

        event.status = EventStatus.PUBLISHED
        event.published_at = utcnow()
        await self._save(event)

        log_business_event("event_published", {"event_id": str(event.id), "slug": event.slug}, str(user.id))
        return event

    async def unpublish_event(self, event_id: UUID, user: User) -> PublicEvent:
        event = await self.get_event(event_id)
        ensure_event_owner(event, user)

        if event.status != EventStatus.PUBLISHED:
            raise InvalidStateTransitionError(
                "event", str(event.id), event.status.value, EventStatus.DRAFT.value,
                message="Only published events can be unpublished"
            )

        event.status = EventStatus.DRAFT
        await self._save(event)
        return event

    async def cancel_event(self, event_id: UUID, user: User, reason: Optional[str] = None) -> PublicEvent:
        """
        Cancel an event, stop ticket sales and notify buyers.

        Raises:
            InvalidStateTransitionError: If the event is already cancelled or completed
        """
        event = await self.get_event(event_id)
        ensure_event_owner(event, user)

        if event.status == EventStatus.CANCELLED:
            raise InvalidStateTransitionError(
                "event", str(event.id), event.status.value, EventStatus.CANCELLED.value,
                message="Event is already cancelled"
            )
        if event.status == EventStatus.COMPLETED:
            raise InvalidStateTransitionError(
                "event", str(event.id), event.status.value, EventStatus.CANCELLED.value,
                message="Cannot cancel a completed event"
            )

        had_sales = event.status == EventStatus.PUBLISHED
        event.status = EventStatus.CANCELLED
        event.cancelled_at = utcnow()
        event.cancellation_reason = reason

        await self.db.execute(
            update(TicketType)
            .where(TicketType.event_id == event.id)
            .values(active=False)
        )
        await self._save(event)
        await CacheInvalidator.invalidate_ticketing_caches(str(event.id))

        if had_sales:
            try:
                from ..tasks.notification_tasks import send_event_cancellation_task
                send_event_cancellation_task.delay(str(event.id))
            except Exception as e:
                logger.warning(f"Failed to queue cancellation notices for event {event.id}: {e}")

        log_business_event(
            "event_cancelled",
            {"event_id": str(event.id), "reason": reason},
            str(user.id)
        )
        return event

    async def complete_event(self, event_id: UUID, user: User) -> PublicEvent:
        event = await self.get_event(event_id)
        ensure_event_owner(event, user)

        if event.status != EventStatus.PUBLISHED:
            raise InvalidStateTransitionError(
                "event", str(event.id), event.status.value, EventStatus.COMPLETED.value,
                message="Only published events can be completed"
            )

        event.status = EventStatus.COMPLETED
        await self._save(event)
        return event

    async def event_stats(self, event_id: UUID, user: User) -> Dict[str, Any]:
        """Sales, attendance and promo figures for one event (paid orders only)."""
        event = await self.get_event(event_id)
        ensure_event_owner(event, user)

        order_totals = await self.db.execute(
            select(
                func.count(Order.id),
                func.coalesce(func.sum(Order.total), 0),
            ).where(Order.event_id == event.id, Order.status == OrderStatus.PAID)
        )
        total_orders, total_revenue = order_totals.one()

        promo_totals = await self.db.execute(
            select(
                func.count(Order.id),
                func.coalesce(func.sum(Order.discount), 0),
            ).where(
                Order.event_id == event.id,
                Order.status == OrderStatus.PAID,
                Order.promo_code_id.isnot(None),
            )
        )
        promo_usage, promo_discount = promo_totals.one()

        by_type = await self.db.execute(
            select(
                OrderItem.ticket_type_name,
                func.coalesce(func.sum(OrderItem.quantity), 0),
                func.coalesce(func.sum(OrderItem.total), 0),
            )
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.event_id == event.id, Order.status == OrderStatus.PAID)
            .group_by(OrderItem.ticket_type_name)
        )
        ticket_type_breakdown: Dict[str, int] = {}
        revenue_by_ticket_type: Dict[str, int] = {}
        for name, quantity, revenue in by_type.all():
            ticket_type_breakdown[name] = int(quantity)
            revenue_by_ticket_type[name] = int(revenue)

        attendees = await self.db.execute(
            select(Ticket.status, func.count(Ticket.id))
            .where(
                Ticket.event_id == event.id,
                Ticket.status.in_([TicketStatus.VALID, TicketStatus.USED]),
            )
            .group_by(Ticket.status)
        )
        attendee_counts = {status: count for status, count in attendees.all()}
        checked_in = attendee_counts.get(TicketStatus.USED, 0)

        capacity_result = await self.db.execute(
            select(
                func.coalesce(func.sum(TicketType.capacity), 0),
                func.coalesce(func.sum(TicketType.sold), 0),
            ).where(TicketType.event_id == event.id)
        )
        type_capacity, sold = capacity_result.one()
        capacity = event.global_capacity or int(type_capacity)

        return {
            "event_id": event.id,
            "tickets_sold": int(sold),
            "total_revenue": int(total_revenue),
            "total_orders": int(total_orders),
            "total_attendees": sum(attendee_counts.values()),
            "checked_in_count": checked_in,
            "remaining_capacity": max(0, capacity - int(sold)),
            "ticket_type_breakdown": ticket_type_breakdown,
            "revenue_by_ticket_type": revenue_by_ticket_type,
            "promo_code_usage_count": int(promo_usage),
            "promo_code_discount_total": int(promo_discount),
            "currency": event.currency,
        }

    async def events_overview(self) -> Dict[str, Any]:
        """Counts by status and category across the platform (admin dashboard)."""
        cache_key = CacheKeyBuilder.event_stats()
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        by_status = await self.db.execute(
            select(PublicEvent.status, func.count(PublicEvent.id)).group_by(PublicEvent.status)
        )
        status_counts = {status.value: count for status, count in by_status.all()}

        by_category = await self.db.execute(
            select(PublicEvent.category_id, func.count(PublicEvent.id)).group_by(PublicEvent.category_id)
        )
        category_counts = {
            str(category_id) if category_id else "uncategorized": count
            for category_id, count in by_category.all()
        }

        overview = {
            "total": sum(status_counts.values()),
            "draft": status_counts.get(EventStatus.DRAFT.value, 0),
            "published": status_counts.get(EventStatus.PUBLISHED.value, 0),
            "cancelled": status_counts.get(EventStatus.CANCELLED.value, 0),
            "completed": status_counts.get(EventStatus.COMPLETED.value, 0),
            "by_category": category_counts,
        }
        await self.cache.set(cache_key, overview, CacheTTL.EVENT_STATS)
        return overview

    def _ensure_visible(self, event: PublicEvent, viewer: Optional[User]) -> None:
        if event.status == EventStatus.PUBLISHED:
            return
        if viewer is not None and (viewer.is_admin or viewer.id == event.organizer_id):
            return
        raise EventNotFoundError(str(event.id))

    async def _serialize_and_cache(self, event: PublicEvent, cache_key: str) -> Dict[str, Any]:
        data = PublicEventResponse.model_validate(event).model_dump(mode="json")
        if event.status == EventStatus.PUBLISHED:
            await self.cache.set(cache_key, data, CacheTTL.EVENT_DETAIL)
        return data

    async def _save(self, event: PublicEvent) -> None:
        await self.db.commit()
        await self.db.refresh(event)
        await CacheInvalidator.invalidate_event_caches(str(event.id), event.slug)

    async def _slug_taken(self, slug: str, exclude_id: Optional[UUID] = None) -> bool:
        query = select(PublicEvent.id).where(PublicEvent.slug == slug)
        if exclude_id is not None:
            query = query.where(PublicEvent.id != exclude_id)
        result = await self.db.execute(query)
        return result.first() is not None

    @staticmethod
    def _filters_hash(filters: Dict[str, Any]) -> str:
        """Stable hash of listing filters for cache keys."""
        normalized = json.dumps(filters, sort_keys=True, default=str)
        return hashlib.md5(normalized.encode()).hexdigest()
