"""
Public event model for organizer-managed events.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, List, Optional, TYPE_CHECKING

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, DateTime, Enum, Float, ForeignKey, Integer, String, Text
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, as_aware, utcnow

if TYPE_CHECKING:
    from .user import User
    from .category import PublicEventCategory
    from .ticket_type import TicketType
    from .promo_code import PromoCode
    from .order import Order


class EventStatus(enum.Enum):
    """Lifecycle status of a public event."""
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class EventType(enum.Enum):
    """How admission to an event is sold."""
    GENERAL_ADMISSION = "general_admission"
    SEATED = "seated"


class PublicEvent(Base):
    """Public event listed on the marketplace and sold through ticketing."""

    __tablename__ = "public_events"

    title: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(220), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)

    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public_event_categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Organizer account and public contact details
    organizer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organizer_name: Mapped[str] = mapped_column(String(200), nullable=True)
    organizer_email: Mapped[str] = mapped_column(String(255), nullable=True)
    organizer_phone: Mapped[str] = mapped_column(String(50), nullable=True)
    organizer_website: Mapped[str] = mapped_column(String(500), nullable=True)
    organizer_facebook: Mapped[str] = mapped_column(String(500), nullable=True)
    organizer_instagram: Mapped[str] = mapped_column(String(500), nullable=True)
    organizer_whatsapp: Mapped[str] = mapped_column(String(50), nullable=True)

    status: Mapped[EventStatus] = mapped_column(
        Enum(EventStatus),
        default=EventStatus.DRAFT,
        nullable=False,
        index=True
    )
    event_type: Mapped[EventType] = mapped_column(
        Enum(EventType),
        default=EventType.GENERAL_ADMISSION,
        nullable=False
    )

    # Timing
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    doors_open: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    # Venue and location
    venue_name: Mapped[str] = mapped_column(String(200), nullable=True)
    venue_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    address: Mapped[str] = mapped_column(String(300), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=True, index=True)
    state: Mapped[str] = mapped_column(String(100), nullable=True)
    country: Mapped[str] = mapped_column(String(100), nullable=True)
    postcode: Mapped[str] = mapped_column(String(20), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Ticketing configuration
    global_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")
    waitlist_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    seatsio_event_key: Mapped[str] = mapped_column(String(200), nullable=True)

    # Media
    cover_image: Mapped[str] = mapped_column(String(500), nullable=True)
    gallery_images: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    video_url: Mapped[str] = mapped_column(String(500), nullable=True)

    # Policies and rates
    age_restriction: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refund_policy: Mapped[str] = mapped_column(Text, nullable=True)
    terms_and_conditions: Mapped[str] = mapped_column(Text, nullable=True)
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    platform_fee_percentage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    service_charges: Mapped[List[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str] = mapped_column(Text, nullable=True)

    # Relationships
    organizer: Mapped["User"] = relationship("User", back_populates="organized_events")
    category: Mapped[Optional["PublicEventCategory"]] = relationship(
        "PublicEventCategory",
        back_populates="events",
        lazy="selectin"
    )
    ticket_types: Mapped[List["TicketType"]] = relationship(
        "TicketType",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="TicketType.display_order"
    )
    promo_codes: Mapped[List["PromoCode"]] = relationship(
        "PromoCode",
        back_populates="event",
        cascade="all, delete-orphan"
    )
    orders: Mapped[List["Order"]] = relationship("Order", back_populates="event")

    __table_args__ = (
        CheckConstraint("global_capacity IS NULL OR global_capacity >= 1", name="ck_public_events_global_capacity"),
        CheckConstraint("age_restriction >= 0 AND age_restriction <= 100", name="ck_public_events_age_restriction"),
        CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="ck_public_events_tax_rate"),
    )

    @property
    def is_upcoming(self) -> bool:
        return as_aware(self.start_date) > utcnow()

    @property
    def is_past(self) -> bool:
        """An event is past once it has ended (or started, when it has no end)."""
        end = as_aware(self.end_date) or as_aware(self.start_date)
        return end < utcnow()

    @property
    def is_live(self) -> bool:
        now = utcnow()
        start = as_aware(self.start_date)
        end = as_aware(self.end_date)
        return start <= now and (end is None or now <= end)

    @property
    def is_editable(self) -> bool:
        return self.status not in (EventStatus.CANCELLED, EventStatus.COMPLETED)

    def __repr__(self) -> str:
        return (
            f"<PublicEvent(id={self.id}, slug='{self.slug}', "
            f"status={self.status.value}, start={self.start_date})>"
        )
