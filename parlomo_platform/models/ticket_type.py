"""
Ticket type model with capacity bookkeeping.
"""

import uuid
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, as_aware, utcnow

if TYPE_CHECKING:
    from .public_event import PublicEvent


class TicketType(Base):
    """A purchasable ticket tier for a public event.

    Capacity is split three ways: ``sold`` tickets belong to paid orders,
    ``reserved`` tickets are held by open checkout sessions and whatever is
    left is ``available``.
    """

    __tablename__ = "ticket_types"

    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)

    # Price in minor units
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    min_per_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_per_order: Mapped[int] = mapped_column(Integer, nullable=False, default=10)

    sales_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sales_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    refundable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    transfer_allowed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    seat_section: Mapped[str] = mapped_column(String(50), nullable=True)
    seat_row: Mapped[str] = mapped_column(String(20), nullable=True)
    seat_numbers: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    event: Mapped["PublicEvent"] = relationship("PublicEvent", back_populates="ticket_types")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_ticket_types_price_non_negative"),
        CheckConstraint("capacity >= 1", name="ck_ticket_types_capacity_positive"),
        CheckConstraint("sold >= 0", name="ck_ticket_types_sold_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_ticket_types_reserved_non_negative"),
        CheckConstraint("sold + reserved <= capacity", name="ck_ticket_types_capacity_consistency"),
        CheckConstraint("min_per_order >= 1", name="ck_ticket_types_min_per_order"),
        CheckConstraint("max_per_order >= min_per_order", name="ck_ticket_types_max_per_order"),
    )

    @property
    def available(self) -> int:
        return max(0, self.capacity - self.sold - self.reserved)

    @property
    def is_sold_out(self) -> bool:
        return self.available == 0

    @property
    def is_on_sale(self) -> bool:
        """Active, inside the sales window and not sold out."""
        if not self.active:
            return False
        now = utcnow()
        if self.sales_start and as_aware(self.sales_start) > now:
            return False
        if self.sales_end and as_aware(self.sales_end) < now:
            return False
        return not self.is_sold_out

    def __repr__(self) -> str:
        return (
            f"<TicketType(id={self.id}, name='{self.name}', "
            f"sold={self.sold}, reserved={self.reserved}, capacity={self.capacity})>"
        )
