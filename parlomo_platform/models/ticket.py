"""
Ticket model for issued admission tickets.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .order import Order
    from .ticket_type import TicketType
    from .public_event import PublicEvent


class TicketStatus(enum.Enum):
    """Enumeration for ticket status."""
    VALID = "valid"
    USED = "used"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    TRANSFERRED = "transferred"


TICKET_STATUS_LABELS = {
    TicketStatus.VALID: "Valid",
    TicketStatus.USED: "Checked in",
    TicketStatus.CANCELLED: "Cancelled",
    TicketStatus.REFUNDED: "Refunded",
    TicketStatus.TRANSFERRED: "Transferred",
}


class Ticket(Base):
    """A single admission issued by a paid order."""

    __tablename__ = "tickets"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    ticket_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ticket_types.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    qr_payload: Mapped[str] = mapped_column(Text, nullable=True)
    barcode: Mapped[str] = mapped_column(String(13), nullable=True, unique=True)

    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus),
        default=TicketStatus.VALID,
        nullable=False,
        index=True
    )

    attendee_name: Mapped[str] = mapped_column(String(200), nullable=True)
    attendee_email: Mapped[str] = mapped_column(String(255), nullable=True)

    seat_section: Mapped[str] = mapped_column(String(50), nullable=True)
    seat_row: Mapped[str] = mapped_column(String(20), nullable=True)
    seat_number: Mapped[str] = mapped_column(String(20), nullable=True)

    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    used_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    scan_location: Mapped[str] = mapped_column(String(200), nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="tickets")
    ticket_type: Mapped[Optional["TicketType"]] = relationship("TicketType")
    event: Mapped["PublicEvent"] = relationship("PublicEvent")

    @property
    def status_label(self) -> str:
        return TICKET_STATUS_LABELS.get(self.status, "Unknown")

    @property
    def checked_in(self) -> bool:
        return self.status == TicketStatus.USED

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, code='{self.code}', status={self.status.value})>"
