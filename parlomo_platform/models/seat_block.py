"""
Seat block model recording seats held back on a seats.io chart.
"""

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class BlockReason(enum.Enum):
    """Reasons an organizer may hold seats back from sale."""
    VIP = "VIP"
    SPONSOR = "Sponsor"
    ACCESSIBILITY = "Accessibility"
    PRODUCTION = "Production"
    TECHNICAL = "Technical"
    OTHER = "Other"


BLOCK_REASON_DISPLAY_NAMES = {
    BlockReason.VIP: "VIP Reserved",
    BlockReason.SPONSOR: "Sponsor Reserved",
    BlockReason.ACCESSIBILITY: "Accessibility Reserved",
    BlockReason.PRODUCTION: "Production Hold",
    BlockReason.TECHNICAL: "Technical Hold",
    BlockReason.OTHER: "Reserved",
}


def block_display_name(reason: BlockReason) -> str:
    return BLOCK_REASON_DISPLAY_NAMES.get(reason, "Reserved")


class SeatBlock(Base):
    """A single seat label blocked on an event's seat map."""

    __tablename__ = "seat_blocks"

    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    seat_label: Mapped[str] = mapped_column(String(100), nullable=False)
    reason: Mapped[BlockReason] = mapped_column(Enum(BlockReason), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    blocked_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "seat_label", name="uq_seat_blocks_event_label"),
    )

    @property
    def display_name(self) -> str:
        return block_display_name(self.reason)

    def __repr__(self) -> str:
        return f"<SeatBlock(event_id={self.event_id}, seat='{self.seat_label}', reason={self.reason.value})>"
