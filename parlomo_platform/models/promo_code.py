"""
Promo code model for event discounts.
"""

import enum
import uuid
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, DateTime, Enum, Float, ForeignKey, Integer, String, Text,
    UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .public_event import PublicEvent


class DiscountType(enum.Enum):
    """How a promo code discount is calculated."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromoCode(Base):
    """Discount code scoped to a single public event."""

    __tablename__ = "promo_codes"

    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)

    discount_type: Mapped[DiscountType] = mapped_column(Enum(DiscountType), nullable=False)
    # Percent (0-100) or minor units, depending on discount_type
    discount_amount: Mapped[float] = mapped_column(Float, nullable=False)

    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_uses_per_user: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Empty list means every ticket type of the event
    applicable_ticket_types: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    min_tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_purchase_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    event: Mapped["PublicEvent"] = relationship("PublicEvent", back_populates="promo_codes")

    __table_args__ = (
        UniqueConstraint("event_id", "code", name="uq_promo_codes_event_code"),
        CheckConstraint("discount_amount >= 0", name="ck_promo_codes_discount_non_negative"),
        CheckConstraint("current_uses >= 0", name="ck_promo_codes_uses_non_negative"),
    )

    @property
    def uses_remaining(self) -> Optional[int]:
        if self.max_uses is None:
            return None
        return max(0, self.max_uses - self.current_uses)

    def __repr__(self) -> str:
        return f"<PromoCode(id={self.id}, code='{self.code}', uses={self.current_uses}/{self.max_uses})>"
