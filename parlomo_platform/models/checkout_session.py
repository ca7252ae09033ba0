"""
Checkout session model holding ticket reservations until payment.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, as_aware, utcnow


class CheckoutSessionStatus(enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FAILED = "failed"


class CheckoutSession(Base):
    """Server-side record of a started checkout.

    ``items`` is a list of ``{ticket_type_id, ticket_type_name, quantity,
    unit_price, subtotal}`` dicts; the same quantities are held as
    ``reserved`` on the ticket types while the session is open.
    """

    __tablename__ = "checkout_sessions"

    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("public_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[CheckoutSessionStatus] = mapped_column(
        Enum(CheckoutSessionStatus),
        default=CheckoutSessionStatus.OPEN,
        nullable=False,
        index=True
    )

    items: Mapped[List[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    subtotal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fee_breakdown: Mapped[List[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    tax: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")

    promo_code_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("promo_codes.id", ondelete="SET NULL"),
        nullable=True
    )
    promo_code: Mapped[str] = mapped_column(String(50), nullable=True)
    promo_message: Mapped[str] = mapped_column(String(255), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    @property
    def ticket_count(self) -> int:
        return sum(int(item["quantity"]) for item in self.items)

    @property
    def is_expired(self) -> bool:
        return as_aware(self.expires_at) <= utcnow()

    def __repr__(self) -> str:
        return f"<CheckoutSession(id={self.id}, status={self.status.value}, total={self.total})>"
