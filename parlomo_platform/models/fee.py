"""
Configurable fee rules applied at checkout.
"""

import enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Enum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class FeeType(enum.Enum):
    PLATFORM = "platform"
    SERVICE = "service"
    PAYMENT = "payment"
    TAX = "tax"


class FeeCalculationType(enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    PER_TICKET = "per_ticket"


class FeePayer(enum.Enum):
    BUYER = "buyer"
    ORGANIZER = "organizer"


class Fee(Base):
    """A fee rule; when no active buyer rules exist the configured defaults apply."""

    __tablename__ = "fees"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    type: Mapped[FeeType] = mapped_column(Enum(FeeType), nullable=False)
    calculation_type: Mapped[FeeCalculationType] = mapped_column(Enum(FeeCalculationType), nullable=False)
    payer: Mapped[FeePayer] = mapped_column(Enum(FeePayer), nullable=False, default=FeePayer.BUYER)

    # Percent, or minor units for fixed / per-ticket fees
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    cap: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_to_customer: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_fees_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Fee(name='{self.name}', {self.calculation_type.value}={self.amount})>"
