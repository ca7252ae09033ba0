"""
Public event category model.
"""

import enum
from typing import List, TYPE_CHECKING

from sqlalchemy import Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .public_event import PublicEvent


class CategoryStatus(enum.Enum):
    """Enumeration for category status."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class PublicEventCategory(Base):
    """Category used to group public events."""

    __tablename__ = "public_event_categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="MoreHorizontal")
    image: Mapped[str] = mapped_column(String(500), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)

    status: Mapped[CategoryStatus] = mapped_column(
        Enum(CategoryStatus),
        default=CategoryStatus.ACTIVE,
        nullable=False,
        index=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    events: Mapped[List["PublicEvent"]] = relationship(
        "PublicEvent",
        back_populates="category"
    )

    @property
    def is_active(self) -> bool:
        return self.status == CategoryStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<PublicEventCategory(id={self.id}, slug='{self.slug}', status={self.status.value})>"
