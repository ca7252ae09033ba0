"""
Pydantic schemas for seat blocking on seats.io charts.
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.seat_block import BlockReason


class SeatLabels(BaseModel):
    seat_labels: List[str] = Field(..., min_length=1, max_length=500, description="Seat labels such as A-1")

    @field_validator("seat_labels")
    @classmethod
    def clean_labels(cls, v: List[str]) -> List[str]:
        labels = []
        for label in v:
            label = label.strip()
            if not label:
                raise ValueError("Seat labels cannot be empty")
            if label not in labels:
                labels.append(label)
        return labels


class SeatBlockRequest(SeatLabels):
    """Schema for blocking seats."""
    reason: BlockReason
    notes: Optional[str] = Field(None, max_length=500)


class SeatUnblockRequest(SeatLabels):
    pass


class BlockedSeatResponse(BaseModel):
    id: UUID
    event_id: UUID
    seat_label: str
    reason: BlockReason
    display_name: str
    notes: Optional[str] = None
    blocked_by: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SeatBlockResult(BaseModel):
    message: str
    status: Optional[str] = None
    seat_labels: List[str]


class CategoryTicketType(BaseModel):
    id: UUID
    name: str
    price: int
    price_formatted: str
    currency: str


class CategoryAvailability(BaseModel):
    category_label: str
    total: int
    available: int
    booked: int
    held: int
    blocked: int
    ticket_type: Optional[CategoryTicketType] = None


class SeatAvailabilityResponse(BaseModel):
    event_id: UUID
    seatsio_event_key: str
    categories: Dict[str, CategoryAvailability]
