"""
Ticket scanner schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ScanRequest(BaseModel):
    ticket_code: Optional[str] = Field(None, max_length=20)
    qr_payload: Optional[str] = None
    event_id: Optional[UUID] = Field(None, description="Reject tickets for any other event")
    location: Optional[str] = Field(None, max_length=200)

    @model_validator(mode="after")
    def code_or_payload(self):
        if not self.ticket_code and not self.qr_payload:
            raise ValueError("Ticket code or QR payload is required")
        return self


class ScannedEvent(BaseModel):
    id: UUID
    title: str
    slug: str
    start_date: datetime


class ScannedTicket(BaseModel):
    id: UUID
    code: str
    status: str
    status_label: str
    attendee_name: Optional[str] = None
    attendee_email: Optional[str] = None
    ticket_type: Optional[str] = None
    order_number: Optional[str] = None
    seat_section: Optional[str] = None
    seat_row: Optional[str] = None
    seat_number: Optional[str] = None
    used_at: Optional[datetime] = None


class ScanResult(BaseModel):
    valid: bool
    reason: Optional[str] = None
    message: str
    ticket: Optional[ScannedTicket] = None
    event: Optional[ScannedEvent] = None
