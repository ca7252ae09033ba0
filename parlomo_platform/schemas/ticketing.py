"""
Ticket type and promo code schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from ..models.promo_code import DiscountType
from ..utils.promo_rules import is_expiring_soon, is_running_low, sanitize_promo_code


class TicketTypeBase(BaseModel):
    description: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    min_per_order: int = Field(1, ge=1)
    max_per_order: int = Field(10, ge=1)
    sales_start: Optional[datetime] = None
    sales_end: Optional[datetime] = None
    active: bool = True
    visible: bool = True
    refundable: bool = True
    transfer_allowed: bool = True
    seat_section: Optional[str] = Field(None, max_length=50)
    seat_row: Optional[str] = Field(None, max_length=20)
    seat_numbers: List[str] = []
    display_order: int = Field(0, ge=0)


class TicketTypeCreate(TicketTypeBase):
    name: str = Field(..., min_length=1, max_length=100)
    price: int = Field(..., ge=0, description="Price in minor units")
    capacity: int = Field(..., ge=1)

    @model_validator(mode="after")
    def check_limits(self):
        if self.min_per_order > self.max_per_order:
            raise ValueError("min_per_order cannot exceed max_per_order")
        if self.sales_start and self.sales_end and self.sales_end <= self.sales_start:
            raise ValueError("sales_end must be after sales_start")
        return self


class TicketTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=1)
    min_per_order: Optional[int] = Field(None, ge=1)
    max_per_order: Optional[int] = Field(None, ge=1)
    sales_start: Optional[datetime] = None
    sales_end: Optional[datetime] = None
    active: Optional[bool] = None
    visible: Optional[bool] = None
    refundable: Optional[bool] = None
    transfer_allowed: Optional[bool] = None
    seat_section: Optional[str] = Field(None, max_length=50)
    seat_row: Optional[str] = Field(None, max_length=20)
    seat_numbers: Optional[List[str]] = None
    display_order: Optional[int] = Field(None, ge=0)


class TicketTypeResponse(BaseModel):
    id: UUID
    event_id: UUID
    name: str
    description: Optional[str] = None
    price: int
    currency: str
    capacity: int
    sold: int
    reserved: int
    available: int
    is_sold_out: bool
    is_on_sale: bool
    min_per_order: int
    max_per_order: int
    sales_start: Optional[datetime] = None
    sales_end: Optional[datetime] = None
    active: bool
    visible: bool
    refundable: bool
    transfer_allowed: bool
    seat_section: Optional[str] = None
    seat_row: Optional[str] = None
    seat_numbers: List[str] = []
    display_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketingSummary(BaseModel):
    total_capacity: int
    total_sold: int
    total_available: int
    sold_percentage: float
    sold_out: bool


class TicketingViewResponse(BaseModel):
    """Everything the event page needs to render the ticket picker."""
    event_id: UUID
    event_title: str
    event_type: str
    currency: str
    seatsio_event_key: Optional[str] = None
    ticket_types: List[TicketTypeResponse]
    summary: TicketingSummary


class PromoCodeCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_amount: float = Field(..., ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    max_uses_per_user: int = Field(1, ge=1)
    applicable_ticket_types: List[UUID] = []
    min_tickets: int = Field(0, ge=0)
    min_purchase_amount: int = Field(0, ge=0)
    active: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        code = sanitize_promo_code(value)
        if len(code) < 3:
            raise ValueError("Promo code must contain at least 3 letters or digits")
        return code

    @model_validator(mode="after")
    def check_discount(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_amount > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class PromoCodeUpdate(BaseModel):
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_amount: Optional[float] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    max_uses_per_user: Optional[int] = Field(None, ge=1)
    applicable_ticket_types: Optional[List[UUID]] = None
    min_tickets: Optional[int] = Field(None, ge=0)
    min_purchase_amount: Optional[int] = Field(None, ge=0)
    active: Optional[bool] = None


class PromoCodeResponse(BaseModel):
    id: UUID
    event_id: UUID
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_amount: float
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = None
    max_uses_per_user: int
    current_uses: int
    uses_remaining: Optional[int] = None
    applicable_ticket_types: List[str] = []
    min_tickets: int
    min_purchase_amount: int
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def expiring_soon(self) -> bool:
        return is_expiring_soon(self)

    @computed_field
    @property
    def running_low(self) -> bool:
        return is_running_low(self)


class CartItem(BaseModel):
    ticket_type_id: UUID
    quantity: int = Field(..., ge=1)


class PromoValidationRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    event_id: UUID
    cart_items: List[CartItem] = Field(..., min_length=1)


class PromoValidationResponse(BaseModel):
    valid: bool
    error_code: Optional[str] = None
    message: str
    discount: int = 0
    subtotal: int = 0
    currency: str
    promo: Optional[Dict[str, Any]] = None
