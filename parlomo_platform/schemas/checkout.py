"""
Checkout, order and ticket schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..models.order import OrderStatus
from ..models.ticket import TicketStatus
from .common import OffsetPagination
from .ticketing import CartItem


class CheckoutStartRequest(BaseModel):
    event_id: UUID
    cart_items: List[CartItem] = Field(..., min_length=1)
    promo_code: Optional[str] = Field(None, max_length=50)


class CheckoutLine(BaseModel):
    ticket_type_id: UUID
    ticket_type_name: str
    quantity: int
    unit_price: int
    subtotal: int


class FeeLineResponse(BaseModel):
    name: str
    amount: int
    description: str = ""
    type: str = "service"


class CheckoutSessionResponse(BaseModel):
    session_id: UUID
    event_id: UUID
    status: str
    items: List[CheckoutLine]
    subtotal: int
    discount: int
    promo_code: Optional[str] = None
    promo_message: Optional[str] = None
    fees: int
    fee_breakdown: List[FeeLineResponse]
    tax: int
    total: int
    currency: str
    expires_at: datetime


class BuyerInfo(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)


class CheckoutCompleteRequest(BaseModel):
    session_id: UUID
    buyer_info: BuyerInfo
    payment_intent_id: Optional[str] = Field(None, max_length=255)
    payment_method: str = Field("card", max_length=50)


class CheckoutCancelRequest(BaseModel):
    session_id: UUID


class OrderItemResponse(BaseModel):
    id: UUID
    ticket_type_id: Optional[UUID] = None
    ticket_type_name: str
    quantity: int
    unit_price: int
    subtotal: int
    discount: int
    total: int

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: UUID
    order_number: str
    event_id: UUID
    user_id: Optional[UUID] = None
    status: OrderStatus
    subtotal: int
    discount: int
    fees: int
    tax: int
    total: int
    currency: str
    payment_intent_id: Optional[str] = None
    payment_method: Optional[str] = None
    customer_email: str
    customer_name: str
    customer_phone: Optional[str] = None
    promo_code: Optional[str] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    total_items: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CheckoutCompleteResponse(BaseModel):
    message: str
    order: OrderResponse
    ticket_count: int


class TicketResponse(BaseModel):
    id: UUID
    order_id: UUID
    event_id: UUID
    ticket_type_id: Optional[UUID] = None
    ticket_type_name: Optional[str] = None
    code: str
    qr_payload: Optional[str] = None
    barcode: Optional[str] = None
    status: TicketStatus
    status_label: str
    attendee_name: Optional[str] = None
    attendee_email: Optional[str] = None
    seat_section: Optional[str] = None
    seat_row: Optional[str] = None
    seat_number: Optional[str] = None
    used_at: Optional[datetime] = None
    scan_location: Optional[str] = None
    can_refund: bool = False
    can_transfer: bool = False

    model_config = ConfigDict(from_attributes=True)


class EventOrderSummary(OrderResponse):
    ticket_count: int = 0


class EventOrdersResponse(BaseModel):
    orders: List[EventOrderSummary]
    pagination: OffsetPagination


class AttendeeResponse(BaseModel):
    id: UUID
    name: Optional[str] = None
    email: Optional[str] = None
    ticket_type: Optional[str] = None
    ticket_code: str
    order_number: str
    status: TicketStatus
    checked_in: bool
    checked_in_at: Optional[datetime] = None


class EventFinancialsResponse(BaseModel):
    event_id: UUID
    currency: str
    order_count: int
    tickets_sold: int
    total_revenue: int
    total_fees: int
    total_tax: int
    total_discounts: int
    ticket_revenue: int
    net_revenue: int
    refunded_amount: int
    payout: Dict[str, Any]
