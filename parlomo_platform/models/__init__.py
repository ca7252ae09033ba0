"""
Database models for the Parlomo platform.
"""

from .base import Base
from .user import User, UserRole
from .category import PublicEventCategory, CategoryStatus
from .public_event import PublicEvent, EventStatus, EventType
from .ticket_type import TicketType
from .promo_code import PromoCode, DiscountType
from .order import Order, OrderItem, OrderStatus
from .ticket import Ticket, TicketStatus
from .fee import Fee, FeeType, FeeCalculationType, FeePayer
from .checkout_session import CheckoutSession, CheckoutSessionStatus
from .seat_block import SeatBlock, BlockReason
from .financial_request import (
    RefundRequest,
    RefundRequestType,
    RefundRequestStatus,
    SettlementRequest,
    SettlementRequestStatus,
    PaymentMethod,
)

__all__ = [
    "Base",
    "User",
    "UserRole",
    "PublicEventCategory",
    "CategoryStatus",
    "PublicEvent",
    "EventStatus",
    "EventType",
    "TicketType",
    "PromoCode",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Ticket",
    "TicketStatus",
    "Fee",
    "FeeType",
    "FeeCalculationType",
    "FeePayer",
    "CheckoutSession",
    "CheckoutSessionStatus",
    "SeatBlock",
    "BlockReason",
    "RefundRequest",
    "RefundRequestType",
    "RefundRequestStatus",
    "SettlementRequest",
    "SettlementRequestStatus",
    "PaymentMethod",
]
