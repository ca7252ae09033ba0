"""Business logic services for the Parlomo platform."""

from .user_service import UserService
from .category_service import CategoryService
from .public_event_service import PublicEventService
from .ticket_type_service import TicketTypeService
from .promo_code_service import PromoCodeService
from .checkout_service import CheckoutService
from .order_service import OrderService
from .scanner_service import ScannerService
from .seat_blocking_service import SeatBlockingService
from .refund_service import RefundService
from .settlement_service import SettlementService

__all__ = [
    "UserService",
    "CategoryService",
    "PublicEventService",
    "TicketTypeService",
    "PromoCodeService",
    "CheckoutService",
    "OrderService",
    "ScannerService",
    "SeatBlockingService",
    "RefundService",
    "SettlementService",
]
