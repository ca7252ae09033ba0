"""
Custom exceptions for the Parlomo platform.
"""

from typing import Any, Dict, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the platform."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"

    # Business logic errors
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    RESOURCE_IN_USE = "RESOURCE_IN_USE"
    PROMO_CODE_INVALID = "PROMO_CODE_INVALID"
    CHECKOUT_EXPIRED = "CHECKOUT_EXPIRED"

    # Concurrency errors
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # External service errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    SEATSIO_SERVICE_ERROR = "SEATSIO_SERVICE_ERROR"


class ParlomoError(Exception):
    """Base exception class for the Parlomo platform."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        """Initialize the exception with comprehensive error information."""
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(ParlomoError):
    """Exception raised for validation errors."""

    def __init__(
        self,
        message: str,
        field_errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        merged = dict(details or {})
        if field_errors:
            merged["field_errors"] = field_errors
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=merged or None,
            **kwargs
        )
        self.field_errors = field_errors or {}


class NotFoundError(ParlomoError):
    """Base exception for resource not found errors."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class EventNotFoundError(NotFoundError):
    """Exception raised when a public event is not found."""

    def __init__(self, event_id: str, **kwargs):
        super().__init__(
            f"Event {event_id} not found",
            resource_type="public_event",
            resource_id=str(event_id),
            suggestions=["Check the event ID or slug", "Browse published events"],
            **kwargs
        )


class CategoryNotFoundError(NotFoundError):
    """Exception raised when an event category is not found."""

    def __init__(self, category_id: str, **kwargs):
        super().__init__(
            "Category not found",
            resource_type="category",
            resource_id=str(category_id),
            **kwargs
        )


class UserNotFoundError(NotFoundError):
    """Exception raised when a user is not found."""

    def __init__(self, user_id: str, **kwargs):
        super().__init__(
            f"User {user_id} not found",
            resource_type="user",
            resource_id=str(user_id),
            **kwargs
        )


class TicketTypeNotFoundError(NotFoundError):
    """Exception raised when a ticket type is not found."""

    def __init__(self, ticket_type_id: str, **kwargs):
        super().__init__(
            f"Ticket type {ticket_type_id} not found",
            resource_type="ticket_type",
            resource_id=str(ticket_type_id),
            **kwargs
        )


class PromoCodeNotFoundError(NotFoundError):
    """Exception raised when a promo code is not found."""

    def __init__(self, code_id: str, **kwargs):
        super().__init__(
            f"Promo code {code_id} not found",
            resource_type="promo_code",
            resource_id=str(code_id),
            **kwargs
        )


class OrderNotFoundError(NotFoundError):
    """Exception raised when an order is not found."""

    def __init__(self, order_id: str, **kwargs):
        super().__init__(
            f"Order {order_id} not found",
            resource_type="order",
            resource_id=str(order_id),
            suggestions=["Check the order ID", "View your order history"],
            **kwargs
        )


class CheckoutSessionNotFoundError(NotFoundError):
    """Exception raised when a checkout session is not found."""

    def __init__(self, session_id: str, **kwargs):
        super().__init__(
            f"Checkout session {session_id} not found",
            resource_type="checkout_session",
            resource_id=str(session_id),
            suggestions=["Start a new checkout"],
            **kwargs
        )


class FinancialRequestNotFoundError(NotFoundError):
    """Exception raised when a refund or settlement request is not found."""

    def __init__(self, request_type: str, request_id: str, **kwargs):
        super().__init__(
            f"{request_type.replace('_', ' ').capitalize()} {request_id} not found",
            resource_type=request_type,
            resource_id=str(request_id),
            **kwargs
        )


class AuthenticationError(ParlomoError):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.UNAUTHORIZED,
            suggestions=["Check your credentials", "Login again"],
            **kwargs
        )


class AuthorizationError(ParlomoError):
    """Exception raised for authorization failures."""

    def __init__(self, message: str = "Access denied", required_permission: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.FORBIDDEN,
            details={"required_permission": required_permission} if required_permission else None,
            **kwargs
        )


class DuplicateResourceError(ParlomoError):
    """Exception raised when a unique resource already exists."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.DUPLICATE_RESOURCE,
            details={"field": field} if field else None,
            **kwargs
        )


class BusinessLogicError(ParlomoError):
    """Base exception for business logic violations."""
    pass


class InsufficientCapacityError(BusinessLogicError):
    """Exception raised when ticket capacity is insufficient."""

    def __init__(
        self,
        requested: int,
        available: int,
        ticket_type_id: Optional[str] = None,
        ticket_type_name: Optional[str] = None,
        **kwargs
    ):
        label = f" for {ticket_type_name}" if ticket_type_name else ""
        super().__init__(
            f"Not enough tickets available{label}: requested {requested}, available {available}",
            error_code=ErrorCode.INSUFFICIENT_CAPACITY,
            details={
                "requested": requested,
                "available": available,
                "ticket_type_id": ticket_type_id,
            },
            suggestions=["Try fewer tickets", "Choose another ticket type"],
            **kwargs
        )


class InvalidStateTransitionError(BusinessLogicError):
    """Exception raised when a resource cannot move to the requested status."""

    def __init__(self, resource_type: str, resource_id: str, current_state: str, target_state: str, message: Optional[str] = None, **kwargs):
        super().__init__(
            message or f"Cannot change {resource_type} {resource_id} from {current_state} to {target_state}",
            error_code=ErrorCode.INVALID_STATE_TRANSITION,
            details={
                "resource_type": resource_type,
                "resource_id": str(resource_id),
                "current_state": current_state,
                "target_state": target_state,
            },
            **kwargs
        )


class ResourceInUseError(BusinessLogicError):
    """Exception raised when a resource cannot be removed because others depend on it."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.RESOURCE_IN_USE,
            details=details,
            **kwargs
        )


class PromoCodeError(BusinessLogicError):
    """Exception raised when a promo code cannot be applied."""

    def __init__(self, reason_code: str, message: str, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.PROMO_CODE_INVALID,
            details={"reason": reason_code},
            **kwargs
        )
        self.reason_code = reason_code


class CheckoutExpiredError(BusinessLogicError):
    """Exception raised when a checkout session has expired."""

    def __init__(self, session_id: str, **kwargs):
        super().__init__(
            f"Checkout session {session_id} has expired",
            error_code=ErrorCode.CHECKOUT_EXPIRED,
            details={"session_id": str(session_id)},
            suggestions=["Start a new checkout", "Complete payment within the hold period"],
            **kwargs
        )


class ConcurrencyError(ParlomoError):
    """Exception raised for concurrency-related issues."""

    def __init__(self, message: str, retry_after: int = 1, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.CONCURRENCY_CONFLICT,
            retry_after=retry_after,
            suggestions=["Please try again", "Wait a moment and retry"],
            **kwargs
        )


class RateLimitError(ParlomoError):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window: int, retry_after: int, **kwargs):
        super().__init__(
            f"Rate limit exceeded: {limit} requests per {window} seconds",
            error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
            details={"limit": limit, "window": window},
            retry_after=retry_after,
            suggestions=[f"Wait {retry_after} seconds before retrying"],
            **kwargs
        )


class ExternalServiceError(ParlomoError):
    """Exception raised for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        status_code: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        merged = {"service_name": service_name, "status_code": status_code}
        merged.update(details or {})
        super().__init__(
            f"{service_name} service error: {message}",
            error_code=error_code,
            details=merged,
            suggestions=["Try again later", "Contact support if problem persists"],
            **kwargs
        )
        self.status_code = status_code


class SeatsioServiceError(ExternalServiceError):
    """Exception raised for seats.io API failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(
            "seatsio",
            message,
            status_code=status_code,
            error_code=ErrorCode.SEATSIO_SERVICE_ERROR,
            **kwargs
        )

