"""
Ticketing API endpoints: ticket types, promo codes, event sales and seat blocking.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import OrderStatus, User
from ..schemas.checkout import (
    AttendeeResponse,
    EventFinancialsResponse,
    EventOrdersResponse,
    EventOrderSummary,
    OrderResponse,
)
from ..schemas.common import OffsetPagination
from ..schemas.seat import (
    BlockedSeatResponse,
    SeatAvailabilityResponse,
    SeatBlockRequest,
    SeatBlockResult,
    SeatUnblockRequest,
)
from ..schemas.ticketing import (
    PromoCodeCreate,
    PromoCodeResponse,
    PromoCodeUpdate,
    PromoValidationRequest,
    PromoValidationResponse,
    TicketingViewResponse,
    TicketTypeCreate,
    TicketTypeResponse,
    TicketTypeUpdate,
)
from ..services.order_service import OrderService
from ..services.promo_code_service import PromoCodeService
from ..services.public_event_service import ensure_event_owner
from ..services.seat_blocking_service import SeatBlockingService
from ..services.ticket_type_service import TicketTypeService
from ..utils.dependencies import get_current_organizer_user, get_optional_user
from ..utils.exceptions import (
    AuthorizationError,
    DuplicateResourceError,
    EventNotFoundError,
    NotFoundError,
    SeatsioServiceError,
    ValidationError,
)


router = APIRouter(prefix="/ticketing", tags=["ticketing"])


def get_ticket_type_service(db: AsyncSession = Depends(get_db)) -> TicketTypeService:
    return TicketTypeService(db)


def get_promo_code_service(db: AsyncSession = Depends(get_db)) -> PromoCodeService:
    return PromoCodeService(db)


def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_seat_blocking_service(db: AsyncSession = Depends(get_db)) -> SeatBlockingService:
    return SeatBlockingService(db)


@router.get("/events/{event_id}", response_model=TicketingViewResponse)
async def event_ticketing_view(
    event_id: UUID,
    viewer: Optional[User] = Depends(get_optional_user),
    service: TicketTypeService = Depends(get_ticket_type_service)
):
    """Ticket types on sale for an event, with availability and totals."""
    try:
        # Hides drafts from everyone but their owner
        await service.events.get_event_detail(event_id, viewer)
        return await service.event_ticketing_view(event_id)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


# Ticket types

@router.get("/events/{event_id}/ticket-types", response_model=List[TicketTypeResponse])
async def list_ticket_types(
    event_id: UUID,
    include_hidden: bool = Query(True, description="Include hidden ticket types"),
    user: User = Depends(get_current_organizer_user),
    service: TicketTypeService = Depends(get_ticket_type_service)
):
    try:
        return await service.list_ticket_types(event_id, include_hidden=include_hidden, user=user)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


@router.post(
    "/events/{event_id}/ticket-types",
    response_model=TicketTypeResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_ticket_type(
    event_id: UUID,
    payload: TicketTypeCreate,
    user: User = Depends(get_current_organizer_user),
    service: TicketTypeService = Depends(get_ticket_type_service)
):
    try:
        return await service.create_ticket_type(event_id, payload, user)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


@router.get("/events/{event_id}/ticket-types/{ticket_type_id}", response_model=TicketTypeResponse)
async def get_ticket_type(
    event_id: UUID,
    ticket_type_id: UUID,
    service: TicketTypeService = Depends(get_ticket_type_service)
):
    try:
        return await service.get_event_ticket_type(event_id, ticket_type_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.put("/events/{event_id}/ticket-types/{ticket_type_id}", response_model=TicketTypeResponse)
async def update_ticket_type(
    event_id: UUID,
    ticket_type_id: UUID,
    payload: TicketTypeUpdate,
    user: User = Depends(get_current_organizer_user),
    service: TicketTypeService = Depends(get_ticket_type_service)
):
    """Update a ticket type; capacity may not drop below sold plus reserved."""
    try:
        return await service.update_ticket_type(event_id, ticket_type_id, payload, user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": e.message, **e.details})


@router.delete("/events/{event_id}/ticket-types/{ticket_type_id}")
async def delete_ticket_type(
    event_id: UUID,
    ticket_type_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: TicketTypeService = Depends(get_ticket_type_service)
):
    """Delete an unused ticket type, or deactivate one that has sales."""
    try:
        return await service.delete_ticket_type(event_id, ticket_type_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


# Promo codes

@router.get("/events/{event_id}/promo-codes", response_model=List[PromoCodeResponse])
async def list_promo_codes(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: PromoCodeService = Depends(get_promo_code_service)
):
    try:
        return await service.list_promo_codes(event_id, user)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


@router.post(
    "/events/{event_id}/promo-codes",
    response_model=PromoCodeResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_promo_code(
    event_id: UUID,
    payload: PromoCodeCreate,
    user: User = Depends(get_current_organizer_user),
    service: PromoCodeService = Depends(get_promo_code_service)
):
    try:
        return await service.create_promo_code(event_id, payload, user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except DuplicateResourceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.get("/events/{event_id}/promo-codes/{promo_id}", response_model=PromoCodeResponse)
async def get_promo_code(
    event_id: UUID,
    promo_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: PromoCodeService = Depends(get_promo_code_service)
):
    try:
        ensure_event_owner(await service.events.get_event(event_id), user)
        return await service.get_promo_code(event_id, promo_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


@router.put("/events/{event_id}/promo-codes/{promo_id}", response_model=PromoCodeResponse)
async def update_promo_code(
    event_id: UUID,
    promo_id: UUID,
    payload: PromoCodeUpdate,
    user: User = Depends(get_current_organizer_user),
    service: PromoCodeService = Depends(get_promo_code_service)
):
    try:
        return await service.update_promo_code(event_id, promo_id, payload, user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.delete("/events/{event_id}/promo-codes/{promo_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_promo_code(
    event_id: UUID,
    promo_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: PromoCodeService = Depends(get_promo_code_service)
):
    try:
        await service.delete_promo_code(event_id, promo_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/promo/validate", response_model=PromoValidationResponse)
async def validate_promo_code(
    payload: PromoValidationRequest,
    viewer: Optional[User] = Depends(get_optional_user),
    service: PromoCodeService = Depends(get_promo_code_service)
):
    """
    Check a promo code against a cart.

    An unusable code is not an error: the response carries ``valid: false``
    with the reason code and message.
    """
    try:
        return await service.validate_promo(
            payload.event_id,
            payload.code,
            [item.model_dump() for item in payload.cart_items],
            user_id=viewer.id if viewer else None,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


# Event sales

@router.get("/events/{event_id}/orders", response_model=EventOrdersResponse)
async def list_event_orders(
    event_id: UUID,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_organizer_user),
    service: OrderService = Depends(get_order_service)
):
    try:
        rows, total = await service.list_event_orders(event_id, user, status_filter, limit, offset)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)

    orders = [
        EventOrderSummary(
            **OrderResponse.model_validate(row["order"]).model_dump(),
            ticket_count=row["ticket_count"],
        )
        for row in rows
    ]
    return EventOrdersResponse(
        orders=orders,
        pagination=OffsetPagination(
            total=total, limit=limit, offset=offset, has_more=offset + len(orders) < total
        ),
    )


@router.get("/events/{event_id}/attendees", response_model=List[AttendeeResponse])
async def list_attendees(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: OrderService = Depends(get_order_service)
):
    try:
        return await service.list_attendees(event_id, user)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


@router.get("/events/{event_id}/financials", response_model=EventFinancialsResponse)
async def event_financials(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: OrderService = Depends(get_order_service)
):
    try:
        return await service.event_financials(event_id, user)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


# Seat blocking

@router.post("/events/{event_id}/seats/block", response_model=SeatBlockResult)
async def block_seats(
    event_id: UUID,
    payload: SeatBlockRequest,
    user: User = Depends(get_current_organizer_user),
    service: SeatBlockingService = Depends(get_seat_blocking_service)
):
    """Hold seats back from sale (VIP, sponsors, accessibility, production)."""
    return await _seat_action(
        service.block_seats(event_id, payload.seat_labels, payload.reason, user, notes=payload.notes)
    )


@router.post("/events/{event_id}/seats/unblock", response_model=SeatBlockResult)
async def unblock_seats(
    event_id: UUID,
    payload: SeatUnblockRequest,
    user: User = Depends(get_current_organizer_user),
    service: SeatBlockingService = Depends(get_seat_blocking_service)
):
    return await _seat_action(service.unblock_seats(event_id, payload.seat_labels, user))


@router.get("/events/{event_id}/seats/blocked", response_model=List[BlockedSeatResponse])
async def list_blocked_seats(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: SeatBlockingService = Depends(get_seat_blocking_service)
):
    return await _seat_action(service.list_blocked_seats(event_id, user))


@router.get("/events/{event_id}/seats/availability", response_model=SeatAvailabilityResponse)
async def seat_availability(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: SeatBlockingService = Depends(get_seat_blocking_service)
):
    return await _seat_action(service.seat_availability(event_id, user))


async def _seat_action(call):
    try:
        return await call
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except SeatsioServiceError as e:
        raise HTTPException(status_code=e.status_code or status.HTTP_502_BAD_GATEWAY, detail=e.message)
