"""
Checkout and order API endpoints.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas.checkout import (
    CheckoutCancelRequest,
    CheckoutCompleteRequest,
    CheckoutCompleteResponse,
    CheckoutSessionResponse,
    CheckoutStartRequest,
    OrderResponse,
    TicketResponse,
)
from ..services.checkout_service import CheckoutService, serialize_session
from ..services.order_service import OrderService
from ..utils.dependencies import get_current_user
from ..utils.exceptions import (
    AuthorizationError,
    CheckoutExpiredError,
    ConcurrencyError,
    InsufficientCapacityError,
    InvalidStateTransitionError,
    NotFoundError,
    PromoCodeError,
    ValidationError,
)


router = APIRouter(prefix="/ticketing", tags=["checkout"])


def get_checkout_service(db: AsyncSession = Depends(get_db)) -> CheckoutService:
    """Dependency to get checkout service instance."""
    return CheckoutService(db)


def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(db)


@router.post("/checkout/start", response_model=CheckoutSessionResponse, status_code=status.HTTP_201_CREATED)
async def start_checkout(
    payload: CheckoutStartRequest,
    user: User = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service)
):
    """
    Price the cart and hold the tickets.

    The hold lasts ``checkout_hold_minutes``; an unusable promo code does not
    fail the checkout, it is reported in ``promo_message``.
    """
    try:
        return await service.start_checkout(
            payload.event_id,
            [item.model_dump() for item in payload.cart_items],
            user,
            promo_code=payload.promo_code,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except InsufficientCapacityError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.get("/checkout/{session_id}", response_model=CheckoutSessionResponse)
async def get_checkout(
    session_id: UUID,
    user: User = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service)
):
    try:
        return serialize_session(await service.get_session(session_id, user))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.post("/checkout/complete", response_model=CheckoutCompleteResponse, status_code=status.HTTP_201_CREATED)
async def complete_checkout(
    payload: CheckoutCompleteRequest,
    user: User = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service)
):
    """Turn an open checkout session into a paid order and issue its tickets."""
    try:
        return await service.complete_checkout(
            payload.session_id,
            payload.buyer_info.model_dump(),
            user,
            payment_intent_id=payload.payment_intent_id,
            payment_method=payload.payment_method,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except CheckoutExpiredError as e:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=e.message)
    except (InvalidStateTransitionError, ConcurrencyError, PromoCodeError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.post("/checkout/cancel", response_model=CheckoutSessionResponse)
async def cancel_checkout(
    payload: CheckoutCancelRequest,
    user: User = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service)
):
    """Give the held tickets back."""
    try:
        return await service.cancel_checkout(payload.session_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except InvalidStateTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.get("/orders/mine", response_model=List[OrderResponse])
async def my_orders(
    user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service)
):
    return await service.list_my_orders(user)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service)
):
    try:
        return await service.get_order(order_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


@router.get("/orders/{order_id}/tickets", response_model=List[TicketResponse])
async def get_order_tickets(
    order_id: UUID,
    user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service)
):
    try:
        return await service.get_order_tickets(order_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
