"""
Refund and settlement request API endpoints.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import RefundRequestStatus, SettlementRequestStatus, User
from ..schemas.common import Pagination
from ..schemas.financial import (
    AdminDecision,
    MarkPaidRequest,
    RefundRequestCreate,
    RefundRequestListResponse,
    RefundRequestResponse,
    RefundRequestUpdate,
    RejectionRequest,
    SettlementRequestCreate,
    SettlementRequestListResponse,
    SettlementRequestResponse,
    SettlementRequestUpdate,
)
from ..services.refund_service import RefundService
from ..services.settlement_service import SettlementService
from ..utils.dependencies import get_current_admin_user, get_current_organizer_user
from ..utils.exceptions import (
    AuthorizationError,
    DuplicateResourceError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)


router = APIRouter(prefix="/financials", tags=["financials"])


def get_refund_service(db: AsyncSession = Depends(get_db)) -> RefundService:
    return RefundService(db)


def get_settlement_service(db: AsyncSession = Depends(get_db)) -> SettlementService:
    return SettlementService(db)


async def _handle(call):
    try:
        return await call
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except (InvalidStateTransitionError, DuplicateResourceError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


# Refund requests

@router.post("/refunds", response_model=RefundRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_refund_request(
    payload: RefundRequestCreate,
    user: User = Depends(get_current_organizer_user),
    service: RefundService = Depends(get_refund_service)
):
    """Ask an admin to refund one, several or all paid orders of an event."""
    return await _handle(service.create_request(payload, user))


@router.get("/refunds", response_model=RefundRequestListResponse)
async def list_refund_requests(
    status_filter: Optional[RefundRequestStatus] = Query(None, alias="status"),
    organizer_id: Optional[UUID] = Query(None),
    event_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_organizer_user),
    service: RefundService = Depends(get_refund_service)
):
    requests, total = await service.list_requests(user, status_filter, organizer_id, event_id, page, limit)
    return RefundRequestListResponse(requests=requests, pagination=Pagination.build(page, limit, total))


@router.get("/refunds/pending", response_model=List[RefundRequestResponse])
async def list_pending_refund_requests(
    _: User = Depends(get_current_admin_user),
    service: RefundService = Depends(get_refund_service)
):
    """Pending requests, oldest first."""
    return await service.list_pending()


@router.get("/refunds/{request_id}", response_model=RefundRequestResponse)
async def get_refund_request(
    request_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: RefundService = Depends(get_refund_service)
):
    return await _handle(service.get_request(request_id, user))


@router.post("/refunds/{request_id}/approve", response_model=RefundRequestResponse)
async def approve_refund_request(
    request_id: UUID,
    payload: Optional[AdminDecision] = None,
    admin: User = Depends(get_current_admin_user),
    service: RefundService = Depends(get_refund_service)
):
    notes = payload.admin_notes if payload else None
    return await _handle(service.approve(request_id, admin, notes))


@router.post("/refunds/{request_id}/reject", response_model=RefundRequestResponse)
async def reject_refund_request(
    request_id: UUID,
    payload: RejectionRequest,
    admin: User = Depends(get_current_admin_user),
    service: RefundService = Depends(get_refund_service)
):
    return await _handle(service.reject(request_id, admin, payload.reason, payload.admin_notes))


@router.post("/refunds/{request_id}/process", response_model=RefundRequestResponse)
async def process_refund_request(
    request_id: UUID,
    admin: User = Depends(get_current_admin_user),
    service: RefundService = Depends(get_refund_service)
):
    """Refund the orders of an approved request."""
    return await _handle(service.process(request_id, admin))


@router.patch("/refunds/{request_id}", response_model=RefundRequestResponse)
async def update_refund_request(
    request_id: UUID,
    payload: RefundRequestUpdate,
    admin: User = Depends(get_current_admin_user),
    service: RefundService = Depends(get_refund_service)
):
    return await _handle(service.update_request(request_id, payload, admin))


# Settlement requests

@router.post("/settlements", response_model=SettlementRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement_request(
    payload: SettlementRequestCreate,
    user: User = Depends(get_current_organizer_user),
    service: SettlementService = Depends(get_settlement_service)
):
    """Request payout of an event's revenue; one open request per event."""
    return await _handle(service.create_request(payload, user))


@router.get("/settlements", response_model=SettlementRequestListResponse)
async def list_settlement_requests(
    status_filter: Optional[SettlementRequestStatus] = Query(None, alias="status"),
    organizer_id: Optional[UUID] = Query(None),
    event_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_organizer_user),
    service: SettlementService = Depends(get_settlement_service)
):
    requests, total = await service.list_requests(user, status_filter, organizer_id, event_id, page, limit)
    return SettlementRequestListResponse(requests=requests, pagination=Pagination.build(page, limit, total))


@router.get("/settlements/{request_id}", response_model=SettlementRequestResponse)
async def get_settlement_request(
    request_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: SettlementService = Depends(get_settlement_service)
):
    return await _handle(service.get_request(request_id, user))


@router.post("/settlements/{request_id}/approve", response_model=SettlementRequestResponse)
async def approve_settlement_request(
    request_id: UUID,
    payload: Optional[AdminDecision] = None,
    admin: User = Depends(get_current_admin_user),
    service: SettlementService = Depends(get_settlement_service)
):
    notes = payload.admin_notes if payload else None
    return await _handle(service.approve(request_id, admin, notes))


@router.post("/settlements/{request_id}/reject", response_model=SettlementRequestResponse)
async def reject_settlement_request(
    request_id: UUID,
    payload: RejectionRequest,
    admin: User = Depends(get_current_admin_user),
    service: SettlementService = Depends(get_settlement_service)
):
    return await _handle(service.reject(request_id, admin, payload.reason, payload.admin_notes))


@router.post("/settlements/{request_id}/mark-paid", response_model=SettlementRequestResponse)
async def mark_settlement_paid(
    request_id: UUID,
    payload: MarkPaidRequest,
    admin: User = Depends(get_current_admin_user),
    service: SettlementService = Depends(get_settlement_service)
):
    return await _handle(service.mark_as_paid(request_id, admin, payload.transaction_reference))


@router.patch("/settlements/{request_id}", response_model=SettlementRequestResponse)
async def update_settlement_request(
    request_id: UUID,
    payload: SettlementRequestUpdate,
    admin: User = Depends(get_current_admin_user),
    service: SettlementService = Depends(get_settlement_service)
):
    return await _handle(service.update_request(request_id, payload, admin))
