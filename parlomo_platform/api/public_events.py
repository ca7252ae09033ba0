"""
Public event API endpoints.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import EventStatus, User
from ..schemas.common import Pagination
from ..schemas.public_event import (
    EventCancelRequest,
    EventOverviewResponse,
    EventStatsResponse,
    PublicEventCreate,
    PublicEventListResponse,
    PublicEventResponse,
    PublicEventUpdate,
)
from ..services.public_event_service import PublicEventService
from ..utils.dependencies import (
    get_current_admin_user,
    get_current_organizer_user,
    get_optional_user,
)
from ..utils.exceptions import (
    AuthorizationError,
    CategoryNotFoundError,
    EventNotFoundError,
    InvalidStateTransitionError,
    ValidationError,
)


router = APIRouter(prefix="/public-events", tags=["public-events"])


def get_public_event_service(db: AsyncSession = Depends(get_db)) -> PublicEventService:
    """Dependency to get public event service instance."""
    return PublicEventService(db)


@router.get("", response_model=PublicEventListResponse)
async def list_events(
    organizer_id: Optional[UUID] = Query(None),
    status_filter: Optional[EventStatus] = Query(None, alias="status"),
    category: Optional[str] = Query(None, description="Category ID or slug"),
    search: Optional[str] = Query(None, description="Search title, description and tags"),
    city: Optional[str] = Query(None),
    start_date_from: Optional[datetime] = Query(None),
    start_date_to: Optional[datetime] = Query(None),
    featured: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("created_at", pattern="^(created_at|start_date|title|updated_at)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    viewer: Optional[User] = Depends(get_optional_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    """
    List events with filters and pagination.

    Anonymous callers see published events only. Organizers passing their own
    ``organizer_id`` also see drafts; admins see every status.
    """
    filters = dict(
        organizer_id=organizer_id,
        category=category,
        search=search,
        city=city,
        start_date_from=start_date_from,
        start_date_to=start_date_to,
        featured=featured,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    try:
        if viewer is None:
            cached = await service.list_published(page=page, limit=limit, **filters)
            events, total = cached["events"], cached["total"]
        else:
            rows, total = await service.query_events(
                viewer=viewer, status=status_filter, page=page, limit=limit, **filters
            )
            events = [PublicEventResponse.model_validate(event) for event in rows]
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    return PublicEventListResponse(events=events, pagination=Pagination.build(page, limit, total))


@router.post("", response_model=PublicEventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: PublicEventCreate,
    organizer: User = Depends(get_current_organizer_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    """Create a draft event owned by the caller."""
    try:
        return await service.create_event(payload, organizer)
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.get("/overview", response_model=EventOverviewResponse)
async def events_overview(
    _: User = Depends(get_current_admin_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    return await service.events_overview()


@router.get("/slug/{slug}", response_model=PublicEventResponse)
async def get_event_by_slug(
    slug: str,
    viewer: Optional[User] = Depends(get_optional_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    try:
        return await service.get_event_by_slug(slug, viewer)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.get("/{event_id}", response_model=PublicEventResponse)
async def get_event(
    event_id: UUID,
    viewer: Optional[User] = Depends(get_optional_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    try:
        return await service.get_event_detail(event_id, viewer)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.put("/{event_id}", response_model=PublicEventResponse)
async def update_event(
    event_id: UUID,
    payload: PublicEventUpdate,
    user: User = Depends(get_current_organizer_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    try:
        return await service.update_event(event_id, payload, user)
    except (EventNotFoundError, CategoryNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except InvalidStateTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.delete("/{event_id}", response_model=PublicEventResponse)
async def delete_event(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    """Soft delete: the event is cancelled, never removed."""
    return await _transition(service.delete_event, event_id, user)


@router.post("/{event_id}/publish", response_model=PublicEventResponse)
async def publish_event(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    return await _transition(service.publish_event, event_id, user)


@router.post("/{event_id}/unpublish", response_model=PublicEventResponse)
async def unpublish_event(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    return await _transition(service.unpublish_event, event_id, user)


@router.post("/{event_id}/cancel", response_model=PublicEventResponse)
async def cancel_event(
    event_id: UUID,
    payload: Optional[EventCancelRequest] = None,
    user: User = Depends(get_current_organizer_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    """Cancel the event and stop ticket sales; buyers are notified by email."""
    reason = payload.reason if payload else None
    return await _transition(service.cancel_event, event_id, user, reason=reason)


@router.post("/{event_id}/complete", response_model=PublicEventResponse)
async def complete_event(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    return await _transition(service.complete_event, event_id, user)


@router.get("/{event_id}/stats", response_model=EventStatsResponse)
async def event_stats(
    event_id: UUID,
    user: User = Depends(get_current_organizer_user),
    service: PublicEventService = Depends(get_public_event_service)
):
    try:
        return await service.event_stats(event_id, user)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


async def _transition(action, event_id: UUID, user: User, **kwargs):
    try:
        return await action(event_id, user, **kwargs)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except InvalidStateTransitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
