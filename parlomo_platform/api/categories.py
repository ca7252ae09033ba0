"""
Public event category API endpoints.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..models.category import CategoryStatus
from ..schemas.category import (
    CategoryCreate,
    CategoryListResponse,
    CategoryReorder,
    CategoryResponse,
    CategorySeedRequest,
    CategorySeedResult,
    CategoryStats,
    CategoryUpdate,
)
from ..schemas.common import PageMeta
from ..services.category_service import CategoryService
from ..utils.dependencies import get_current_admin_user
from ..utils.exceptions import (
    CategoryNotFoundError,
    DuplicateResourceError,
    ResourceInUseError,
)


router = APIRouter(prefix="/public-events/categories", tags=["categories"])


def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    """Dependency to get category service instance."""
    return CategoryService(db)


@router.get("", response_model=CategoryListResponse)
async def list_categories(
    status_filter: Optional[CategoryStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Search in name or description"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: CategoryService = Depends(get_category_service)
):
    categories, total = await service.list_categories(status_filter, search, page, limit)
    return CategoryListResponse(
        data=[CategoryResponse.model_validate(category) for category in categories],
        meta=PageMeta.build(page, limit, total),
    )


@router.get("/active", response_model=List[CategoryResponse])
async def list_active_categories(service: CategoryService = Depends(get_category_service)):
    """Active categories for event forms and public filters."""
    return await service.list_active()


@router.get("/stats", response_model=CategoryStats)
async def category_stats(
    _: User = Depends(get_current_admin_user),
    service: CategoryService = Depends(get_category_service)
):
    return await service.category_stats()


@router.post("/seed", response_model=CategorySeedResult)
async def seed_categories(
    payload: Optional[CategorySeedRequest] = None,
    _: User = Depends(get_current_admin_user),
    service: CategoryService = Depends(get_category_service)
):
    """
    Insert the default categories.

    Skipped when categories already exist unless ``reset`` is true.
    """
    result = await service.seed_categories(reset=payload.reset if payload else False)
    stats = await service.category_stats()
    return CategorySeedResult(message=result["message"], created=result["created"], stats=stats)


@router.put("/reorder", response_model=List[CategoryResponse])
async def reorder_categories(
    payload: CategoryReorder,
    _: User = Depends(get_current_admin_user),
    service: CategoryService = Depends(get_category_service)
):
    try:
        return await service.reorder([item.model_dump() for item in payload.items])
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    _: User = Depends(get_current_admin_user),
    service: CategoryService = Depends(get_category_service)
):
    try:
        return await service.create_category(payload)
    except DuplicateResourceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: UUID,
    service: CategoryService = Depends(get_category_service)
):
    try:
        return await service.get_category(category_id)
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: UUID,
    payload: CategoryUpdate,
    _: User = Depends(get_current_admin_user),
    service: CategoryService = Depends(get_category_service)
):
    try:
        return await service.update_category(category_id, payload)
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except DuplicateResourceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.patch("/{category_id}/toggle-status", response_model=CategoryResponse)
async def toggle_category_status(
    category_id: UUID,
    _: User = Depends(get_current_admin_user),
    service: CategoryService = Depends(get_category_service)
):
    try:
        return await service.toggle_status(category_id)
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: UUID,
    _: User = Depends(get_current_admin_user),
    service: CategoryService = Depends(get_category_service)
):
    """Delete a category that no event references."""
    try:
        await service.delete_category(category_id)
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ResourceInUseError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
