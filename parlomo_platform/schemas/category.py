"""
Public event category schemas.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.category import CategoryStatus
from .common import PageMeta


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field("MoreHorizontal", max_length=50)
    image: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=500)
    status: CategoryStatus = CategoryStatus.ACTIVE
    sort_order: Optional[int] = Field(None, ge=0, description="Defaults to the end of the list")


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    icon: Optional[str] = Field(None, max_length=50)
    image: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=500)
    status: Optional[CategoryStatus] = None
    sort_order: Optional[int] = Field(None, ge=0)


class CategoryResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    icon: str
    image: Optional[str] = None
    description: Optional[str] = None
    status: CategoryStatus
    sort_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CategoryListResponse(BaseModel):
    data: List[CategoryResponse]
    meta: PageMeta


class CategoryOrder(BaseModel):
    id: UUID
    sort_order: int = Field(..., ge=0)


class CategoryReorder(BaseModel):
    items: List[CategoryOrder] = Field(..., min_length=1)


class CategoryStats(BaseModel):
    total: int
    active: int
    inactive: int
    needs_seed: bool


class CategorySeedRequest(BaseModel):
    reset: bool = Field(False, description="Delete every category before seeding")


class CategorySeedResult(BaseModel):
    message: str
    created: int
    stats: CategoryStats
