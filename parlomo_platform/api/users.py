"""
User management API endpoints (admin only).
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User, UserRole
from ..schemas.auth import UserProfile
from ..services.user_service import UserService
from ..utils.dependencies import get_current_admin_user
from ..utils.exceptions import UserNotFoundError


router = APIRouter(prefix="/users", tags=["user-management"])


class RoleUpdate(BaseModel):
    role: UserRole


@router.get("/{user_id}", response_model=UserProfile)
async def get_user_by_id(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_admin_user)
) -> Any:
    user = await UserService(db).get_user_by_id(user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return UserProfile.model_validate(user)


@router.put("/{user_id}/role", response_model=UserProfile)
async def set_user_role(
    user_id: UUID,
    payload: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_admin_user)
) -> Any:
    """Grant or revoke organizer/admin rights."""
    try:
        user = await UserService(db).set_role(user_id, payload.role)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    return UserProfile.model_validate(user)
