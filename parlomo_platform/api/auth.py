"""
Authentication API endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.auth import (
    UserRegistration,
    UserLogin,
    UserProfile,
    UserProfileUpdate,
    PasswordChange,
    TokenResponse
)
from ..services.user_service import UserService
from ..utils.auth import issue_user_token
from ..utils.dependencies import get_current_user
from ..utils.exceptions import AuthenticationError, DuplicateResourceError
from ..utils.logging_config import log_security_event


router = APIRouter(prefix="/auth", tags=["authentication"])


def _token_response(user: User) -> TokenResponse:
    access_token, expires_in = issue_user_token(user.id, user.email, user.role.value)
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=expires_in,
        user=UserProfile.model_validate(user)
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: UserRegistration,
    db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Register a buyer or organizer account and return an access token.

    Raises:
        HTTPException: 409 if the email is already registered
    """
    try:
        user = await UserService(db).create_user(user_data)
    except DuplicateResourceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login_user(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Authenticate user and return access token.

    Raises:
        HTTPException: 401 if credentials are invalid or the account is deactivated
    """
    try:
        user = await UserService(db).authenticate_user(login_data.email, login_data.password)
    except AuthenticationError as e:
        log_security_event("login_failed", {"reason": e.message})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _token_response(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(current_user: User = Depends(get_current_user)) -> Any:
    """Issue a fresh token for a still-valid session."""
    return _token_response(current_user)


@router.get("/me", response_model=UserProfile)
async def get_current_user_profile(
    current_user: User = Depends(get_current_user)
) -> Any:
    return UserProfile.model_validate(current_user)


@router.put("/me", response_model=UserProfile)
async def update_current_user_profile(
    update_data: UserProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Any:
    updated_user = await UserService(db).update_user_profile(current_user.id, update_data)
    return UserProfile.model_validate(updated_user)


@router.post("/change-password", status_code=status.HTTP_200_OK)
async def change_password(
    password_data: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Change current user's password.

    Raises:
        HTTPException: 400 if current password is incorrect
    """
    try:
        await UserService(db).change_password(
            current_user.id,
            password_data.current_password,
            password_data.new_password
        )
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    return {"message": "Password changed successfully"}
