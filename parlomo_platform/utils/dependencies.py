"""
FastAPI dependencies for authentication and authorization.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..utils.auth import decode_access_token
from ..services.user_service import UserService


# HTTP Bearer token schemes
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


async def _resolve_user(token: str, db: AsyncSession) -> Optional[User]:
    claims = decode_access_token(token)
    if claims is None:
        return None

    try:
        user_id = UUID(claims.user_id)
    except ValueError:
        return None

    return await UserService(db).get_user_by_id(user_id)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from JWT token.

    Args:
        request: Incoming request; the user is stored on ``request.state``
        credentials: HTTP Bearer credentials
        db: Database session

    Returns:
        The authenticated user

    Raises:
        HTTPException: If token is invalid, user not found or inactive
    """
    user = await _resolve_user(credentials.credentials, db)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Inactive user"
        )

    request.state.user = user
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """The authenticated user, or None for anonymous buyers and browsers."""
    if credentials is None:
        return None

    user = await _resolve_user(credentials.credentials, db)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_organizer_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get the current user if they may manage events (organizer or admin).

    Raises:
        HTTPException: If the user is a plain buyer account
    """
    if not (current_user.is_organizer or current_user.is_admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organizer account required"
        )
    return current_user


async def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get the current admin user.

    Raises:
        HTTPException: If user is not an admin
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return current_user
