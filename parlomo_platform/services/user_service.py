"""
User service for registration, authentication and profile updates.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from ..models.user import User, UserRole
from ..schemas.auth import UserRegistration, UserProfileUpdate
from ..utils.auth import get_password_hash
from ..utils.exceptions import AuthenticationError, DuplicateResourceError, UserNotFoundError

logger = logging.getLogger(__name__)


class UserService:
    """Service class for user operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_user(self, user_data: UserRegistration) -> User:
        """
        Create a new user.

        Args:
            user_data: User registration data

        Returns:
            The created user

        Raises:
            DuplicateResourceError: If email already exists
        """
        email = user_data.email.lower()
        if await self.get_user_by_email(email):
            raise DuplicateResourceError("Email already registered", field="email")

        user = User(
            email=email,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            phone=user_data.phone,
            role=UserRole(user_data.account_type),
            password_hash=get_password_hash(user_data.password)
        )

        try:
            self.db.add(user)
            await self.db.commit()
            await self.db.refresh(user)
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateResourceError("Email already registered", field="email")

        logger.info(f"Registered {user.role.value} account {user.id}")
        return user

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def authenticate_user(self, email: str, password: str) -> User:
        """
        Authenticate a user with email and password.

        Raises:
            AuthenticationError: On unknown email, wrong password or inactive account
        """
        user = await self.get_user_by_email(email)
        if not user or not user.verify_password(password):
            raise AuthenticationError("Incorrect email or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        return user

    async def update_user_profile(self, user_id: UUID, update_data: UserProfileUpdate) -> User:
        user = await self.get_user_by_id(user_id)
        if not user:
            raise UserNotFoundError(str(user_id))

        for field, value in update_data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)

        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def change_password(self, user_id: UUID, current_password: str, new_password: str) -> None:
        """
        Change a user's password.

        Raises:
            UserNotFoundError: If the user does not exist
            AuthenticationError: If the current password is wrong
        """
        user = await self.get_user_by_id(user_id)
        if not user:
            raise UserNotFoundError(str(user_id))

        if not user.verify_password(current_password):
            raise AuthenticationError("Current password is incorrect")

        user.set_password(new_password)
        await self.db.commit()

    async def set_role(self, user_id: UUID, role: UserRole) -> User:
        """Promote or demote an account (admin only)."""
        user = await self.get_user_by_id(user_id)
        if not user:
            raise UserNotFoundError(str(user_id))

        user.role = role
        await self.db.commit()
        await self.db.refresh(user)
        logger.info(f"User {user_id} role set to {role.value}")
        return user
