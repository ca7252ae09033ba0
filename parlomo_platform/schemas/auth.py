"""
Authentication-related Pydantic schemas.
"""

from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_serializer

from ..models.user import UserRole


class UserRegistration(BaseModel):
    """Schema for user registration."""
    email: EmailStr
    password: str = Field(..., min_length=8, description="Password must be at least 8 characters")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    account_type: Literal["user", "organizer"] = Field(
        "user", description="Organizer accounts can publish events and sell tickets"
    )


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserProfile(BaseModel):
    """Schema for user profile information."""
    id: UUID
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool

    @field_serializer('id')
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer('role')
    def serialize_role(self, value: UserRole) -> str:
        return value.value

    model_config = {"from_attributes": True}


class UserProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, description="Password must be at least 8 characters")


class TokenResponse(BaseModel):
    """Schema for token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserProfile
