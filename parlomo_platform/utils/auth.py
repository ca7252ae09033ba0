"""
Password hashing and JWT access tokens for platform accounts.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from ..config import settings


@dataclass(frozen=True)
class AccessClaims:
    """Claims carried by an access token."""

    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Encode and sign a JWT.

    Args:
        claims: Token claims; ``sub`` holds the user ID
        expires_delta: Lifetime, defaults to ``ACCESS_TOKEN_EXPIRE_MINUTES``
    """
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def issue_user_token(user_id: Any, email: str, role: str) -> Tuple[str, int]:
    """Access token for a signed-in user and its lifetime in seconds."""
    lifetime = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token({"sub": str(user_id), "email": email, "role": role}, lifetime)
    return token, int(lifetime.total_seconds())


def decode_access_token(token: str) -> Optional[AccessClaims]:
    """Claims of a valid token; None when the signature, expiry or subject is wrong."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    return AccessClaims(user_id=subject, email=payload.get("email"), role=payload.get("role"))
