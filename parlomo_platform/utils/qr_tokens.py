"""
Signed QR payloads for tickets.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from ..config import get_settings

logger = logging.getLogger(__name__)


def generate_qr_payload(
    ticket_id: str,
    ticket_code: str,
    event_id: str,
    ticket_type_id: Optional[str],
    order_id: str,
    issued_at: Optional[datetime] = None
) -> str:
    """
    Sign the data encoded in a ticket's QR code.

    Args:
        ticket_id: Ticket ID
        ticket_code: Human readable ticket code
        event_id: Event ID
        ticket_type_id: Ticket type ID
        order_id: Order ID
        issued_at: Override for the issue time

    Returns:
        Signed JWT string
    """
    settings = get_settings()
    now = issued_at or datetime.now(timezone.utc)

    claims = {
        "ticketId": str(ticket_id),
        "ticketCode": ticket_code,
        "eventId": str(event_id),
        "ticketTypeId": str(ticket_type_id) if ticket_type_id else None,
        "orderId": str(order_id),
        "iss": settings.qr_token_issuer,
        "sub": settings.qr_token_subject,
        "iat": int(now.timestamp()),
        "exp": now + timedelta(days=settings.qr_token_expire_days),
    }
    return jwt.encode(claims, settings.qr_token_secret, algorithm=settings.ALGORITHM)


def verify_qr_payload(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify a scanned QR payload.

    Returns:
        The ticket claims, or None when the signature, issuer, subject or
        expiry check fails
    """
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.qr_token_secret,
            algorithms=[settings.ALGORITHM],
            issuer=settings.qr_token_issuer,
            subject=settings.qr_token_subject,
        )
    except JWTError as e:
        logger.info(f"Rejected QR payload: {e}")
        return None

    return {
        "ticket_id": claims.get("ticketId"),
        "ticket_code": claims.get("ticketCode"),
        "event_id": claims.get("eventId"),
        "ticket_type_id": claims.get("ticketTypeId"),
        "order_id": claims.get("orderId"),
        "issued_at": claims.get("iat"),
    }
