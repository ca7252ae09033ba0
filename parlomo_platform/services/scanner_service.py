"""
Scanner service: admission checks at the door.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Order, PublicEvent, Ticket, TicketStatus, TicketType, User
from ..models.base import utcnow
from ..utils.logging_config import log_security_event
from ..utils.qr_tokens import verify_qr_payload
from ..utils.ticket_codes import TICKET_CODE_PREFIX, is_valid_barcode, parse_ticket_code

logger = logging.getLogger(__name__)


class ScanReason:
    """Why a scanned ticket was refused."""
    INVALID_QR = "INVALID_QR"
    NOT_FOUND = "NOT_FOUND"
    WRONG_ORGANIZER = "WRONG_ORGANIZER"
    WRONG_EVENT = "WRONG_EVENT"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    ALREADY_USED = "ALREADY_USED"
    TRANSFERRED = "TRANSFERRED"


REFUSED_STATUSES = {
    TicketStatus.CANCELLED: (ScanReason.CANCELLED, "This ticket has been cancelled"),
    TicketStatus.REFUNDED: (ScanReason.REFUNDED, "This ticket has been refunded"),
    TicketStatus.USED: (ScanReason.ALREADY_USED, "This ticket has already been scanned"),
    TicketStatus.TRANSFERRED: (ScanReason.TRANSFERRED, "This ticket has been transferred to another person"),
}


def ticket_lookup(raw: Optional[str]):
    """Filter for a typed ticket code or a printed barcode, or None when it is neither."""
    suffix = parse_ticket_code(raw)
    if suffix is not None:
        return Ticket.code == f"{TICKET_CODE_PREFIX}{suffix}"
    digits = (raw or "").strip()
    if is_valid_barcode(digits):
        return Ticket.barcode == digits
    return None


def refused(reason: str, message: str, **extra: Any) -> Dict[str, Any]:
    return {"valid": False, "reason": reason, "message": message, **extra}


class ScannerService:
    """Service class for scanning tickets."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def scan_ticket(
        self,
        scanner: User,
        ticket_code: Optional[str] = None,
        qr_payload: Optional[str] = None,
        event_id: Optional[UUID] = None,
        location: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Validate a ticket and check it in.

        A QR payload is verified before anything else; only the signed
        ticket code inside it is trusted.

        Returns:
            ``{valid, reason, message, ticket, event}``
        """
        return await self._inspect(scanner, ticket_code, qr_payload, event_id, location, check_in=True)

    async def check_ticket(
        self,
        scanner: User,
        ticket_code: Optional[str] = None,
        qr_payload: Optional[str] = None,
        event_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        """Same checks as :meth:`scan_ticket` without changing the ticket."""
        return await self._inspect(scanner, ticket_code, qr_payload, event_id, None, check_in=False)

    async def _inspect(
        self,
        scanner: User,
        ticket_code: Optional[str],
        qr_payload: Optional[str],
        event_id: Optional[UUID],
        location: Optional[str],
        check_in: bool
    ) -> Dict[str, Any]:
        if qr_payload:
            claims = verify_qr_payload(qr_payload)
            if claims is None:
                log_security_event("invalid_qr_payload", {"scanner_id": str(scanner.id)})
                return refused(ScanReason.INVALID_QR, "Invalid QR code")
            ticket_code = claims["ticket_code"]

        lookup = ticket_lookup(ticket_code)
        row = None
        if lookup is not None:
            result = await self.db.execute(
                select(Ticket, TicketType.name, Order.order_number, PublicEvent)
                .join(PublicEvent, PublicEvent.id == Ticket.event_id)
                .join(Order, Order.id == Ticket.order_id)
                .outerjoin(TicketType, TicketType.id == Ticket.ticket_type_id)
                .where(lookup)
            )
            row = result.first()
        if row is None:
            return refused(ScanReason.NOT_FOUND, "This ticket does not exist in our system")
        ticket, type_name, order_number, event = row

        if not scanner.is_admin and event.organizer_id != scanner.id:
            log_security_event(
                "foreign_ticket_scan",
                {"scanner_id": str(scanner.id), "event_id": str(event.id), "ticket_code": ticket.code}
            )
            return refused(ScanReason.WRONG_ORGANIZER, "You can only scan tickets for your own events")

        event_info = {
            "id": event.id,
            "title": event.title,
            "slug": event.slug,
            "start_date": event.start_date,
        }

        if event_id is not None and event.id != event_id:
            return refused(ScanReason.WRONG_EVENT, "This ticket is for a different event", event=event_info)

        if ticket.status in REFUSED_STATUSES:
            reason, message = REFUSED_STATUSES[ticket.status]
            return refused(
                reason, message,
                ticket=self._ticket_info(ticket, type_name, order_number),
                event=event_info,
            )

        if not check_in:
            return {
                "valid": True,
                "reason": None,
                "message": "Ticket is valid",
                "ticket": self._ticket_info(ticket, type_name, order_number),
                "event": event_info,
            }

        now = utcnow()
        marked = await self.db.execute(
            update(Ticket)
            .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.VALID)
            .values(status=TicketStatus.USED, used_at=now, used_by=scanner.id, scan_location=location)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(ticket)

        if marked.rowcount == 0:
            # Checked in by another scanner in the meantime
            reason, message = REFUSED_STATUSES.get(
                ticket.status, (ScanReason.ALREADY_USED, "This ticket has already been scanned")
            )
            return refused(
                reason, message,
                ticket=self._ticket_info(ticket, type_name, order_number),
                event=event_info,
            )

        logger.info(f"Ticket {ticket.code} checked in for event {event.id} by {scanner.id}")
        return {
            "valid": True,
            "reason": None,
            "message": "Ticket validated successfully",
            "ticket": self._ticket_info(ticket, type_name, order_number),
            "event": event_info,
        }

    @staticmethod
    def _ticket_info(ticket: Ticket, type_name: Optional[str], order_number: Optional[str]) -> Dict[str, Any]:
        return {
            "id": ticket.id,
            "code": ticket.code,
            "status": ticket.status.value,
            "status_label": ticket.status_label,
            "attendee_name": ticket.attendee_name,
            "attendee_email": ticket.attendee_email,
            "ticket_type": type_name,
            "order_number": order_number,
            "seat_section": ticket.seat_section,
            "seat_row": ticket.seat_row,
            "seat_number": ticket.seat_number,
            "used_at": ticket.used_at,
        }
